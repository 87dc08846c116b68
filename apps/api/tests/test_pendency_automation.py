from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import datetime, timezone
from typing import Any

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from arara.audit import InMemoryAuditSink, set_audit_sink
from arara.core.database import Base
from arara.core.events import InProcessEventBus, InternalEvent
from arara.org.directory import seed_default_sectors
from arara.pendencies.automation import (
    PENDENCY_RESOLVED,
    BillingAutomationHandler,
    billing_automation_key,
    build_pendency_event_bus,
)
from arara.pendencies.models import OriginType, Pendency, PendencyPriority, PendencyStatus, PendencyType
from arara.pendencies.repository import PendencyRepository
from arara.pendencies.schemas import PendencyCreate, PendencyFilters, PendencyRead, PendencyUpdate
from arara.pendencies.service import PendencyService
from arara.platform.security.context import ActorContext
from arara.platform.security.policies import (
    DEFAULT_ROLE_PERMISSIONS,
    InMemoryRolePermissionSource,
    PermissionEvaluator,
    RolePermissionCache,
    set_permission_evaluator,
)

OPERATOR = ActorContext.build("op-1", ["OPERATOR"])
ADMIN = ActorContext.build("admin-1", ["ADMIN"])


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    seed_default_sectors(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_collaborators() -> Generator[None, None, None]:
    set_permission_evaluator(PermissionEvaluator(RolePermissionCache(InMemoryRolePermissionSource(DEFAULT_ROLE_PERMISSIONS))))
    set_audit_sink(InMemoryAuditSink([]))
    yield
    set_permission_evaluator(PermissionEvaluator(RolePermissionCache(InMemoryRolePermissionSource(DEFAULT_ROLE_PERMISSIONS))))
    set_audit_sink(InMemoryAuditSink())


def _service_order(service: PendencyService, session: Session, ref: str | None = "OS-42", title: str = "Replace compressor") -> PendencyRead:
    return service.create(
        session,
        OPERATOR,
        PendencyCreate(
            title=title,
            type=PendencyType.SERVICE_ORDER,
            origin_type=OriginType.SERVICE_ORDER,
            origin_ref_id=ref,
        ),
    )


def _financial(service: PendencyService, session: Session) -> list[PendencyRead]:
    return service.list(session, ADMIN, PendencyFilters(type=PendencyType.FINANCIAL))


def test_completing_service_order_spawns_billing_pendency(db_session: Session) -> None:
    service = PendencyService()
    source = _service_order(service, db_session)
    service.update(db_session, OPERATOR, source.id, PendencyUpdate(status=PendencyStatus.IN_PROGRESS))

    done = service.update(db_session, OPERATOR, source.id, PendencyUpdate(status=PendencyStatus.DONE))
    assert done is not None
    assert done.status == PendencyStatus.DONE

    billing = _financial(service, db_session)
    assert len(billing) == 1
    derived = billing[0]
    assert derived.origin_type == OriginType.SERVICE_ORDER
    assert derived.origin_ref_id == "OS-42"
    assert derived.title == "Billing for service order #OS-42"
    assert derived.status == PendencyStatus.PENDING
    assert derived.priority == PendencyPriority.MEDIUM
    assert derived.created_by == "op-1"
    assert derived.responsible_person_id == "op-1"
    assert derived.responsible_sector_id is None

    stored = db_session.scalar(select(Pendency).where(Pendency.id == derived.id))
    assert stored is not None
    assert stored.automation_key == "billing:OS-42"

    repeated = service.update(db_session, OPERATOR, source.id, PendencyUpdate(status=PendencyStatus.DONE))
    assert repeated is not None
    assert len(_financial(service, db_session)) == 1


def test_reopen_and_complete_again_does_not_duplicate(db_session: Session) -> None:
    service = PendencyService()
    source = _service_order(service, db_session)

    service.update(db_session, OPERATOR, source.id, PendencyUpdate(status=PendencyStatus.DONE))
    service.update(db_session, OPERATOR, source.id, PendencyUpdate(status=PendencyStatus.IN_PROGRESS))
    service.update(db_session, OPERATOR, source.id, PendencyUpdate(status=PendencyStatus.DONE))

    assert len(_financial(service, db_session)) == 1
    history = service.list_history(db_session, ADMIN, source.id)
    assert history is not None
    assert [entry.new_status for entry in history] == [
        PendencyStatus.DONE,
        PendencyStatus.IN_PROGRESS,
        PendencyStatus.DONE,
    ]


def test_same_reference_on_two_pendencies_yields_one_billing(db_session: Session) -> None:
    service = PendencyService()
    first = _service_order(service, db_session, title="Replace compressor")
    second = _service_order(service, db_session, title="Replace compressor again")

    service.update(db_session, OPERATOR, first.id, PendencyUpdate(status=PendencyStatus.DONE))
    service.update(db_session, OPERATOR, second.id, PendencyUpdate(status=PendencyStatus.DONE))

    assert len(_financial(service, db_session)) == 1


def test_completing_the_billing_pendency_does_not_cascade(db_session: Session) -> None:
    service = PendencyService()
    source = _service_order(service, db_session)
    service.update(db_session, OPERATOR, source.id, PendencyUpdate(status=PendencyStatus.DONE))
    billing = _financial(service, db_session)[0]

    service.update(db_session, OPERATOR, billing.id, PendencyUpdate(status=PendencyStatus.DONE))

    assert len(_financial(service, db_session)) == 1


def test_source_without_reference_uses_pendency_key(db_session: Session) -> None:
    service = PendencyService()
    source = _service_order(service, db_session, ref=None, title="Unreferenced job")

    service.update(db_session, OPERATOR, source.id, PendencyUpdate(status=PendencyStatus.DONE))

    billing = _financial(service, db_session)
    assert len(billing) == 1
    assert billing[0].title == "Billing for service order #Unreferenced job"
    stored = db_session.get(Pendency, billing[0].id)
    assert stored is not None
    assert stored.automation_key == billing_automation_key(None, str(source.id))


def test_completing_unreferenced_billing_pendency_does_not_cascade(db_session: Session) -> None:
    service = PendencyService()
    source = _service_order(service, db_session, ref=None, title="Unreferenced job")
    service.update(db_session, OPERATOR, source.id, PendencyUpdate(status=PendencyStatus.DONE))
    billing = _financial(service, db_session)
    assert len(billing) == 1
    assert billing[0].origin_type == OriginType.SERVICE_ORDER
    assert billing[0].origin_ref_id is None

    service.update(db_session, OPERATOR, billing[0].id, PendencyUpdate(status=PendencyStatus.DONE))

    after = _financial(service, db_session)
    assert [item.id for item in after] == [billing[0].id]
    assert after[0].status == PendencyStatus.DONE


def test_handler_ignores_automation_derived_sources(db_session: Session) -> None:
    handler = BillingAutomationHandler(enabled=True)
    event = InternalEvent(
        name=PENDENCY_RESOLVED,
        payload={
            "actor_user_id": "op-1",
            "payload": {
                "pendency_id": str(uuid.uuid4()),
                "title": "Billing for service order #Unreferenced job",
                "origin_type": "SERVICE_ORDER",
                "origin_ref_id": None,
                "previous_status": "IN_PROGRESS",
                "automation_key": "billing:pendency:1234",
            },
        },
        session=db_session,
    )

    handler(event)

    assert db_session.scalars(select(Pendency).where(Pendency.type == PendencyType.FINANCIAL)).all() == []


@pytest.mark.parametrize(
    ("origin_type", "target_status", "conclusion"),
    [
        (OriginType.MANUAL, PendencyStatus.DONE, "Handled by phone"),
        (OriginType.SERVICE_ORDER, PendencyStatus.CLOSED_WITHOUT_RESOLUTION, None),
        (OriginType.SERVICE_ORDER, PendencyStatus.CANCELLED, None),
    ],
)
def test_no_billing_outside_service_order_completion(
    db_session: Session,
    origin_type: OriginType,
    target_status: PendencyStatus,
    conclusion: str | None,
) -> None:
    service = PendencyService()
    source = service.create(
        db_session,
        ADMIN,
        PendencyCreate(title="Call customer", origin_type=origin_type, origin_ref_id="OS-77", responsible_person_id="admin-1"),
    )

    service.update(db_session, ADMIN, source.id, PendencyUpdate(status=target_status, conclusion_text=conclusion))

    assert _financial(service, db_session) == []


def test_disabled_handler_skips_billing(db_session: Session) -> None:
    service = PendencyService(event_bus=build_pendency_event_bus(BillingAutomationHandler(enabled=False)))
    source = _service_order(service, db_session)

    service.update(db_session, OPERATOR, source.id, PendencyUpdate(status=PendencyStatus.DONE))

    assert _financial(service, db_session) == []


def test_handler_failure_rolls_back_the_transition(db_session: Session) -> None:
    def failing_handler(event: InternalEvent) -> None:
        raise RuntimeError("billing backend unavailable")

    bus = InProcessEventBus()
    bus.subscribe(PENDENCY_RESOLVED, failing_handler)
    service = PendencyService(event_bus=bus)
    source = _service_order(service, db_session)

    with pytest.raises(RuntimeError):
        service.update(db_session, OPERATOR, source.id, PendencyUpdate(status=PendencyStatus.DONE))

    db_session.expire_all()
    stored = db_session.get(Pendency, source.id)
    assert stored is not None
    assert stored.status == PendencyStatus.PENDING
    assert service.list_history(db_session, ADMIN, source.id) == []


class _BlindRepository(PendencyRepository):
    def find_by_automation_key(self, session: Session, automation_key: str) -> Pendency | None:
        return None


def test_concurrent_duplicate_is_absorbed_by_unique_key(db_session: Session) -> None:
    service = PendencyService()
    source = _service_order(service, db_session)
    now = datetime.now(timezone.utc)
    db_session.add(
        Pendency(
            title="Billing for service order #OS-42",
            type=PendencyType.FINANCIAL,
            status=PendencyStatus.PENDING,
            priority=PendencyPriority.MEDIUM,
            origin_type=OriginType.SERVICE_ORDER,
            origin_ref_id="OS-42",
            created_by="op-2",
            responsible_person_id="op-2",
            tags=[],
            automation_key="billing:OS-42",
            created_at=now,
            updated_at=now,
        )
    )
    db_session.commit()

    stored_source = db_session.get(Pendency, source.id)
    assert stored_source is not None
    stored_source.status = PendencyStatus.DONE

    handler = BillingAutomationHandler(_BlindRepository(), enabled=True)
    derived = handler.derive_billing(
        db_session,
        source_id=str(source.id),
        source_title=source.title,
        origin_ref_id="OS-42",
        actor_id="op-1",
    )
    db_session.commit()

    assert derived is None
    assert len(_financial(service, db_session)) == 1
    db_session.expire_all()
    assert db_session.get(Pendency, source.id).status == PendencyStatus.DONE


def test_handler_requires_a_unit_of_work() -> None:
    handler = BillingAutomationHandler(enabled=True)
    event = InternalEvent(
        name=PENDENCY_RESOLVED,
        payload={"payload": {"pendency_id": str(uuid.uuid4()), "origin_type": "SERVICE_ORDER"}},
    )

    with pytest.raises(RuntimeError):
        handler(event)
