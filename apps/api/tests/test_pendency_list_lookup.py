from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from arara.core.database import Base
from arara.core.errors import ForbiddenError
from arara.pendencies.models import OriginType, Pendency, PendencyStatus, PendencyType
from arara.pendencies.schemas import PendencyFilters
from arara.pendencies.service import PendencyService
from arara.platform.security.context import ActorContext, EmployeeAttributes, VisibilityScope
from arara.platform.security.errors import VisibilityError
from arara.platform.security.policies import (
    DEFAULT_ROLE_PERMISSIONS,
    InMemoryRolePermissionSource,
    PermissionEvaluator,
    RolePermissionCache,
    set_permission_evaluator,
)

BASE_TIME = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
OPERATOR = ActorContext.build("op-1", ["OPERATOR"])


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
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_evaluator() -> Generator[None, None, None]:
    set_permission_evaluator(PermissionEvaluator(RolePermissionCache(InMemoryRolePermissionSource(DEFAULT_ROLE_PERMISSIONS))))
    yield
    set_permission_evaluator(PermissionEvaluator(RolePermissionCache(InMemoryRolePermissionSource(DEFAULT_ROLE_PERMISSIONS))))


def _add(
    session: Session,
    title: str,
    *,
    created_by: str,
    hours: int,
    person: str | None = None,
    sector: str | None = None,
    **fields: object,
) -> Pendency:
    created_at = BASE_TIME + timedelta(hours=hours)
    pendency = Pendency(
        title=title,
        type=fields.pop("type", PendencyType.OTHER),
        status=fields.pop("status", PendencyStatus.PENDING),
        origin_type=fields.pop("origin_type", OriginType.MANUAL),
        created_by=created_by,
        responsible_person_id=person,
        responsible_sector_id=sector,
        tags=[],
        created_at=created_at,
        updated_at=created_at,
        **fields,
    )
    session.add(pendency)
    session.commit()
    return pendency


@pytest.fixture()
def seeded(db_session: Session) -> dict[str, uuid.UUID]:
    rows = {
        "own": _add(db_session, "Printer jam", created_by="user-1", person="user-1", hours=0),
        "assigned": _add(db_session, "Badge request", created_by="admin-1", person="user-1", hours=1),
        "foreign": _add(db_session, "Payroll review", created_by="user-2", person="user-2", hours=2, type=PendencyType.FINANCIAL),
        "it_sector": _add(
            db_session,
            "Laptop setup",
            created_by="op-1",
            sector="sector-it",
            hours=3,
            type=PendencyType.IT,
            description="New hire on floor 100%",
        ),
        "service_order": _add(
            db_session,
            "Compressor",
            created_by="op-1",
            person="op-1",
            hours=4,
            origin_type=OriginType.SERVICE_ORDER,
            origin_ref_id="OS-4711",
            status=PendencyStatus.DONE,
        ),
    }
    return {name: row.id for name, row in rows.items()}


def test_read_all_lists_everything_newest_first(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    rows = PendencyService().list(db_session, OPERATOR)

    assert [row.id for row in rows] == [
        seeded["service_order"],
        seeded["it_sector"],
        seeded["foreign"],
        seeded["assigned"],
        seeded["own"],
    ]


def test_individual_scope_sees_created_or_assigned(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    actor = ActorContext.build("user-1", ["USER"], employee=EmployeeAttributes(sector_id="sector-it"))

    rows = PendencyService().list(db_session, actor)

    assert {row.id for row in rows} == {seeded["own"], seeded["assigned"]}


def test_sector_wide_scope_adds_sector_items(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    actor = ActorContext.build(
        "user-1",
        ["USER"],
        employee=EmployeeAttributes(sector_id="sector-it", scope=VisibilityScope.SECTOR_WIDE),
    )

    rows = PendencyService().list(db_session, actor)

    assert {row.id for row in rows} == {seeded["own"], seeded["assigned"], seeded["it_sector"]}


def test_actor_without_roles_or_relations_gets_empty_list(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    assert PendencyService().list(db_session, ActorContext.build("stranger")) == []


def test_filters_combine_with_visibility(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    service = PendencyService()

    by_status = service.list(db_session, OPERATOR, PendencyFilters(status=PendencyStatus.DONE))
    assert [row.id for row in by_status] == [seeded["service_order"]]

    by_type = service.list(db_session, OPERATOR, PendencyFilters(type=PendencyType.FINANCIAL))
    assert [row.id for row in by_type] == [seeded["foreign"]]

    by_creator = service.list(db_session, OPERATOR, PendencyFilters(created_by="op-1"))
    assert {row.id for row in by_creator} == {seeded["it_sector"], seeded["service_order"]}

    by_sector = service.list(db_session, OPERATOR, PendencyFilters(responsible_sector_id="sector-it"))
    assert [row.id for row in by_sector] == [seeded["it_sector"]]

    by_person = service.list(db_session, OPERATOR, PendencyFilters(responsible_person_id="user-1"))
    assert {row.id for row in by_person} == {seeded["own"], seeded["assigned"]}

    restricted = ActorContext.build("user-1", ["USER"])
    hidden = service.list(db_session, restricted, PendencyFilters(type=PendencyType.FINANCIAL))
    assert hidden == []


def test_creation_date_range_is_inclusive(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    rows = PendencyService().list(
        db_session,
        OPERATOR,
        PendencyFilters(date_from=BASE_TIME + timedelta(hours=1), date_to=BASE_TIME + timedelta(hours=3)),
    )

    assert [row.id for row in rows] == [seeded["it_sector"], seeded["foreign"], seeded["assigned"]]


@pytest.mark.parametrize(
    ("term", "expected"),
    [
        ("printer", "own"),
        ("PAYROLL", "foreign"),
        ("floor 100%", "it_sector"),
        ("os-47", "service_order"),
    ],
)
def test_search_term_matches_title_description_or_reference(
    db_session: Session,
    seeded: dict[str, uuid.UUID],
    term: str,
    expected: str,
) -> None:
    rows = PendencyService().list(db_session, OPERATOR, PendencyFilters(search_term=term))

    assert [row.id for row in rows] == [seeded[expected]]


def test_search_term_treats_wildcards_literally(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    assert PendencyService().list(db_session, OPERATOR, PendencyFilters(search_term="%")) != []
    assert PendencyService().list(db_session, OPERATOR, PendencyFilters(search_term="_jam")) == []


def test_get_by_id_distinguishes_missing_from_forbidden(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    service = PendencyService()
    owner = ActorContext.build("user-1", ["USER"])
    outsider = ActorContext.build("user-3", ["USER"])

    found = service.get_by_id(db_session, owner, seeded["assigned"])
    assert found is not None
    assert found.title == "Badge request"

    with pytest.raises(ForbiddenError) as exc_info:
        service.get_by_id(db_session, outsider, seeded["own"])
    assert isinstance(exc_info.value, VisibilityError)

    assert service.get_by_id(db_session, outsider, uuid.uuid4()) is None


def test_history_follows_lookup_visibility(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    service = PendencyService()

    assert service.list_history(db_session, ActorContext.build("user-1", ["USER"]), seeded["own"]) == []
    assert service.list_history(db_session, OPERATOR, uuid.uuid4()) is None
    with pytest.raises(VisibilityError):
        service.list_history(db_session, ActorContext.build("user-3", ["USER"]), seeded["own"])
