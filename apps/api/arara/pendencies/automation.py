from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from arara.core.config import get_settings
from arara.core.events import InProcessEventBus, InternalEvent
from arara.events import build_envelope
from arara.metrics import observe_automation
from arara.pendencies.models import OriginType, Pendency, PendencyPriority, PendencyStatus, PendencyType
from arara.pendencies.repository import PendencyRepository

logger = logging.getLogger("arara.pendencies.automation")

PENDENCY_RESOLVED = "pendency.resolved"


def resolved_event_payload(pendency: Pendency, *, previous_status: str, actor_id: str, occurred_at: datetime) -> dict[str, Any]:
    return build_envelope(
        PENDENCY_RESOLVED,
        {
            "pendency_id": str(pendency.id),
            "title": pendency.title,
            "type": str(pendency.type),
            "origin_type": str(pendency.origin_type),
            "origin_ref_id": pendency.origin_ref_id,
            "previous_status": previous_status,
            "automation_key": pendency.automation_key,
        },
        actor_id=actor_id,
        occurred_at=occurred_at,
    )


def billing_automation_key(origin_ref_id: str | None, pendency_id: str) -> str:
    if origin_ref_id:
        return f"billing:{origin_ref_id}"
    return f"billing:pendency:{pendency_id}"


class BillingAutomationHandler:
    """Spawns the billing pendency when a service-order pendency is completed.

    Runs inside the unit of work that resolved the source pendency. At most
    one billing item exists per service-order reference: a lookup skips
    known derivatives and the unique automation key, inserted under a
    SAVEPOINT, absorbs a concurrent duplicate without failing the caller.
    """

    def __init__(self, repository: PendencyRepository | None = None, *, enabled: bool | None = None) -> None:
        self._repository = repository or PendencyRepository()
        self._enabled = enabled

    def register(self, bus: InProcessEventBus) -> None:
        bus.subscribe(PENDENCY_RESOLVED, self)

    @property
    def enabled(self) -> bool:
        if self._enabled is not None:
            return self._enabled
        return get_settings().billing_automation_enabled

    def __call__(self, event: InternalEvent) -> None:
        if event.session is None:
            raise RuntimeError(f"{event.name} must be dispatched inside a unit of work")
        if not self.enabled:
            return

        payload = event.payload.get("payload", {})
        if payload.get("origin_type") != OriginType.SERVICE_ORDER:
            return
        if payload.get("previous_status") == PendencyStatus.DONE:
            return
        if payload.get("automation_key"):
            return

        self.derive_billing(
            event.session,
            source_id=str(payload["pendency_id"]),
            source_title=str(payload.get("title") or ""),
            origin_ref_id=payload.get("origin_ref_id"),
            actor_id=str(event.payload.get("actor_user_id")),
        )

    def derive_billing(
        self,
        session: Session,
        *,
        source_id: str,
        source_title: str,
        origin_ref_id: str | None,
        actor_id: str,
    ) -> Pendency | None:
        key = billing_automation_key(origin_ref_id, source_id)
        if self._repository.find_by_automation_key(session, key) is not None:
            observe_automation("skipped_existing")
            logger.info("billing_automation_skipped", extra={"pendency_id": source_id, "origin_ref_id": origin_ref_id})
            return None

        reference = origin_ref_id or source_title
        now = datetime.now(timezone.utc)
        billing = Pendency(
            title=f"Billing for service order #{reference}",
            description=f"Generated automatically after service order #{reference} was completed. Reference: {source_title}",
            type=PendencyType.FINANCIAL,
            status=PendencyStatus.PENDING,
            priority=PendencyPriority.MEDIUM,
            origin_type=OriginType.SERVICE_ORDER,
            origin_ref_id=origin_ref_id,
            created_by=actor_id,
            responsible_person_id=actor_id,
            responsible_sector_id=None,
            tags=[],
            automation_key=key,
            created_at=now,
            updated_at=now,
        )

        session.flush()
        try:
            with session.begin_nested():
                session.add(billing)
        except IntegrityError:
            observe_automation("skipped_duplicate")
            logger.warning("billing_automation_duplicate", extra={"pendency_id": source_id, "origin_ref_id": origin_ref_id})
            return None

        observe_automation("created")
        logger.info(
            "billing_automation_created",
            extra={"pendency_id": str(billing.id), "origin_ref_id": origin_ref_id, "actor_id": actor_id},
        )
        return billing


def build_pendency_event_bus(handler: BillingAutomationHandler | None = None) -> InProcessEventBus:
    bus = InProcessEventBus()
    (handler or BillingAutomationHandler()).register(bus)
    return bus
