from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from arara import audit, events
from arara.context import operation_context
from arara.core.errors import ValidationError
from arara.core.events import InProcessEventBus
from arara.metrics import observe_pendency_mutation, observe_pendency_transition
from arara.org.directory import DbSectorDirectory, SectorDirectory
from arara.otel import get_tracer, operation_span
from arara.pendencies.automation import PENDENCY_RESOLVED, build_pendency_event_bus, resolved_event_payload
from arara.pendencies.lifecycle import LifecycleRules, UpdatePlan, apply_plan
from arara.pendencies.models import OriginType, Pendency, PendencyHistory, PendencyPriority, PendencyStatus
from arara.pendencies.repository import PendencyRepository
from arara.pendencies.schemas import (
    PendencyCreate,
    PendencyFilters,
    PendencyHistoryRead,
    PendencyRead,
    PendencyUpdate,
)
from arara.platform.security.context import ActorContext
from arara.platform.security.policies import Permission, PermissionEvaluator, get_permission_evaluator
from arara.platform.security.visibility import resolve_visibility

logger = logging.getLogger("arara.pendencies")
tracer = get_tracer("arara.pendencies")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class PendencyService:
    repository: PendencyRepository = field(default_factory=PendencyRepository)
    sector_directory: SectorDirectory = field(default_factory=DbSectorDirectory)
    evaluator: PermissionEvaluator | None = None
    event_bus: InProcessEventBus = field(default_factory=build_pendency_event_bus)

    def create(self, session: Session, actor: ActorContext, dto: PendencyCreate) -> PendencyRead:
        with operation_context(actor.user_id, actor.correlation_id), operation_span(
            tracer,
            "pendency.create",
            actor_id=actor.user_id,
            correlation_id=actor.correlation_id,
            origin_type=str(dto.origin_type),
        ) as span:
            try:
                pendency = self._create(session, actor, dto)
            except Exception as exc:
                session.rollback()
                observe_pendency_mutation("create", "failure")
                span.set_attribute("success", False)
                audit.record(
                    actor_id=actor.user_id,
                    action="PENDENCY_CREATE_FAILED",
                    target_id="new",
                    success=False,
                    details={"title": dto.title, "error": str(exc)},
                    correlation_id=actor.correlation_id,
                )
                raise

            created = PendencyRead.model_validate(pendency)
            span.set_attribute("pendency_id", str(created.id))
            span.set_attribute("success", True)
            observe_pendency_mutation("create", "success")
            audit.record(
                actor_id=actor.user_id,
                action="PENDENCY_CREATED",
                target_id=str(created.id),
                details={"title": created.title, "origin_type": str(created.origin_type)},
                correlation_id=actor.correlation_id,
            )
            events.publish(
                "pendency.created",
                {"pendency_id": str(created.id), "origin_type": str(created.origin_type)},
                actor_id=actor.user_id,
                correlation_id=actor.correlation_id,
                occurred_at=created.created_at,
            )
        return created

    def update(
        self,
        session: Session,
        actor: ActorContext,
        pendency_id: uuid.UUID,
        dto: PendencyUpdate,
    ) -> PendencyRead | None:
        requested = sorted(dto.model_fields_set)
        with operation_context(actor.user_id, actor.correlation_id), operation_span(
            tracer,
            "pendency.update",
            actor_id=actor.user_id,
            correlation_id=actor.correlation_id,
            pendency_id=str(pendency_id),
        ) as span:
            try:
                result = self._update(session, actor, pendency_id, dto)
            except Exception as exc:
                session.rollback()
                observe_pendency_mutation("update", "failure")
                span.set_attribute("success", False)
                audit.record(
                    actor_id=actor.user_id,
                    action="PENDENCY_UPDATE_FAILED",
                    target_id=str(pendency_id),
                    success=False,
                    details={"changes": requested, "error": str(exc)},
                    correlation_id=actor.correlation_id,
                )
                raise

            span.set_attribute("success", result is not None)
            if result is None:
                observe_pendency_mutation("update", "not_found")
                audit.record(
                    actor_id=actor.user_id,
                    action="PENDENCY_UPDATE_FAILED",
                    target_id=str(pendency_id),
                    success=False,
                    details={"changes": requested, "error": "pendency not found"},
                    correlation_id=actor.correlation_id,
                )
                return None

            updated, plan, previous_status = result
            observe_pendency_mutation("update", "success")
            details: dict[str, Any] = {"changes": plan.changed_fields, "from": previous_status}
            if plan.transition is not None:
                details["to"] = str(plan.transition.new)
            audit.record(
                actor_id=actor.user_id,
                action="PENDENCY_UPDATED",
                target_id=str(updated.id),
                details=details,
                correlation_id=actor.correlation_id,
            )
            if not plan.is_empty:
                events.publish(
                    "pendency.updated",
                    {"pendency_id": str(updated.id), **details},
                    actor_id=actor.user_id,
                    correlation_id=actor.correlation_id,
                    occurred_at=updated.updated_at,
                )
        return updated

    def get_by_id(self, session: Session, actor: ActorContext, pendency_id: uuid.UUID) -> PendencyRead | None:
        pendency = self._get_visible(session, actor, pendency_id)
        if pendency is None:
            return None
        return PendencyRead.model_validate(pendency)

    def list(self, session: Session, actor: ActorContext, filters: PendencyFilters | None = None) -> list[PendencyRead]:
        with operation_span(tracer, "pendency.list", actor_id=actor.user_id, correlation_id=actor.correlation_id) as span:
            visibility = resolve_visibility(actor, resource=self.repository.resource, evaluator=self._evaluator())
            span.set_attribute("unrestricted", visibility.unrestricted)
            rows = self.repository.list_visible(session, visibility, filters)
            span.set_attribute("result_count", len(rows))
        return [PendencyRead.model_validate(row) for row in rows]

    def list_history(
        self,
        session: Session,
        actor: ActorContext,
        pendency_id: uuid.UUID,
    ) -> list[PendencyHistoryRead] | None:
        pendency = self._get_visible(session, actor, pendency_id)
        if pendency is None:
            return None
        return [PendencyHistoryRead.model_validate(row) for row in self.repository.list_history(session, pendency.id)]

    def _create(self, session: Session, actor: ActorContext, dto: PendencyCreate) -> Pendency:
        self._evaluator().assert_permission(actor, Permission.CREATE)

        title = dto.title.strip()
        if not title:
            raise ValidationError("title is required")

        if dto.responsible_sector_id and not self.sector_directory.is_active(session, dto.responsible_sector_id):
            raise ValidationError(f"responsible sector '{dto.responsible_sector_id}' is invalid or inactive")

        responsible_person_id = dto.responsible_person_id
        responsible_sector_id = dto.responsible_sector_id
        if dto.origin_type == OriginType.SERVICE_ORDER:
            responsible_person_id = actor.user_id
            responsible_sector_id = None
        elif not responsible_person_id and not responsible_sector_id:
            raise ValidationError("a manual pendency must be assigned to a person or a sector")

        now = utcnow()
        pendency = Pendency(
            title=title,
            description=dto.description,
            type=dto.type,
            status=PendencyStatus.PENDING,
            priority=dto.priority or PendencyPriority.MEDIUM,
            origin_type=dto.origin_type,
            origin_ref_id=dto.origin_ref_id,
            created_by=actor.user_id,
            responsible_person_id=responsible_person_id,
            responsible_sector_id=responsible_sector_id,
            due_date=dto.due_date,
            tags=list(dto.tags),
            created_at=now,
            updated_at=now,
        )
        session.add(pendency)
        session.commit()
        session.refresh(pendency)
        return pendency

    def _update(
        self,
        session: Session,
        actor: ActorContext,
        pendency_id: uuid.UUID,
        dto: PendencyUpdate,
    ) -> tuple[PendencyRead, UpdatePlan, str] | None:
        pendency = self.repository.get_for_update(session, pendency_id)
        if pendency is None:
            session.rollback()
            return None

        previous_status = str(pendency.status)
        plan = LifecycleRules(self._evaluator()).plan_update(pendency, dto, actor)

        sector_id = plan.reassigned_sector
        if sector_id and not self.sector_directory.is_active(session, sector_id):
            raise ValidationError(f"responsible sector '{sector_id}' is invalid or inactive")

        if plan.is_empty:
            unchanged = PendencyRead.model_validate(pendency)
            session.rollback()
            return unchanged, plan, previous_status

        now = utcnow()
        apply_plan(pendency, plan, now)

        transition = plan.transition
        if transition is not None:
            self.repository.add_history(
                session,
                PendencyHistory(
                    pendency_id=pendency.id,
                    actor_id=actor.user_id,
                    old_status=transition.old,
                    new_status=transition.new,
                    observation=plan.conclusion_text or None,
                    created_at=now,
                ),
            )
            if transition.new == PendencyStatus.DONE:
                self.event_bus.publish(
                    PENDENCY_RESOLVED,
                    resolved_event_payload(pendency, previous_status=previous_status, actor_id=actor.user_id, occurred_at=now),
                    session=session,
                )

        session.commit()
        session.refresh(pendency)

        if transition is not None:
            observe_pendency_transition(str(transition.old), str(transition.new))
            logger.info(
                "pendency_transition",
                extra={
                    "pendency_id": str(pendency.id),
                    "actor_id": actor.user_id,
                    "from_status": str(transition.old),
                    "to_status": str(transition.new),
                },
            )
        return PendencyRead.model_validate(pendency), plan, previous_status

    def _get_visible(self, session: Session, actor: ActorContext, pendency_id: uuid.UUID) -> Pendency | None:
        pendency = self.repository.get(session, pendency_id)
        if pendency is None:
            return None
        visibility = resolve_visibility(actor, resource=self.repository.resource, evaluator=self._evaluator())
        visibility.ensure_visible(pendency, str(pendency_id))
        return pendency

    def _evaluator(self) -> PermissionEvaluator:
        return self.evaluator or get_permission_evaluator()


pendency_service = PendencyService()
