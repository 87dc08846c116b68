"""Status machine and update guards for pendencies.

PENDING -> IN_PROGRESS -> {DONE, CLOSED_WITHOUT_RESOLUTION}; CANCELLED is
reachable from any non-terminal status and every terminal status can be
reopened. Guards only inspect state: nothing here touches the session, so a
rejected update leaves no trace on the record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from arara.core.errors import ForbiddenError, ValidationError
from arara.pendencies.models import ConclusionKind, OriginType, Pendency, PendencyStatus
from arara.pendencies.schemas import PendencyUpdate
from arara.platform.security.context import ActorContext
from arara.platform.security.policies import Permission, PermissionEvaluator

TERMINAL_STATUSES = frozenset(
    {
        PendencyStatus.DONE,
        PendencyStatus.CLOSED_WITHOUT_RESOLUTION,
        PendencyStatus.CANCELLED,
    }
)

RESOLUTION_KINDS: dict[PendencyStatus, ConclusionKind] = {
    PendencyStatus.DONE: ConclusionKind.RESOLVED,
    PendencyStatus.CLOSED_WITHOUT_RESOLUTION: ConclusionKind.UNRESOLVED,
}

CONTENT_FIELDS = ("title", "description", "type", "priority", "due_date", "tags")
ATTRIBUTION_FIELDS = ("responsible_person_id", "responsible_sector_id")
_NON_NULLABLE_FIELDS = {"title", "type", "priority", "tags"}


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def _comparable(value: Any) -> Any:
    # Naive timestamps are read back from backends that drop the offset; they hold UTC.
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return value


@dataclass(frozen=True, slots=True)
class Transition:
    old: PendencyStatus
    new: PendencyStatus

    @property
    def is_resolution(self) -> bool:
        return self.new in RESOLUTION_KINDS

    @property
    def is_cancellation(self) -> bool:
        return self.new == PendencyStatus.CANCELLED

    @property
    def is_reopening(self) -> bool:
        return is_terminal(self.old) and not is_terminal(self.new)

    @property
    def required_permission(self) -> Permission:
        if self.is_resolution:
            return Permission.RESOLVE
        if self.is_cancellation:
            return Permission.CANCEL
        return Permission.MOVE


@dataclass(slots=True)
class UpdatePlan:
    changes: dict[str, Any] = field(default_factory=dict)
    transition: Transition | None = None
    conclusion_text: str | None = None
    conclusion_changed: bool = False

    @property
    def changed_fields(self) -> list[str]:
        names = list(self.changes)
        if self.conclusion_changed:
            names.append("conclusion_text")
        if self.transition is not None:
            names.append("status")
        return names

    @property
    def is_empty(self) -> bool:
        return not self.changed_fields

    @property
    def reassigned_sector(self) -> str | None:
        return self.changes.get("responsible_sector_id")


class LifecycleRules:
    def __init__(self, evaluator: PermissionEvaluator) -> None:
        self._evaluator = evaluator

    def plan_update(self, pendency: Pendency, dto: PendencyUpdate, actor: ActorContext) -> UpdatePlan:
        """Evaluate every guard and return the changes to apply.

        Raises on the first failing guard, in this order: status change,
        content edit, attribution, closed-item conclusion.
        """

        provided = dto.model_dump(exclude_unset=True)
        plan = UpdatePlan()

        for name in CONTENT_FIELDS + ATTRIBUTION_FIELDS:
            if name not in provided:
                continue
            value = provided[name]
            if value is None and name in _NON_NULLABLE_FIELDS:
                continue
            if name == "title":
                value = value.strip()
            if _comparable(value) != _comparable(getattr(pendency, name)):
                plan.changes[name] = value

        new_status = provided.get("status")
        if new_status is not None and new_status != pendency.status:
            plan.transition = Transition(old=PendencyStatus(pendency.status), new=PendencyStatus(new_status))

        conclusion = provided.get("conclusion_text")
        if conclusion is not None:
            plan.conclusion_text = conclusion
            plan.conclusion_changed = conclusion != pendency.conclusion_text

        if plan.transition is not None:
            self._check_status_change(pendency, plan.transition, conclusion, actor)

        if any(name in plan.changes for name in CONTENT_FIELDS):
            self._evaluator.assert_permission(actor, Permission.EDIT)
        if plan.changes.get("title") == "":
            raise ValidationError("title is required")

        if any(name in plan.changes for name in ATTRIBUTION_FIELDS):
            self._evaluator.assert_permission(actor, Permission.ASSIGN_RESPONSIBLE)

        reopening = plan.transition is not None and plan.transition.is_reopening
        if plan.conclusion_changed and is_terminal(pendency.status) and not reopening:
            raise ForbiddenError("conclusion of a closed pendency cannot be edited")

        return plan

    def _check_status_change(
        self,
        pendency: Pendency,
        transition: Transition,
        conclusion: str | None,
        actor: ActorContext,
    ) -> None:
        self._evaluator.assert_permission(actor, transition.required_permission)

        if transition.is_resolution:
            if pendency.origin_type == OriginType.MANUAL and not (conclusion and conclusion.strip()):
                raise ValidationError("a conclusion is required to close a manual pendency")
            return

        if transition.is_cancellation:
            elevated = self._evaluator.has_elevated_role(actor)
            if not elevated and pendency.created_by != actor.user_id:
                raise ForbiddenError("only the creator can cancel this pendency")
            if not elevated and transition.old in RESOLUTION_KINDS:
                raise ForbiddenError("a resolved pendency cannot be cancelled")


def apply_plan(pendency: Pendency, plan: UpdatePlan, now: datetime) -> None:
    for name, value in plan.changes.items():
        setattr(pendency, name, value)

    if plan.conclusion_changed:
        pendency.conclusion_text = plan.conclusion_text

    transition = plan.transition
    if transition is not None:
        pendency.status = transition.new
        if transition.is_resolution:
            pendency.completed_at = now
            pendency.conclusion_kind = RESOLUTION_KINDS[transition.new]
        elif transition.is_cancellation:
            pendency.completed_at = now
            pendency.conclusion_kind = None
        elif transition.is_reopening:
            pendency.completed_at = None
            pendency.conclusion_kind = None

    pendency.updated_at = now
