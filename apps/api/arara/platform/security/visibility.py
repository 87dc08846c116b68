from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import ColumnElement, false, or_
from sqlalchemy.sql import Select

from arara.metrics import observe_visibility_denied_read
from arara.platform.security.context import ActorContext
from arara.platform.security.errors import VisibilityError
from arara.platform.security.policies import Permission, PermissionEvaluator, get_permission_evaluator


class ScopeRule(Protocol):
    """One way a record can become visible to an actor."""

    def clause(self, model: Any) -> ColumnElement[bool]:
        ...

    def matches(self, record: Any) -> bool:
        ...


@dataclass(frozen=True, slots=True)
class OwnershipScope:
    user_id: str
    owner_fields: tuple[str, ...] = ("created_by", "responsible_person_id")

    def clause(self, model: Any) -> ColumnElement[bool]:
        return or_(*(getattr(model, name) == self.user_id for name in self.owner_fields))

    def matches(self, record: Any) -> bool:
        return any(getattr(record, name, None) == self.user_id for name in self.owner_fields)


@dataclass(frozen=True, slots=True)
class SectorScope:
    sector_id: str
    sector_field: str = "responsible_sector_id"

    def clause(self, model: Any) -> ColumnElement[bool]:
        return getattr(model, self.sector_field) == self.sector_id

    def matches(self, record: Any) -> bool:
        return getattr(record, self.sector_field, None) == self.sector_id


@dataclass(frozen=True, slots=True)
class Visibility:
    """Read-scope predicate for one actor, built once per call.

    Records are visible when the scope is unrestricted or when any rule
    matches. An empty rule set hides everything.
    """

    resource: str
    unrestricted: bool = False
    rules: tuple[ScopeRule, ...] = ()

    def apply(self, query: Select[Any], model: Any) -> Select[Any]:
        if self.unrestricted:
            return query
        if not self.rules:
            return query.where(false())
        return query.where(or_(*(rule.clause(model) for rule in self.rules)))

    def allows(self, record: Any) -> bool:
        if self.unrestricted:
            return True
        return any(rule.matches(record) for rule in self.rules)

    def ensure_visible(self, record: Any, record_id: str) -> None:
        if self.allows(record):
            return
        observe_visibility_denied_read(self.resource)
        raise VisibilityError(self.resource, record_id)


def resolve_visibility(
    actor: ActorContext,
    *,
    resource: str = "pendency",
    evaluator: PermissionEvaluator | None = None,
) -> Visibility:
    evaluator = evaluator or get_permission_evaluator()
    if evaluator.has_permission(actor, Permission.READ_ALL):
        return Visibility(resource=resource, unrestricted=True)

    rules: list[ScopeRule] = [OwnershipScope(user_id=actor.user_id)]
    if actor.is_sector_wide and actor.employee is not None:
        rules.append(SectorScope(sector_id=actor.employee.sector_id))
    return Visibility(resource=resource, rules=tuple(rules))
