from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class VisibilityScope(StrEnum):
    INDIVIDUAL = "INDIVIDUAL"
    SECTOR_WIDE = "SECTOR_WIDE"


@dataclass(frozen=True, slots=True)
class EmployeeAttributes:
    """Organizational attributes of the employee linked to a user."""

    sector_id: str
    position_id: str | None = None
    scope: VisibilityScope = VisibilityScope.INDIVIDUAL


@dataclass(frozen=True, slots=True)
class ActorContext:
    """Authenticated caller identity, treated as immutable for the whole call."""

    user_id: str
    roles: frozenset[str] = field(default_factory=frozenset)
    employee: EmployeeAttributes | None = None
    correlation_id: str | None = None

    @classmethod
    def build(
        cls,
        user_id: str,
        roles: list[str] | tuple[str, ...] | set[str] | frozenset[str] = (),
        *,
        employee: EmployeeAttributes | None = None,
        correlation_id: str | None = None,
    ) -> ActorContext:
        return cls(user_id=user_id, roles=frozenset(roles), employee=employee, correlation_id=correlation_id)

    @property
    def is_sector_wide(self) -> bool:
        return self.employee is not None and self.employee.scope == VisibilityScope.SECTOR_WIDE
