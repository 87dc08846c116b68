from __future__ import annotations


class DomainError(Exception):
    """Base class for business errors raised by the pendency core."""


class ValidationError(DomainError):
    """A business rule rejected the requested change."""


class ForbiddenError(DomainError):
    """The actor is not allowed to perform the requested operation."""

    def __init__(self, message: str, *, permission: str | None = None) -> None:
        self.permission = permission
        super().__init__(message)
