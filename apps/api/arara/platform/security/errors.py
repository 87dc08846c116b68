from __future__ import annotations

from arara.core.errors import ForbiddenError


class PermissionDeniedError(ForbiddenError):
    """Raised when the actor's roles do not grant a required permission tag."""

    def __init__(self, permission: str) -> None:
        super().__init__(f"Missing permission: {permission}", permission=permission)


class VisibilityError(ForbiddenError):
    """Raised when a record exists but lies outside the actor's read scope."""

    def __init__(self, resource: str, record_id: str) -> None:
        self.resource = resource
        self.record_id = record_id
        super().__init__(f"Not allowed to view {resource} '{record_id}'")
