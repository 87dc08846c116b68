from arara.platform.security.context import ActorContext, EmployeeAttributes, VisibilityScope
from arara.platform.security.errors import PermissionDeniedError, VisibilityError
from arara.platform.security.policies import (
    DbRolePermissionSource,
    InMemoryRolePermissionSource,
    Permission,
    PermissionEvaluator,
    RolePermissionCache,
    RolePermissionSource,
    get_permission_evaluator,
    notify_role_changed,
    register_role_invalidation_hook,
    set_permission_evaluator,
)
from arara.platform.security.visibility import OwnershipScope, SectorScope, Visibility, resolve_visibility

__all__ = [
    "ActorContext",
    "EmployeeAttributes",
    "VisibilityScope",
    "PermissionDeniedError",
    "VisibilityError",
    "Permission",
    "PermissionEvaluator",
    "RolePermissionCache",
    "RolePermissionSource",
    "InMemoryRolePermissionSource",
    "DbRolePermissionSource",
    "get_permission_evaluator",
    "set_permission_evaluator",
    "notify_role_changed",
    "register_role_invalidation_hook",
    "OwnershipScope",
    "SectorScope",
    "Visibility",
    "resolve_visibility",
]
