from arara.authz.models import Role, RolePermission

__all__ = [
    "Role",
    "RolePermission",
]
