from arara.models.audit import AuditLog
from arara.authz.models import Role, RolePermission
from arara.org.models import Sector
from arara.pendencies.models import Pendency, PendencyHistory

__all__ = [
    "AuditLog",
    "Role",
    "RolePermission",
    "Sector",
    "Pendency",
    "PendencyHistory",
]
