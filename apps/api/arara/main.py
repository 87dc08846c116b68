from __future__ import annotations

import logging

from arara.audit import DbAuditSink, InMemoryAuditSink, set_audit_sink
from arara.authz.service import seed_default_roles
from arara.core.config import get_settings
from arara.core.database import Base, SessionLocal, configure_database, session_scope
from arara.logging import configure_logging
from arara.models import AuditLog, Pendency, PendencyHistory, Role, RolePermission, Sector  # noqa: F401
from arara.org.directory import seed_default_sectors
from arara.otel import setup_otel
from arara.pendencies.service import PendencyService
from arara.platform.security.policies import (
    DEFAULT_ROLE_PERMISSIONS,
    DbRolePermissionSource,
    InMemoryRolePermissionSource,
    PermissionEvaluator,
    RolePermissionCache,
    set_permission_evaluator,
)

logger = logging.getLogger("arara.lifecycle")


def bootstrap(database_url: str | None = None, *, create_schema: bool = False, seed: bool = True) -> PendencyService:
    """Wire the process-wide collaborators and return a ready pendency service.

    Schema creation is left to Alembic unless ``create_schema`` is set.
    """

    configure_logging()
    settings = get_settings()
    setup_otel(settings.app_name, settings.otel_enabled)

    engine = configure_database(database_url)
    if create_schema:
        Base.metadata.create_all(bind=engine)

    if settings.authz_role_source == "db":
        source = DbRolePermissionSource(SessionLocal)
    else:
        source = InMemoryRolePermissionSource(DEFAULT_ROLE_PERMISSIONS)
    evaluator = PermissionEvaluator(RolePermissionCache(source), elevated_role=settings.elevated_role_name)
    set_permission_evaluator(evaluator)

    if settings.audit_sink == "db":
        set_audit_sink(DbAuditSink(SessionLocal))
    else:
        set_audit_sink(InMemoryAuditSink())

    if seed:
        with session_scope() as session:
            roles_added = seed_default_roles(session)
            sectors_added = seed_default_sectors(session)
        logger.info("seed_completed", extra={"details": {"roles": roles_added, "sectors": sectors_added}})

    logger.info(
        "bootstrap_completed",
        extra={"details": {"role_source": settings.authz_role_source, "audit_sink": settings.audit_sink}},
    )
    return PendencyService(evaluator=evaluator)
