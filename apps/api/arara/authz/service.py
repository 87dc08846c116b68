from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from arara.authz.models import Role, RolePermission
from arara.authz.schemas import RoleCreate, RoleRead
from arara.core.errors import ForbiddenError, ValidationError
from arara.platform.security.context import ActorContext
from arara.platform.security.policies import (
    DEFAULT_ROLE_PERMISSIONS,
    Permission,
    get_permission_evaluator,
    notify_role_changed,
)

logger = logging.getLogger("arara.authz")


class RoleAdminService:
    """Write path of the role store.

    Every committed change fires the role invalidation hook so permission
    checks never run against a stale role map.
    """

    def create_role(self, session: Session, actor: ActorContext, dto: RoleCreate) -> RoleRead:
        self._require_elevated(actor)
        name = dto.name.strip()
        if not name:
            raise ValidationError("role name is required")
        if session.scalar(select(Role).where(Role.name == name)) is not None:
            raise ValidationError(f"role '{name}' already exists")

        role = Role(name=name, description=dto.description, is_system=False)
        role.permissions = [RolePermission(permission=permission.value) for permission in set(dto.permissions)]
        session.add(role)
        self._commit(session, name)
        return self._to_read(self._get_role(session, name))

    def set_role_permissions(
        self,
        session: Session,
        actor: ActorContext,
        role_name: str,
        permissions: Iterable[Permission],
    ) -> RoleRead:
        self._require_elevated(actor)
        role = self._get_role(session, role_name)
        role.permissions = [RolePermission(permission=permission.value) for permission in set(permissions)]
        self._commit(session, role_name)
        return self._to_read(self._get_role(session, role_name))

    def rename_role(self, session: Session, actor: ActorContext, role_name: str, new_name: str) -> RoleRead:
        self._require_elevated(actor)
        role = self._get_role(session, role_name)
        new_name = new_name.strip()
        if not new_name:
            raise ValidationError("role name is required")
        if new_name == role.name:
            return self._to_read(role)
        if role.is_system:
            raise ValidationError("system roles cannot be renamed")
        if session.scalar(select(Role).where(Role.name == new_name)) is not None:
            raise ValidationError(f"role '{new_name}' already exists")

        role.name = new_name
        self._commit(session, new_name)
        return self._to_read(self._get_role(session, new_name))

    def delete_role(self, session: Session, actor: ActorContext, role_name: str) -> None:
        self._require_elevated(actor)
        role = self._get_role(session, role_name)
        if role.is_system:
            raise ValidationError("system roles cannot be deleted")

        session.delete(role)
        self._commit(session, role_name)

    def list_roles(self, session: Session) -> list[RoleRead]:
        rows = session.scalars(select(Role).options(selectinload(Role.permissions)).order_by(Role.name.asc())).all()
        return [self._to_read(row) for row in rows]

    def _commit(self, session: Session, role_name: str) -> None:
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise ValidationError(f"role '{role_name}' conflicts with an existing role")
        logger.info("role_changed", extra={"role_name": role_name})
        notify_role_changed()

    def _get_role(self, session: Session, role_name: str) -> Role:
        role = session.scalar(select(Role).where(Role.name == role_name).options(selectinload(Role.permissions)))
        if role is None:
            raise ValidationError(f"role '{role_name}' not found")
        return role

    def _require_elevated(self, actor: ActorContext) -> None:
        if not get_permission_evaluator().has_elevated_role(actor):
            raise ForbiddenError("only administrators can manage roles")

    @staticmethod
    def _to_read(role: Role) -> RoleRead:
        return RoleRead(
            id=role.id,
            name=role.name,
            description=role.description,
            is_system=role.is_system,
            permissions=[Permission(code) for code in role.permission_codes],
            created_at=role.created_at,
        )


def seed_default_roles(session: Session) -> int:
    """Insert the built-in system roles that are missing. Returns how many were added."""

    existing = set(session.scalars(select(Role.name)).all())
    added = 0
    for name, permissions in DEFAULT_ROLE_PERMISSIONS.items():
        if name in existing:
            continue
        role = Role(name=name, is_system=True)
        role.permissions = [RolePermission(permission=str(permission)) for permission in permissions]
        session.add(role)
        added += 1
    if added:
        session.commit()
        notify_role_changed()
    return added


role_admin_service = RoleAdminService()
