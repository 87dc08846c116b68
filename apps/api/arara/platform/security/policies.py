from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from enum import StrEnum
from threading import Lock
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from arara.authz.models import Role, RolePermission
from arara.core.database import SessionLocal
from arara.metrics import (
    observe_permission_denied,
    observe_role_cache_hit,
    observe_role_cache_invalidation,
    observe_role_cache_miss,
)
from arara.platform.security.context import ActorContext
from arara.platform.security.errors import PermissionDeniedError

logger = logging.getLogger("arara.authz")


class Permission(StrEnum):
    READ_ALL = "PENDENCY:READ_ALL"
    CREATE = "PENDENCY:CREATE"
    EDIT = "PENDENCY:EDIT"
    MOVE = "PENDENCY:MOVE"
    RESOLVE = "PENDENCY:RESOLVE"
    CANCEL = "PENDENCY:CANCEL"
    ASSIGN_RESPONSIBLE = "PENDENCY:ASSIGN_RESPONSIBLE"
    MANAGE_USERS = "USER:MANAGE"
    CREATE_SERVICE_ORDER = "SERVICE_ORDER:CREATE"


RoleMap = dict[str, frozenset[Permission]]


def parse_permissions(tags: Iterable[str], *, role_name: str = "") -> frozenset[Permission]:
    """Convert stored tags into the closed enum, dropping anything unknown."""

    parsed: set[Permission] = set()
    for tag in tags:
        try:
            parsed.add(Permission(tag))
        except ValueError:
            logger.warning("unknown_permission_tag", extra={"permission": tag, "role_name": role_name})
    return frozenset(parsed)


class RolePermissionSource(Protocol):
    """Read-only role name -> permission set lookup."""

    def load(self) -> RoleMap:
        ...


class InMemoryRolePermissionSource:
    def __init__(self, role_permissions: Mapping[str, Iterable[str]] | None = None) -> None:
        self._role_permissions = dict(role_permissions or {})

    def load(self) -> RoleMap:
        return {name: parse_permissions(tags, role_name=name) for name, tags in self._role_permissions.items()}

    def set_role(self, role_name: str, permissions: Iterable[str]) -> None:
        self._role_permissions[role_name] = list(permissions)


class DbRolePermissionSource:
    """Resolves role permissions from the authz tables."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    def load(self) -> RoleMap:
        with self._session_factory() as session:
            rows = session.execute(
                select(Role.name, RolePermission.permission).outerjoin(RolePermission, RolePermission.role_id == Role.id)
            ).all()

        grouped: dict[str, list[str]] = {}
        for name, permission in rows:
            tags = grouped.setdefault(str(name), [])
            if permission is not None:
                tags.append(str(permission))
        return {name: parse_permissions(tags, role_name=name) for name, tags in grouped.items()}


class RolePermissionCache:
    """Process-wide role map cache with an explicit invalidation hook."""

    def __init__(self, source: RolePermissionSource) -> None:
        self._source = source
        self._lock = Lock()
        self._role_map: RoleMap | None = None

    def role_map(self) -> RoleMap:
        with self._lock:
            if self._role_map is not None:
                observe_role_cache_hit()
                return self._role_map
            observe_role_cache_miss()
            self._role_map = self._source.load()
            return self._role_map

    def invalidate(self) -> None:
        with self._lock:
            self._role_map = None
        observe_role_cache_invalidation()
        logger.info("role_cache_invalidated")


class PermissionEvaluator:
    def __init__(self, cache: RolePermissionCache, *, elevated_role: str = "ADMIN") -> None:
        self.cache = cache
        self.elevated_role = elevated_role

    def permissions_for(self, actor: ActorContext) -> frozenset[Permission]:
        role_map = self.cache.role_map()
        granted: set[Permission] = set()
        for role in actor.roles:
            granted.update(role_map.get(role, frozenset()))
        return frozenset(granted)

    def has_permission(self, actor: ActorContext, permission: Permission) -> bool:
        return permission in self.permissions_for(actor)

    def assert_permission(self, actor: ActorContext, permission: Permission) -> None:
        if self.has_permission(actor, permission):
            return
        observe_permission_denied(permission.value)
        logger.info("permission_denied", extra={"actor_id": actor.user_id, "permission": permission.value})
        raise PermissionDeniedError(permission.value)

    def has_elevated_role(self, actor: ActorContext) -> bool:
        return self.elevated_role in actor.roles


DEFAULT_ROLE_PERMISSIONS: dict[str, list[str]] = {
    "ADMIN": [
        Permission.READ_ALL,
        Permission.CREATE,
        Permission.EDIT,
        Permission.MOVE,
        Permission.RESOLVE,
        Permission.CANCEL,
        Permission.ASSIGN_RESPONSIBLE,
        Permission.MANAGE_USERS,
        Permission.CREATE_SERVICE_ORDER,
    ],
    "OPERATOR": [
        Permission.READ_ALL,
        Permission.CREATE,
        Permission.EDIT,
        Permission.MOVE,
        Permission.RESOLVE,
        Permission.ASSIGN_RESPONSIBLE,
        Permission.CREATE_SERVICE_ORDER,
    ],
    "USER": [Permission.CREATE, Permission.CANCEL],
    "SYSTEM": [Permission.READ_ALL, Permission.CREATE],
}


_EVALUATOR = PermissionEvaluator(RolePermissionCache(InMemoryRolePermissionSource(DEFAULT_ROLE_PERMISSIONS)))
_EVALUATOR_LOCK = Lock()
_invalidation_hooks: list[Callable[[], None]] = []


def get_permission_evaluator() -> PermissionEvaluator:
    """Get the active permission evaluator instance."""

    return _EVALUATOR


def set_permission_evaluator(evaluator: PermissionEvaluator) -> None:
    """Set the active permission evaluator instance."""

    global _EVALUATOR
    with _EVALUATOR_LOCK:
        _EVALUATOR = evaluator


def register_role_invalidation_hook(hook: Callable[[], None]) -> None:
    _invalidation_hooks.append(hook)


def clear_role_invalidation_hooks() -> None:
    _invalidation_hooks.clear()


def notify_role_changed() -> None:
    """Invalidate the active evaluator's cache and run any registered hooks."""

    get_permission_evaluator().cache.invalidate()
    for hook in list(_invalidation_hooks):
        hook()
