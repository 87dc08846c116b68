from arara.platform.security import ActorContext, Permission, PermissionEvaluator

__all__ = ["ActorContext", "Permission", "PermissionEvaluator"]
