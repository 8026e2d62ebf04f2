from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g

from app.dms.constants import Role
from app.dms.models import User

_ALL_ROLES = frozenset(Role)
_ACTING_ROLES = _ALL_ROLES - {Role.VIEWER}

# Roles are a closed set, so permissions are a static map rather than tables.
ROLE_PERMISSIONS: dict[str, frozenset[Role]] = {
    "docs.view": _ALL_ROLES,
    "docs.create": frozenset({Role.ADMIN, Role.AUTHOR, Role.QA}),
    "docs.edit": frozenset({Role.ADMIN, Role.AUTHOR, Role.QA}),
    "docs.version": frozenset({Role.ADMIN, Role.AUTHOR, Role.QA}),
    "workflow.act": _ACTING_ROLES,
    "docs.release": frozenset({Role.ADMIN, Role.QA}),
    "docs.archive": frozenset({Role.ADMIN, Role.QA}),
    "workflows.view": _ALL_ROLES,
    "workflows.manage": frozenset({Role.ADMIN, Role.QA}),
    "doc_types.view": _ALL_ROLES,
    "doc_types.manage": frozenset({Role.ADMIN, Role.QA}),
    "audit.view": _ALL_ROLES,
    "users.view": frozenset({Role.ADMIN}),
    "users.manage": frozenset({Role.ADMIN}),
}


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.enabled:
        return False
    allowed = ROLE_PERMISSIONS.get(permission_key)
    if allowed is None:
        return False
    return user.role_enum in allowed


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # Unauthenticated -> 401; authenticated but unauthorized -> 403
            if not user or not user.enabled:
                abort(401)
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
