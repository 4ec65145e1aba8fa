from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.meyden.constants import ADMIN_ROLES, ROLE_PERMISSIONS
from app.meyden.errors import Forbidden, Unauthorized
from app.meyden.models import User


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    return permission_key in ROLE_PERMISSIONS.get(user.role, frozenset())


def is_admin(user: User | None) -> bool:
    return bool(user and user.role in ADMIN_ROLES)


def current_user() -> User:
    """The authenticated user; raises 401 when there is none."""
    user: User | None = getattr(g, "current_user", None)
    if user is None:
        code = getattr(g, "auth_error", None) or "AUTH_REQUIRED"
        raise Unauthorized(_AUTH_MESSAGES.get(code, "Authentication required"), code=code)
    return user


_AUTH_MESSAGES = {
    "TOKEN_MISSING": "Access token required",
    "TOKEN_INVALID": "Invalid or expired token",
    "SESSION_INVALID": "Session expired or invalid",
    "AUTH_REQUIRED": "Authentication required",
}


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        current_user()
        return fn(*args, **kwargs)

    return wrapped


def require_active_user(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user = current_user()
        if not user.is_active:
            raise Forbidden("Account is not active", code="ACCOUNT_INACTIVE", status=user.status)
        return fn(*args, **kwargs)

    return wrapped


def require_role(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            if user.role not in roles:
                raise Forbidden(
                    "Insufficient permissions",
                    code="INSUFFICIENT_PERMISSIONS",
                    required=list(roles),
                    current=user.role,
                )
            return fn(*args, **kwargs)

        return wrapped

    return decorator


require_admin = require_role(*ADMIN_ROLES)


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            # Authenticated but unauthorized -> 403
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                raise Forbidden(
                    "Insufficient permissions",
                    code="INSUFFICIENT_PERMISSIONS",
                    required=permission_key,
                    current=user.role,
                )
            return fn(*args, **kwargs)

        return wrapped

    return decorator
