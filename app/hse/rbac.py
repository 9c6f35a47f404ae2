from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, current_app, g

from app.hse.models import User


def user_permissions(user: User | None) -> frozenset[str]:
    """Union of permission keys over the user's roles; empty for anonymous or deactivated users."""
    if not user or not user.is_active:
        return frozenset()
    return frozenset(p.key for role in user.roles for p in role.permissions)


def user_has_permission(user: User | None, *keys: str) -> bool:
    """True when the user holds at least one of ``keys``."""
    granted = user_permissions(user)
    return any(k in granted for k in keys)


def require_permission(*keys: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Guard a view: 401 without a live session, 403 when none of ``keys`` is granted.

    The first key is reported back to the client as the missing permission.
    """
    if not keys:
        raise ValueError("require_permission needs at least one permission key")

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                abort(401)
            if not user_has_permission(user, *keys):
                current_app.logger.info("Permission denied user=%s needs=%s view=%s", user.email, "|".join(keys), fn.__name__)
                g.missing_permission = keys[0]
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
