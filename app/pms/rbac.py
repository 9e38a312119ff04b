from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, jsonify, redirect, request, url_for

from app.pms.models import User

ALL_PERMISSIONS: tuple[str, ...] = (
    "dashboard.view",
    "tenants.view",
    "tenants.edit",
    "tenants.import",
    "onboarding.view",
    "onboarding.edit",
    "properties.view",
    "properties.edit",
    "banking.view",
    "banking.edit",
    "readings.view",
    "readings.edit",
    "reports.view",
    "reports.export",
    "settings.view",
    "settings.edit",
    "sms.send",
    "users.manage",
)

# Reception staff run the front desk: onboarding, readings, reminders. Admins get everything.
ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "admin": frozenset(ALL_PERMISSIONS),
    "reception": frozenset(
        {
            "dashboard.view",
            "tenants.view",
            "onboarding.view",
            "onboarding.edit",
            "properties.view",
            "banking.view",
            "readings.view",
            "readings.edit",
            "reports.view",
            "settings.view",
            "sms.send",
        }
    ),
}


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    return permission_key in ROLE_PERMISSIONS.get(user.role, frozenset())


def _is_api_request() -> bool:
    return request.path.startswith("/api/")


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                if _is_api_request():
                    return jsonify({"ok": False, "error": "Unauthorized."}), 401
                nxt = request.full_path or request.path
                # Avoid trailing '?' from full_path when there is no query string.
                if nxt.endswith("?"):
                    nxt = nxt[:-1]
                return redirect(url_for("auth.login_get", next=nxt))
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
