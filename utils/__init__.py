from __future__ import annotations

from functools import wraps
from typing import Callable, TypeVar, Any, Optional, cast
from flask import abort, current_app, g, redirect, session

F = TypeVar("F", bound=Callable[..., Any])

ADMIN_ROLES = ("owner", "admin")


def current_user() -> Optional[dict]:
    """Return ``{"id", "role"}`` for the signed-in session, or ``None``.

    Admins come from ``session['admin_logged_in']`` (global admin) or a
    school user with an admin role; students from ``session['student_logged_in']``.
    """
    if session.get("admin_logged_in") or session.get("is_admin"):
        return {"id": session.get("user_id"), "role": "admin"}
    if session.get("user_logged_in") and session.get("role") in ADMIN_ROLES:
        return {"id": session.get("user_id"), "role": "admin"}
    if session.get("student_logged_in") and session.get("student_id"):
        return {"id": int(session["student_id"]), "role": "student"}
    return None


def role_required(*roles: str) -> Callable[[F], F]:
    """Decorator that requires a session whose role is one of ``roles``.

    - Anonymous requests are redirected to the first role's login page.
    - A signed-in user with another role gets a 403.
    - On success the user is available as ``g.current_user``.
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            user = current_user()
            if user is None:
                key = "STUDENT_LOGIN_URL" if roles[0] == "student" else "ADMIN_LOGIN_URL"
                return redirect(current_app.config.get(key) or "/login")
            if user["role"] not in roles:
                abort(403)
            g.current_user = user
            return func(*args, **kwargs)

        return cast(F, wrapper)

    return decorator


admin_required = role_required("admin")
student_required = role_required("student")
