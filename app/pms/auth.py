from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import (
    Blueprint,
    Response,
    current_app,
    flash,
    g,
    jsonify,
    make_response,
    redirect,
    render_template,
    request,
    url_for,
)

from app.pms.audit import record_event
from app.pms.db import db_session
from app.pms.models import User
from app.pms.security import issue_token, verify_password, verify_session_token

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def _cookie_name() -> str:
    return current_app.config.get("AUTH_COOKIE_NAME", "pms_session")


def set_auth_cookie(resp: Response, user: User) -> Response:
    hours = int(current_app.config.get("AUTH_SESSION_HOURS", 12))
    token = issue_token(
        current_app.config["AUTH_SECRET"],
        ttl_seconds=hours * 3600,
        sub=str(user.id),
        role=user.role,
        phone=user.phone,
    )
    resp.set_cookie(
        _cookie_name(),
        token,
        max_age=hours * 3600,
        httponly=True,
        samesite="Lax",
        secure=bool(current_app.config.get("SESSION_COOKIE_SECURE")),
        path="/",
    )
    return resp


def clear_auth_cookie(resp: Response) -> Response:
    resp.set_cookie(
        _cookie_name(),
        "",
        max_age=0,
        httponly=True,
        samesite="Lax",
        secure=bool(current_app.config.get("SESSION_COOKIE_SECURE")),
        path="/",
    )
    return resp


def set_portal_cookie(resp: Response, cookie_name: str, *, kind: str, subject_id: str) -> Response:
    """Tenant-portal session: signed {sub, kind, exp} token, valid PORTAL_SESSION_DAYS."""
    ttl = int(current_app.config.get("PORTAL_SESSION_DAYS", 7)) * 86400
    token = issue_token(current_app.config["AUTH_SECRET"], ttl_seconds=ttl, sub=subject_id, kind=kind)
    resp.set_cookie(
        cookie_name,
        token,
        max_age=ttl,
        httponly=True,
        samesite="Lax",
        secure=bool(current_app.config.get("SESSION_COOKIE_SECURE")),
        path="/",
    )
    return resp


def portal_subject(cookie_name: str, *, kind: str) -> str | None:
    payload = verify_session_token(request.cookies.get(cookie_name), current_app.config.get("AUTH_SECRET", ""))
    if not payload or payload.get("kind") != kind:
        return None
    return str(payload.get("sub") or "") or None


def current_session_payload() -> dict | None:
    payload = verify_session_token(request.cookies.get(_cookie_name()), current_app.config.get("AUTH_SECRET", ""))
    # Portal tokens carry `kind`; staff tokens never do.
    if not payload or "kind" in payload:
        return None
    return payload


def load_current_user() -> None:
    """
    Loads g.current_user from the signed auth cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    payload = current_session_payload()
    if not payload:
        return
    try:
        user_id = int(payload.get("sub") or 0)
    except (TypeError, ValueError):
        return

    try:
        user = db_session().get(User, user_id)
    except Exception as e:
        current_app.logger.error("load_current_user DB error (ignoring session): %s", e)
        return
    if user and user.is_active:
        g.current_user = user


def _authenticate(phone: str, password: str) -> User | None:
    s = db_session()
    user = s.query(User).filter(User.phone == phone).one_or_none()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=phone,
            reason="Invalid credentials",
            metadata={"phone": phone},
        )
        s.commit()
        return None
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return user


# ---------- Pages ----------
@bp.get("/auth/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/auth/login")
def login_post():
    phone = (request.form.get("phone") or "").strip()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))
    _record_attempt(ip)

    try:
        user = _authenticate(phone, password)
    except Exception:
        current_app.logger.exception("Login POST crashed (phone=%s request_id=%s)", phone, getattr(g, "request_id", None))
        raise
    if not user:
        flash("Invalid credentials.", "danger")
        return redirect(url_for("auth.login_get"))

    _login_attempts[ip].clear()
    # Optional "next" redirect (only allow local paths to avoid open redirects).
    target = nxt if nxt.startswith("/") and not nxt.startswith("//") else url_for("admin.index")
    return set_auth_cookie(redirect(target), user)


@bp.get("/auth/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    return clear_auth_cookie(redirect(url_for("routes.index")))


# ---------- JSON API ----------
@bp.post("/api/auth/login")
def api_login():
    payload = request.get_json(silent=True) or {}
    phone = str(payload.get("phone") or "").strip()
    password = str(payload.get("password") or "")
    if not phone or not password:
        return jsonify({"ok": False, "error": "Phone and password are required."}), 400

    ip = request.remote_addr or "unknown"
    if _check_rate_limit(ip):
        return jsonify({"ok": False, "error": "Too many login attempts. Please wait 5 minutes."}), 429
    _record_attempt(ip)

    user = _authenticate(phone, password)
    if not user:
        return jsonify({"ok": False, "error": "Invalid credentials."}), 401
    _login_attempts[ip].clear()
    return set_auth_cookie(jsonify({"ok": True, "role": user.role}), user)


@bp.get("/api/auth/session")
def api_session():
    payload = current_session_payload()
    if not payload:
        return jsonify({"authenticated": False})
    return jsonify({"authenticated": True, "phone": payload.get("phone"), "role": payload.get("role")})


@bp.post("/api/auth/logout")
def api_logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    return clear_auth_cookie(make_response(jsonify({"ok": True})))
