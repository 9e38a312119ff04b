from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import secrets
import time
from typing import Any

from flask import Request, session
from werkzeug.security import check_password_hash, generate_password_hash


# ---------- CSRF ----------
def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from form field or header."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    expected = session.get("csrf_token")
    return bool(token and expected and hmac.compare_digest(str(token), str(expected)))


# ---------- Signed session tokens ----------
def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _signature(body: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body.encode("ascii"), hashlib.sha256).digest()
    return _b64url_encode(digest)


def now_ms() -> int:
    return int(time.time() * 1000)


def sign_session_token(payload: dict[str, Any], secret: str) -> str:
    """
    Token format: base64url(JSON payload) "." base64url(HMAC-SHA256(body)).
    The payload must carry `exp` as epoch milliseconds.
    """
    if not secret:
        raise ValueError("AUTH_SECRET is not set")
    body = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return f"{body}.{_signature(body, secret)}"


def verify_session_token(token: str | None, secret: str, *, now: int | None = None) -> dict[str, Any] | None:
    """Return the payload, or None for a malformed, forged or expired token."""
    if not token or not secret or token.count(".") != 1:
        return None
    body, signature = token.split(".")
    if not body or not signature or not body.isascii() or not signature.isascii():
        return None
    if not hmac.compare_digest(_signature(body, secret).encode("ascii"), signature.encode("ascii")):
        return None
    try:
        payload = json.loads(_b64url_decode(body).decode("utf-8"))
    except (ValueError, binascii.Error, UnicodeDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    exp = payload.get("exp")
    if not isinstance(exp, (int, float)) or exp < (now if now is not None else now_ms()):
        return None
    return payload


def issue_token(secret: str, *, ttl_seconds: int, **claims: Any) -> str:
    return sign_session_token({**claims, "exp": now_ms() + ttl_seconds * 1000}, secret)


# ---------- Passwords ----------
# Legacy imported hashes look like "scrypt$<salt b64>$<hash b64>" (N=16384, r=8, p=1).
_LEGACY_SCRYPT = {"n": 16384, "r": 8, "p": 1}


def hash_password(password: str) -> str:
    return generate_password_hash(password, method="scrypt")


def verify_password(password: str, stored: str | None) -> bool:
    if not stored:
        return False
    if stored.startswith("scrypt$"):
        parts = stored.split("$")
        if len(parts) != 3 or not parts[1] or not parts[2]:
            return False
        try:
            salt = base64.b64decode(parts[1])
            expected = base64.b64decode(parts[2])
        except (ValueError, binascii.Error):
            return False
        actual = hashlib.scrypt(
            password.encode("utf-8"),
            salt=salt,
            dklen=len(expected),
            maxmem=64 * 1024 * 1024,
            **_LEGACY_SCRYPT,
        )
        return hmac.compare_digest(expected, actual)
    return check_password_hash(stored, password)
