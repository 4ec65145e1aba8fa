from __future__ import annotations

import calendar
import hashlib
import hmac
import logging
import re
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any

from flask import current_app
from jose import JWTError, jwt
from werkzeug.security import check_password_hash, generate_password_hash

from app.meyden.constants import EMAIL_VERIFICATION_TTL_HOURS, JWT_AUDIENCE, JWT_ISSUER, PASSWORD_RESET_TTL_HOURS
from app.meyden.utils import utcnow

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DURATION_RE = re.compile(r"^(\d+)\s*([smhdw]?)$")
_DURATION_UNITS = {"": "seconds", "s": "seconds", "m": "minutes", "h": "hours", "d": "days", "w": "weeks"}


# ---------- Passwords ----------
def hash_password(password: str) -> str:
    method = current_app.config.get("PASSWORD_HASH_METHOD") or "scrypt"
    return generate_password_hash(password, method=method)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash or not password:
        return False
    return check_password_hash(password_hash, password)


def validate_password_strength(password: str) -> list[str]:
    """Return the rules the password breaks (empty when it is strong enough)."""
    errors = []
    if len(password or "") < 8:
        errors.append("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password or ""):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password or ""):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password or ""):
        errors.append("Password must contain at least one number")
    if not re.search(r"[^A-Za-z0-9]", password or ""):
        errors.append("Password must contain at least one special character")
    return errors


# ---------- Email ----------
def is_valid_email(email: str | None) -> bool:
    return bool(email and _EMAIL_RE.match(email.strip()))


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


# ---------- Durations ----------
def parse_duration(value: str | int) -> timedelta:
    """Parse "15m", "7d", "2h", "30s" or a bare number of seconds."""
    if isinstance(value, int):
        return timedelta(seconds=value)
    m = _DURATION_RE.match((value or "").strip().lower())
    if not m:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = int(m.group(1)), m.group(2)
    return timedelta(**{_DURATION_UNITS[unit]: amount})


def access_token_ttl() -> timedelta:
    return parse_duration(current_app.config.get("JWT_EXPIRES_IN") or "15m")


def refresh_token_ttl() -> timedelta:
    return parse_duration(current_app.config.get("JWT_REFRESH_EXPIRES_IN") or "7d")


# ---------- JWT ----------
def _epoch(dt: datetime) -> int:
    return calendar.timegm(dt.utctimetuple())


def _encode(user_id: int, ttl: timedelta, token_type: str | None = None) -> str:
    now = utcnow()
    claims: dict[str, Any] = {
        "userId": user_id,
        "jti": uuid.uuid4().hex,
        "iat": _epoch(now),
        "exp": _epoch(now + ttl),
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
    }
    if token_type:
        claims["type"] = token_type
    return jwt.encode(claims, current_app.config["JWT_SECRET"], algorithm=JWT_ALGORITHM)


def generate_tokens(user_id: int) -> tuple[str, str]:
    """Issue an (access, refresh) pair for user_id."""
    access = _encode(user_id, access_token_ttl())
    refresh = _encode(user_id, refresh_token_ttl(), token_type="refresh")
    return access, refresh


def decode_token(token: str, expected_type: str | None = None) -> dict[str, Any]:
    """
    Decode and verify a token. Raises jose errors (ExpiredSignatureError, JWTError)
    so callers or the error layer can map them to 401.
    """
    claims = jwt.decode(
        token,
        current_app.config["JWT_SECRET"],
        algorithms=[JWT_ALGORITHM],
        audience=JWT_AUDIENCE,
        issuer=JWT_ISSUER,
    )
    if expected_type is not None and claims.get("type") != expected_type:
        raise JWTError("Unexpected token type")
    if expected_type is None and claims.get("type") == "refresh":
        raise JWTError("Refresh token used as access token")
    if not isinstance(claims.get("userId"), int):
        raise JWTError("Token is missing userId")
    return claims


def verify_token(token: str, expected_type: str | None = None) -> dict[str, Any] | None:
    try:
        return decode_token(token, expected_type)
    except JWTError as e:
        logger.warning("Token verification failed: %s", e)
        return None


# ---------- One-time tokens ----------
def generate_email_verification_token() -> tuple[str, datetime]:
    return uuid.uuid4().hex, utcnow() + timedelta(hours=EMAIL_VERIFICATION_TTL_HOURS)


def generate_password_reset_token() -> tuple[str, datetime]:
    return uuid.uuid4().hex, utcnow() + timedelta(hours=PASSWORD_RESET_TTL_HOURS)


# ---------- CSRF (double submit cookie) ----------
def _csrf_signature(secret: str, token: str, session_id: str) -> str:
    msg = f"{token}:{session_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).hexdigest()


def generate_csrf_token(secret: str, session_id: str) -> tuple[str, str]:
    """Return (token, cookie_value). The cookie binds the token to session_id."""
    token = secrets.token_hex(32)
    return token, f"{token}|{_csrf_signature(secret, token, session_id)}"


def validate_csrf(header_token: str | None, cookie_value: str | None, secret: str, session_id: str) -> bool:
    if not header_token or not cookie_value or "|" not in cookie_value:
        return False
    cookie_token, signature = cookie_value.split("|", 1)
    if not hmac.compare_digest(cookie_token, header_token):
        return False
    return hmac.compare_digest(signature, _csrf_signature(secret, cookie_token, session_id))
