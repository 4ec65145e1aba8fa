from __future__ import annotations

import math
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Literal

from flask import Blueprint, Flask, current_app, g, jsonify, request
from pydantic import Field, field_validator

from app.meyden.audit import record_event
from app.meyden.constants import (
    ROLE_USER,
    USER_ACTIVE,
    USER_DELETED,
    USER_PENDING_VERIFICATION,
    USER_SUSPENDED,
)
from app.meyden.db import db_session
from app.meyden.errors import Conflict, Forbidden, Locked, TooManyRequests, Unauthorized, ValidationFailed
from app.meyden.mailer import get_email_service
from app.meyden.models import AuthSession, User
from app.meyden.modules.users.service import serialize_user
from app.meyden.schemas import CamelModel, parse_body
from app.meyden.security import (
    access_token_ttl,
    generate_email_verification_token,
    generate_password_reset_token,
    generate_tokens,
    hash_password,
    is_valid_email,
    normalize_email,
    refresh_token_ttl,
    validate_password_strength,
    verify_password,
    verify_token,
)
from app.meyden.utils import iso, is_expired, mask_pii, utcnow

bp = Blueprint("auth", __name__)


# ---------- Throttling ----------
class RequestThrottle:
    """In-process sliding-window counter keyed by e.g. "login:<ip>"."""

    def __init__(self) -> None:
        self._hits: dict[str, list[datetime]] = defaultdict(list)

    def is_limited(self, key: str, limit: int, window_seconds: int) -> bool:
        cutoff = utcnow() - timedelta(seconds=window_seconds)
        self._hits[key] = [t for t in self._hits[key] if t > cutoff]
        return len(self._hits[key]) >= limit

    def hit(self, key: str) -> None:
        self._hits[key].append(utcnow())

    def reset(self, key: str) -> None:
        self._hits.pop(key, None)


def init_throttle(app: Flask) -> None:
    app.extensions["meyden_throttle"] = RequestThrottle()


def _throttle(key: str, limit_key: str, window_key: str, message: str) -> None:
    throttle: RequestThrottle = current_app.extensions["meyden_throttle"]
    window = int(current_app.config[window_key])
    if throttle.is_limited(key, int(current_app.config[limit_key]), window):
        raise TooManyRequests(message, code="RATE_LIMITED", retryAfter=window)
    throttle.hit(key)


def client_ip() -> str:
    return request.remote_addr or "unknown"


# ---------- Request authentication ----------
def load_current_user() -> None:
    """
    Resolve g.current_user from the bearer token and its live session.
    Leaves g.auth_error set when the request is anonymous so decorators can report why.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.auth_session = None
    g.auth_error = None

    header = request.headers.get("Authorization") or ""
    if not header.startswith("Bearer "):
        g.auth_error = "TOKEN_MISSING"
        return
    token = header[len("Bearer "):].strip()
    claims = verify_token(token)
    if claims is None:
        g.auth_error = "TOKEN_INVALID"
        return

    try:
        s = db_session()
        sess = (
            s.query(AuthSession)
            .filter(AuthSession.token == token, AuthSession.expires_at > utcnow())
            .one_or_none()
        )
    except Exception as e:
        current_app.logger.error("load_current_user DB error (treating as anonymous): %s", e)
        g.auth_error = "SESSION_INVALID"
        return

    if sess is None or sess.user_id != claims["userId"]:
        g.auth_error = "SESSION_INVALID"
        return
    g.current_user = sess.user
    g.auth_session = sess


def create_session(s, user: User, *, device_info: str | None = None) -> tuple[AuthSession, str, str]:
    access, refresh = generate_tokens(user.id)
    now = utcnow()
    sess = AuthSession(
        user_id=user.id,
        token=access,
        refresh_token=refresh,
        device_info=device_info,
        ip_address=client_ip(),
        user_agent=(request.headers.get("User-Agent") or "")[:512] or None,
        expires_at=now + access_token_ttl(),
        refresh_expires_at=now + refresh_token_ttl(),
    )
    s.add(sess)
    s.flush()
    return sess, access, refresh


def token_payload(access: str, refresh: str) -> dict:
    return {
        "accessToken": access,
        "refreshToken": refresh,
        "expiresIn": int(access_token_ttl().total_seconds()),
    }


# ---------- Schemas ----------
class RegisterRequest(CamelModel):
    email: str = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=128)
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    role: Literal["USER", "VENDOR"] = ROLE_USER


class LoginRequest(CamelModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)
    device_info: str | None = Field(default=None, max_length=255)


class ForgotPasswordRequest(CamelModel):
    email: str = Field(min_length=1)


class ResetPasswordRequest(CamelModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=1, max_length=128)


class VerifyEmailRequest(CamelModel):
    token: str = Field(min_length=1)


class LogoutRequest(CamelModel):
    all_devices: bool = False


class RefreshRequest(CamelModel):
    refresh_token: str | None = None

    @field_validator("refresh_token")
    @classmethod
    def blank_is_missing(cls, v: str | None) -> str | None:
        return v or None


def _check_password(password: str) -> None:
    errors = validate_password_strength(password)
    if errors:
        raise ValidationFailed("Password does not meet requirements", code="WEAK_PASSWORD", errors=errors)


# ---------- Routes ----------
@bp.post("/register")
def register():
    if not current_app.config.get("ENABLE_REGISTRATION"):
        raise Forbidden("Registration is currently disabled", code="REGISTRATION_DISABLED")
    _throttle(
        f"register:{client_ip()}",
        "REGISTER_RATE_LIMIT",
        "REGISTER_RATE_WINDOW",
        "Too many registration attempts, please try again later.",
    )

    body = parse_body(RegisterRequest)
    email = normalize_email(body.email)
    if not is_valid_email(email):
        raise ValidationFailed("Invalid email format", code="INVALID_EMAIL")
    _check_password(body.password)

    s = db_session()
    if s.query(User.id).filter(User.email == email).first() is not None:
        raise Conflict("User with this email already exists", code="USER_EXISTS")

    verification_required = bool(current_app.config.get("ENABLE_EMAIL_VERIFICATION"))
    user = User(
        email=email,
        password_hash=hash_password(body.password),
        first_name=body.first_name,
        last_name=body.last_name,
        role=body.role,
        status=USER_PENDING_VERIFICATION if verification_required else USER_ACTIVE,
        email_verified=not verification_required,
    )
    if verification_required:
        user.email_verification_token, user.email_verification_expires = generate_email_verification_token()
    s.add(user)
    s.flush()
    record_event(s, actor=user, action="auth.register", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("User registered: %s", mask_pii({"email": email}))

    if verification_required:
        get_email_service().send_verification_email(user.email, user.first_name, user.email_verification_token or "")

    data = serialize_user(user)
    data["emailVerificationRequired"] = verification_required
    message = (
        "User registered successfully. Please check your email to verify your account."
        if verification_required
        else "User registered successfully."
    )
    return jsonify({"message": message, "user": data}), 201


@bp.post("/login")
def login():
    body = parse_body(LoginRequest)
    email = normalize_email(body.email)
    ip = client_ip()
    _throttle(
        f"login:{ip}",
        "LOGIN_RATE_LIMIT",
        "LOGIN_RATE_WINDOW",
        "Too many login attempts, please try again later.",
    )

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if user is None:
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            reason="Unknown email",
            metadata=mask_pii({"email": email}),
        )
        s.commit()
        raise Unauthorized("Invalid email or password", code="INVALID_CREDENTIALS")

    now = utcnow()
    if user.lockout_until and user.lockout_until > now:
        remaining = math.ceil((user.lockout_until - now).total_seconds() / 60)
        raise Locked(
            "Account temporarily locked due to too many failed login attempts",
            code="ACCOUNT_LOCKED",
            remaining=remaining,
        )

    if not verify_password(body.password, user.password_hash):
        user.login_attempts = (user.login_attempts or 0) + 1
        max_attempts = int(current_app.config["LOGIN_MAX_ATTEMPTS"])
        if user.login_attempts >= max_attempts:
            lockout_minutes = int(current_app.config["LOGIN_LOCKOUT_MINUTES"])
            user.lockout_until = now + timedelta(minutes=lockout_minutes)
            user.login_attempts = 0
            record_event(
                s,
                actor=None,
                action="auth.lockout",
                entity_type="User",
                entity_id=str(user.id),
                metadata={"minutes": lockout_minutes},
            )
            s.commit()
            current_app.logger.warning("Account locked after failed logins: %s", mask_pii({"email": email}))
            raise Locked(
                "Account temporarily locked due to too many failed login attempts",
                code="ACCOUNT_LOCKED",
                remaining=lockout_minutes,
            )
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=str(user.id),
            reason="Invalid password",
        )
        s.commit()
        raise Unauthorized("Invalid email or password", code="INVALID_CREDENTIALS")

    if user.status == USER_SUSPENDED:
        raise Locked("Account is suspended", code="ACCOUNT_SUSPENDED")
    if user.status == USER_DELETED:
        raise Locked("Account has been deleted", code="ACCOUNT_DELETED")
    if user.status == USER_PENDING_VERIFICATION and not user.email_verified:
        raise Forbidden("Please verify your email before logging in", code="EMAIL_NOT_VERIFIED")

    user.login_attempts = 0
    user.lockout_until = None
    user.last_login = now
    sess, access, refresh = create_session(s, user, device_info=body.device_info)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.extensions["meyden_throttle"].reset(f"login:{ip}")

    return jsonify(
        {
            "message": "Login successful",
            "user": serialize_user(user),
            "tokens": token_payload(access, refresh),
            "session": {"id": sess.id, "expiresAt": iso(sess.expires_at)},
        }
    )


@bp.post("/logout")
def logout():
    body = parse_body(LogoutRequest)
    s = db_session()
    user: User | None = getattr(g, "current_user", None)
    sess: AuthSession | None = getattr(g, "auth_session", None)
    if user is not None:
        if body.all_devices:
            removed = s.query(AuthSession).filter(AuthSession.user_id == user.id).delete()
        else:
            removed = s.query(AuthSession).filter(AuthSession.id == sess.id).delete() if sess else 0
        record_event(
            s,
            actor=user,
            action="auth.logout",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"allDevices": body.all_devices, "sessions": removed},
        )
        s.commit()
    return jsonify({"message": "Logout successful"})


@bp.post("/refresh")
def refresh():
    body = parse_body(RefreshRequest)
    if not body.refresh_token:
        raise ValidationFailed("Refresh token is required", code="REFRESH_TOKEN_MISSING")
    claims = verify_token(body.refresh_token, expected_type="refresh")
    if claims is None:
        raise Unauthorized("Invalid refresh token", code="INVALID_REFRESH_TOKEN")

    s = db_session()
    now = utcnow()
    sess = (
        s.query(AuthSession)
        .filter(AuthSession.refresh_token == body.refresh_token, AuthSession.refresh_expires_at > now)
        .one_or_none()
    )
    if sess is None or sess.user_id != claims["userId"]:
        raise Unauthorized("Session expired or invalid", code="SESSION_INVALID")
    if not sess.user.is_active:
        s.delete(sess)
        s.commit()
        raise Unauthorized("Account is not active", code="SESSION_INVALID")

    access, new_refresh = generate_tokens(sess.user_id)
    sess.token = access
    sess.refresh_token = new_refresh
    sess.expires_at = now + access_token_ttl()
    sess.refresh_expires_at = now + refresh_token_ttl()
    s.commit()
    return jsonify(
        {
            "message": "Token refreshed successfully",
            "tokens": token_payload(access, new_refresh),
            "session": {"id": sess.id, "expiresAt": iso(sess.expires_at)},
        }
    )


def _verify_email_token(token: str):
    s = db_session()
    user = s.query(User).filter(User.email_verification_token == token).one_or_none()
    if user is None or user.email_verified or is_expired(user.email_verification_expires):
        raise ValidationFailed("Invalid or expired verification token", code="INVALID_VERIFICATION_TOKEN")
    user.email_verified = True
    user.email_verification_token = None
    user.email_verification_expires = None
    if user.status == USER_PENDING_VERIFICATION:
        user.status = USER_ACTIVE
    record_event(s, actor=user, action="auth.email_verified", entity_type="User", entity_id=str(user.id))
    s.commit()
    get_email_service().send_welcome_email(user.email, user.first_name)
    return jsonify({"message": "Email verified successfully", "user": serialize_user(user)})


@bp.post("/verify-email")
def verify_email():
    body = parse_body(VerifyEmailRequest)
    return _verify_email_token(body.token)


@bp.get("/verify-email")
def verify_email_link():
    token = (request.args.get("token") or "").strip()
    if not token:
        raise ValidationFailed("Verification token is required", code="INVALID_VERIFICATION_TOKEN")
    return _verify_email_token(token)


def _require_password_reset_enabled() -> None:
    if not current_app.config.get("ENABLE_PASSWORD_RESET"):
        raise Forbidden("Password reset is currently disabled", code="PASSWORD_RESET_DISABLED")


@bp.post("/forgot-password")
def forgot_password():
    _require_password_reset_enabled()
    body = parse_body(ForgotPasswordRequest)
    email = normalize_email(body.email)
    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if user is not None and user.status != USER_DELETED:
        user.password_reset_token, user.password_reset_expires = generate_password_reset_token()
        record_event(s, actor=user, action="auth.password_reset_requested", entity_type="User", entity_id=str(user.id))
        s.commit()
        get_email_service().send_password_reset_email(user.email, user.first_name, user.password_reset_token)
    # Same answer whether or not the account exists.
    return jsonify({"message": "If an account with that email exists, a password reset link has been sent."})


@bp.post("/reset-password")
def reset_password():
    _require_password_reset_enabled()
    body = parse_body(ResetPasswordRequest)
    _check_password(body.password)

    s = db_session()
    user = s.query(User).filter(User.password_reset_token == body.token).one_or_none()
    if user is None or is_expired(user.password_reset_expires):
        raise ValidationFailed("Invalid or expired reset token", code="INVALID_RESET_TOKEN")

    user.password_hash = hash_password(body.password)
    user.password_reset_token = None
    user.password_reset_expires = None
    user.login_attempts = 0
    user.lockout_until = None
    removed = s.query(AuthSession).filter(AuthSession.user_id == user.id).delete()
    record_event(
        s,
        actor=user,
        action="auth.password_reset",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"sessionsRevoked": removed},
    )
    s.commit()
    return jsonify({"message": "Password has been reset successfully. Please log in with your new password."})
