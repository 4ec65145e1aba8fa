from __future__ import annotations

from flask import Blueprint, current_app, jsonify, redirect, request

from app.meyden.audit import record_event
from app.meyden.auth import create_session
from app.meyden.constants import OAUTH_PROVIDERS, USER_DELETED, USER_SUSPENDED
from app.meyden.db import db_session
from app.meyden.errors import NotFound, ServiceUnavailable
from app.meyden.mailer import get_email_service
from app.meyden.modules.oauth.client import OAuthError, OAuthProvider, provider_from_config
from app.meyden.modules.oauth.service import (
    UnverifiedEmailConflict,
    absolute_redirect,
    consume_state,
    create_state,
    find_or_create_user,
    safe_redirect,
    with_query,
)
from app.meyden.utils import mask_pii, utcnow

bp = Blueprint("oauth", __name__)


def _provider(name: str) -> OAuthProvider:
    if name not in OAUTH_PROVIDERS:
        raise NotFound(f"Unknown OAuth provider: {name}", code="PROVIDER_NOT_FOUND")
    return provider_from_config(name, current_app.config)


def _fail(reason: str):
    frontend = current_app.config.get("FRONTEND_URL") or ""
    return redirect(with_query(f"{frontend}/login", {"error": reason}))


@bp.get("/status")
def oauth_status():
    data = {}
    for name in OAUTH_PROVIDERS:
        p = provider_from_config(name, current_app.config)
        data[name] = {"enabled": p.enabled, "configured": p.configured}
    return jsonify(data)


@bp.get("/<provider>")
def oauth_start(provider: str):
    p = _provider(provider)
    if not p.configured:
        raise ServiceUnavailable(f"{provider.capitalize()} OAuth is not configured", code="OAUTH_NOT_CONFIGURED")
    frontend = current_app.config.get("FRONTEND_URL") or ""
    target = safe_redirect(request.args.get("redirect"), frontend)
    s = db_session()
    state = create_state(s, provider, target)
    s.commit()
    return redirect(p.authorization_url(state))


@bp.get("/<provider>/callback")
def oauth_callback(provider: str):
    p = _provider(provider)
    if not p.enabled:
        return _fail("oauth_not_configured")

    error = (request.args.get("error") or "").strip()
    if error:
        current_app.logger.warning("%s OAuth returned error: %s", provider, error)
        return _fail(error)

    code = (request.args.get("code") or "").strip()
    state = (request.args.get("state") or "").strip()
    if not code or not state:
        return _fail("missing_params")

    s = db_session()
    row = consume_state(s, state, provider)
    s.commit()
    if row is None:
        return _fail("invalid_state")

    try:
        access_token = p.exchange_code(code)
    except OAuthError as e:
        current_app.logger.error("%s token exchange failed: %s", provider, e)
        return _fail("token_exchange_failed")
    try:
        profile = p.fetch_profile(access_token)
    except OAuthError as e:
        current_app.logger.error("%s user info failed: %s", provider, e)
        return _fail("user_info_failed")

    try:
        user, created = find_or_create_user(s, profile)
        if user.status in (USER_SUSPENDED, USER_DELETED):
            s.commit()
            return _fail("account_unavailable")
        user.last_login = utcnow()
        user.login_attempts = 0
        user.lockout_until = None
        _, access, refresh = create_session(s, user, device_info=f"oauth:{provider}")
        record_event(
            s,
            actor=user,
            action="auth.login",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"provider": provider},
        )
        s.commit()
    except UnverifiedEmailConflict:
        s.rollback()
        current_app.logger.warning(
            "%s OAuth email matches an existing account but is unverified: %s", provider, mask_pii({"email": profile.email})
        )
        return _fail("email_not_verified")
    except Exception:
        s.rollback()
        current_app.logger.exception("%s OAuth login failed for %s", provider, mask_pii({"email": profile.email}))
        return _fail("oauth_failed")

    if created:
        get_email_service().send_welcome_email(user.email, user.first_name)

    target = absolute_redirect(row.redirect_url, current_app.config.get("FRONTEND_URL") or "")
    return redirect(with_query(target, {"token": access, "refresh": refresh}))
