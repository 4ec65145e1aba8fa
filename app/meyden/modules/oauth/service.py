from __future__ import annotations

import urllib.parse
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from app.meyden.audit import record_event
from app.meyden.constants import OAUTH_STATE_TTL_MINUTES, ROLE_USER, USER_ACTIVE, USER_PENDING_VERIFICATION
from app.meyden.models import OAuthState, User
from app.meyden.utils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.meyden.modules.oauth.client import OAuthProfile


class UnverifiedEmailConflict(Exception):
    """The provider email belongs to an existing account but the provider has not verified it."""


def safe_redirect(redirect: str | None, frontend_url: str) -> str:
    """Only local paths or URLs on the frontend origin are allowed after login."""
    redirect = (redirect or "").strip()
    if redirect.startswith("/") and not redirect.startswith("//"):
        return redirect
    if frontend_url and (redirect == frontend_url or redirect.startswith(frontend_url + "/")):
        return redirect
    return "/"


def absolute_redirect(redirect: str, frontend_url: str) -> str:
    if redirect.startswith("/"):
        return frontend_url + redirect
    return redirect


def with_query(url: str, params: dict[str, str]) -> str:
    sep = "&" if "?" in url else "?"
    return url + sep + urllib.parse.urlencode(params)


def purge_expired_states(s: "Session") -> int:
    return s.query(OAuthState).filter(OAuthState.expires_at <= utcnow()).delete()


def create_state(s: "Session", provider: str, redirect_url: str) -> str:
    purge_expired_states(s)
    state = uuid.uuid4().hex
    s.add(
        OAuthState(
            state=state,
            provider=provider,
            redirect_url=redirect_url,
            expires_at=utcnow() + timedelta(minutes=OAUTH_STATE_TTL_MINUTES),
        )
    )
    return state


def consume_state(s: "Session", state: str, provider: str) -> OAuthState | None:
    """Single use: the row is deleted whether or not it is still valid."""
    row = s.query(OAuthState).filter(OAuthState.state == state).one_or_none()
    if row is None:
        return None
    s.delete(row)
    if row.provider != provider or row.expires_at <= utcnow():
        return None
    return row


def _provider_column(provider: str):
    return User.google_id if provider == "google" else User.microsoft_id


def find_or_create_user(s: "Session", profile: "OAuthProfile") -> tuple[User, bool]:
    """
    Match on provider id first, then email; link or create as needed. Returns (user, created).
    Linking by email needs an email the provider has verified.
    """
    column = _provider_column(profile.provider)
    attr = column.key
    user = s.query(User).filter(column == profile.provider_id).one_or_none()
    if user is None:
        user = s.query(User).filter(User.email == profile.email).one_or_none()
        if user is not None:
            if not profile.email_verified:
                raise UnverifiedEmailConflict(profile.email)
            setattr(user, attr, profile.provider_id)
            if not user.email_verified:
                user.email_verified = True
                if user.status == USER_PENDING_VERIFICATION:
                    user.status = USER_ACTIVE
            if not user.avatar and profile.avatar:
                user.avatar = profile.avatar
            record_event(
                s,
                actor=user,
                action="auth.oauth_linked",
                entity_type="User",
                entity_id=str(user.id),
                metadata={"provider": profile.provider},
            )
            return user, False

    if user is not None:
        return user, False

    user = User(
        email=profile.email,
        password_hash="",
        first_name=profile.first_name,
        last_name=profile.last_name,
        avatar=profile.avatar,
        role=ROLE_USER,
        status=USER_ACTIVE,
        email_verified=True,
    )
    setattr(user, attr, profile.provider_id)
    s.add(user)
    s.flush()
    record_event(
        s,
        actor=user,
        action="auth.oauth_register",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"provider": profile.provider},
    )
    return user, True
