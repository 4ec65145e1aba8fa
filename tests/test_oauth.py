import dataclasses
import urllib.parse

import pytest

from app.meyden.db import session_scope
from app.meyden.models import AuthSession, OAuthState, User
from app.meyden.modules.oauth.client import OAuthError, OAuthProfile, OAuthProvider, provider_from_config
from app.meyden.modules.oauth.service import safe_redirect
from tests.conftest import API


@pytest.fixture()
def google(app, monkeypatch):
    app.config["GOOGLE_CLIENT_ID"] = "google-client"
    app.config["GOOGLE_CLIENT_SECRET"] = "google-secret"

    profile = {
        "value": OAuthProfile(
            provider="google",
            provider_id="g-123",
            email="oauth@example.com",
            first_name="Olu",
            last_name="Auth",
            avatar="https://example.com/a.png",
            email_verified=True,
        )
    }
    monkeypatch.setattr(OAuthProvider, "exchange_code", lambda self, code: f"access-{code}")
    monkeypatch.setattr(OAuthProvider, "fetch_profile", lambda self, token: profile["value"])
    return profile


def _start(client, redirect="/dashboard"):
    r = client.get(f"{API}/auth/oauth/google?redirect={urllib.parse.quote(redirect)}")
    assert r.status_code == 302
    query = urllib.parse.parse_qs(urllib.parse.urlparse(r.headers["Location"]).query)
    return r.headers["Location"], query["state"][0]


def test_status_reports_configuration(client, app):
    r = client.get(f"{API}/auth/oauth/status")
    assert r.status_code == 200
    assert r.json == {
        "google": {"enabled": False, "configured": False},
        "microsoft": {"enabled": False, "configured": False},
    }

    app.config["MICROSOFT_CLIENT_ID"] = "ms"
    app.config["MICROSOFT_CLIENT_SECRET"] = "ms-secret"
    assert client.get(f"{API}/auth/oauth/status").json["microsoft"]["configured"] is True


def test_unknown_provider(client):
    r = client.get(f"{API}/auth/oauth/github")
    assert r.status_code == 404
    assert r.json["code"] == "PROVIDER_NOT_FOUND"


def test_unconfigured_provider(client):
    r = client.get(f"{API}/auth/oauth/google")
    assert r.status_code == 503
    assert r.json["code"] == "OAUTH_NOT_CONFIGURED"


def test_start_redirects_to_provider_and_stores_state(client, app, google):
    location, state = _start(client)
    assert location.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
    assert "client_id=google-client" in location
    with session_scope(app) as s:
        row = s.query(OAuthState).filter(OAuthState.state == state).one()
        assert row.provider == "google"
        assert row.redirect_url == "/dashboard"


def test_callback_with_unknown_state(client, google):
    r = client.get(f"{API}/auth/oauth/google/callback?code=abc&state=bogus")
    assert r.status_code == 302
    assert r.headers["Location"] == "http://localhost:3000/login?error=invalid_state"


def test_callback_provider_error(client, google):
    r = client.get(f"{API}/auth/oauth/google/callback?error=access_denied")
    assert r.headers["Location"] == "http://localhost:3000/login?error=access_denied"


def test_callback_creates_user_and_session(client, app, google):
    _, state = _start(client)
    r = client.get(f"{API}/auth/oauth/google/callback?code=abc&state={state}")
    assert r.status_code == 302
    target = urllib.parse.urlparse(r.headers["Location"])
    assert f"{target.scheme}://{target.netloc}{target.path}" == "http://localhost:3000/dashboard"
    params = urllib.parse.parse_qs(target.query)
    assert params["token"][0] and params["refresh"][0]

    with session_scope(app) as s:
        user = s.query(User).filter(User.email == "oauth@example.com").one()
        assert user.google_id == "g-123"
        assert user.email_verified is True
        assert user.status == "ACTIVE"
        assert s.query(AuthSession).filter(AuthSession.user_id == user.id).count() == 1
        # State is single use.
        assert s.query(OAuthState).filter(OAuthState.state == state).count() == 0

    r = client.get(f"{API}/users/profile", headers={"Authorization": f"Bearer {params['token'][0]}"})
    assert r.status_code == 200

    r = client.get(f"{API}/auth/oauth/google/callback?code=abc&state={state}")
    assert r.headers["Location"].endswith("error=invalid_state")


def test_callback_links_existing_account(client, app, make_user, google):
    uid = make_user("oauth@example.com", verified=False, status="PENDING_VERIFICATION")
    _, state = _start(client)
    client.get(f"{API}/auth/oauth/google/callback?code=abc&state={state}")
    with session_scope(app) as s:
        user = s.get(User, uid)
        assert user.google_id == "g-123"
        assert user.email_verified is True
        assert user.status == "ACTIVE"
        assert s.query(User).count() == 1


def test_callback_refuses_suspended_account(client, make_user, google):
    make_user("oauth@example.com", status="SUSPENDED")
    _, state = _start(client)
    r = client.get(f"{API}/auth/oauth/google/callback?code=abc&state={state}")
    assert r.headers["Location"].endswith("error=account_unavailable")


def test_callback_token_exchange_failure(client, monkeypatch, google):
    def boom(self, code):
        raise OAuthError("HTTP 400 from google")

    monkeypatch.setattr(OAuthProvider, "exchange_code", boom)
    _, state = _start(client)
    r = client.get(f"{API}/auth/oauth/google/callback?code=abc&state={state}")
    assert r.headers["Location"].endswith("error=token_exchange_failed")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("/dashboard", "/dashboard"),
        ("//evil.example", "/"),
        ("https://evil.example/x", "/"),
        ("http://localhost:3000/vendors", "http://localhost:3000/vendors"),
        (None, "/"),
    ],
)
def test_safe_redirect(raw, expected):
    assert safe_redirect(raw, "http://localhost:3000") == expected


def test_client_id_alone_starts_but_cannot_finish(client, app):
    app.config["GOOGLE_CLIENT_ID"] = "google-client"
    status = client.get(f"{API}/auth/oauth/status").json["google"]
    assert status == {"enabled": False, "configured": True}

    _, state = _start(client)
    r = client.get(f"{API}/auth/oauth/google/callback?code=abc&state={state}")
    assert r.headers["Location"].endswith("error=oauth_not_configured")


def test_callback_will_not_link_unverified_email(client, app, make_user, google):
    uid = make_user("oauth@example.com")
    profile = google["value"]
    google["value"] = dataclasses.replace(profile, email_verified=False)

    _, state = _start(client)
    r = client.get(f"{API}/auth/oauth/google/callback?code=abc&state={state}")
    assert r.headers["Location"].endswith("error=email_not_verified")
    with session_scope(app) as s:
        assert s.get(User, uid).google_id is None
        assert s.query(AuthSession).count() == 0


@pytest.mark.parametrize(
    "tenant, verified",
    [(None, False), ("common", False), ("Organizations", False), ("contoso.onmicrosoft.com", True)],
)
def test_microsoft_email_trust_follows_tenant(monkeypatch, tenant, verified):
    config = {"MICROSOFT_CLIENT_ID": "ms", "MICROSOFT_CLIENT_SECRET": "ms-secret"}
    if tenant:
        config["MICROSOFT_TENANT"] = tenant
    provider = provider_from_config("microsoft", config)
    me = {"id": "m-1", "mail": "Someone@Contoso.com", "givenName": "Sam", "surname": "Ng"}
    monkeypatch.setattr(OAuthProvider, "_request_json", lambda self, url, **kw: me)

    profile = provider.fetch_profile("token")
    assert profile.email == "someone@contoso.com"
    assert profile.email_verified is verified


def test_google_email_must_be_flagged_verified(monkeypatch):
    provider = provider_from_config("google", {"GOOGLE_CLIENT_ID": "g", "GOOGLE_CLIENT_SECRET": "s"})
    info = {"sub": "g-1", "email": "a@example.com", "email_verified": "true"}
    monkeypatch.setattr(OAuthProvider, "_request_json", lambda self, url, **kw: info)
    assert provider.fetch_profile("token").email_verified is False

    info["email_verified"] = True
    assert provider.fetch_profile("token").email_verified is True
