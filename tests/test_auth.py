from app.meyden.db import session_scope
from app.meyden.models import AuditEvent, AuthSession, User
from tests.conftest import API, PASSWORD


def _register(client, email="new@example.com", password=PASSWORD, **extra):
    body = {"email": email, "password": password, "firstName": "Ada", "lastName": "Lovelace"}
    body.update(extra)
    return client.post(f"{API}/auth/register", json=body)


def _user(app, email):
    with session_scope(app) as s:
        u = s.query(User).filter(User.email == email).one()
        s.expunge(u)
        return u


def test_register_creates_active_user(client, app):
    r = _register(client, email="New@Example.com")
    assert r.status_code == 201
    user = r.json["user"]
    assert user["email"] == "new@example.com"
    assert user["role"] == "USER"
    assert user["status"] == "ACTIVE"
    assert user["emailVerificationRequired"] is False
    assert "passwordHash" not in user
    assert "password_hash" not in user

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "auth.register").count() == 1


def test_register_duplicate_email(client):
    assert _register(client).status_code == 201
    r = _register(client)
    assert r.status_code == 409
    assert r.json["code"] == "USER_EXISTS"


def test_register_weak_password(client):
    r = _register(client, password="short")
    assert r.status_code == 400
    assert r.json["code"] == "WEAK_PASSWORD"
    assert r.json["errors"]


def test_register_rejects_admin_role(client):
    r = _register(client, role="ADMIN")
    assert r.status_code == 400
    assert r.json["code"] == "VALIDATION_ERROR"


def test_register_can_be_disabled(client, app):
    app.config["ENABLE_REGISTRATION"] = False
    r = _register(client)
    assert r.status_code == 403
    assert r.json["code"] == "REGISTRATION_DISABLED"


def test_login_returns_tokens_and_session(client, make_user):
    make_user("member@example.com")
    r = client.post(f"{API}/auth/login", json={"email": "MEMBER@example.com", "password": PASSWORD})
    assert r.status_code == 200
    assert r.json["message"] == "Login successful"
    assert r.json["user"]["email"] == "member@example.com"
    assert r.json["tokens"]["accessToken"]
    assert r.json["tokens"]["refreshToken"]
    assert r.json["tokens"]["expiresIn"] == 15 * 60
    assert r.json["session"]["id"]


def test_login_bad_credentials(client, make_user):
    make_user("member@example.com")
    r = client.post(f"{API}/auth/login", json={"email": "member@example.com", "password": "Wrong!Pass1"})
    assert r.status_code == 401
    assert r.json["code"] == "INVALID_CREDENTIALS"

    r = client.post(f"{API}/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
    assert r.status_code == 401
    assert r.json["code"] == "INVALID_CREDENTIALS"


def test_login_lockout_after_repeated_failures(client, make_user, app):
    make_user("member@example.com")
    bad = {"email": "member@example.com", "password": "Wrong!Pass1"}
    for _ in range(4):
        assert client.post(f"{API}/auth/login", json=bad).status_code == 401

    r = client.post(f"{API}/auth/login", json=bad)
    assert r.status_code == 423
    assert r.json["code"] == "ACCOUNT_LOCKED"

    # Correct password is refused while locked.
    r = client.post(f"{API}/auth/login", json={"email": "member@example.com", "password": PASSWORD})
    assert r.status_code == 423
    assert r.json["remaining"] >= 1
    assert _user(app, "member@example.com").lockout_until is not None


def test_login_suspended_account(client, make_user):
    make_user("member@example.com", status="SUSPENDED")
    r = client.post(f"{API}/auth/login", json={"email": "member@example.com", "password": PASSWORD})
    assert r.status_code == 423
    assert r.json["code"] == "ACCOUNT_SUSPENDED"


def test_login_deleted_account(client, make_user):
    make_user("member@example.com", status="DELETED")
    r = client.post(f"{API}/auth/login", json={"email": "member@example.com", "password": PASSWORD})
    assert r.status_code == 423
    assert r.json["code"] == "ACCOUNT_DELETED"


def test_login_requires_verified_email(client, make_user):
    make_user("member@example.com", status="PENDING_VERIFICATION", verified=False)
    r = client.post(f"{API}/auth/login", json={"email": "member@example.com", "password": PASSWORD})
    assert r.status_code == 403
    assert r.json["code"] == "EMAIL_NOT_VERIFIED"
    assert "tokens" not in r.json


def test_login_is_rate_limited(client, app, make_user):
    app.config["LOGIN_RATE_LIMIT"] = 2
    make_user("member@example.com")
    bad = {"email": "member@example.com", "password": "Wrong!Pass1"}
    client.post(f"{API}/auth/login", json=bad)
    client.post(f"{API}/auth/login", json=bad)
    r = client.post(f"{API}/auth/login", json=bad)
    assert r.status_code == 429
    assert r.json["code"] == "RATE_LIMITED"


def test_protected_route_requires_token(client):
    r = client.get(f"{API}/users/profile")
    assert r.status_code == 401


def test_refresh_rotates_tokens(client, make_user, login, csrf_headers):
    make_user("member@example.com")
    tokens = login("member@example.com")
    headers = csrf_headers()

    r = client.post(f"{API}/auth/refresh", json={"refreshToken": tokens["refreshToken"]}, headers=headers)
    assert r.status_code == 200
    new = r.json["tokens"]
    assert new["accessToken"] != tokens["accessToken"]
    assert new["refreshToken"] != tokens["refreshToken"]

    # The old access token no longer matches a session.
    r = client.get(f"{API}/users/profile", headers={"Authorization": f"Bearer {tokens['accessToken']}"})
    assert r.status_code == 401
    r = client.get(f"{API}/users/profile", headers={"Authorization": f"Bearer {new['accessToken']}"})
    assert r.status_code == 200

    # A rotated refresh token cannot be replayed.
    r = client.post(f"{API}/auth/refresh", json={"refreshToken": tokens["refreshToken"]}, headers=headers)
    assert r.status_code == 401
    assert r.json["code"] == "SESSION_INVALID"


def test_refresh_rejects_access_token(client, make_user, login, csrf_headers):
    make_user("member@example.com")
    tokens = login("member@example.com")
    r = client.post(f"{API}/auth/refresh", json={"refreshToken": tokens["accessToken"]}, headers=csrf_headers())
    assert r.status_code == 401
    assert r.json["code"] == "INVALID_REFRESH_TOKEN"


def test_refresh_requires_token(client, csrf_headers):
    r = client.post(f"{API}/auth/refresh", json={}, headers=csrf_headers())
    assert r.status_code == 400
    assert r.json["code"] == "REFRESH_TOKEN_MISSING"


def test_logout_invalidates_session(client, make_user, auth_headers, app):
    make_user("member@example.com")
    headers = auth_headers("member@example.com")
    r = client.post(f"{API}/auth/logout", json={}, headers=headers)
    assert r.status_code == 200
    assert r.json["message"] == "Logout successful"

    r = client.get(f"{API}/users/profile", headers=headers)
    assert r.status_code == 401


def test_logout_all_devices(client, make_user, login, auth_headers, app):
    uid = make_user("member@example.com")
    login("member@example.com")
    headers = auth_headers("member@example.com")
    with session_scope(app) as s:
        assert s.query(AuthSession).filter(AuthSession.user_id == uid).count() == 2

    r = client.post(f"{API}/auth/logout", json={"allDevices": True}, headers=headers)
    assert r.status_code == 200
    with session_scope(app) as s:
        assert s.query(AuthSession).filter(AuthSession.user_id == uid).count() == 0


def test_password_reset_flow(client, make_user, csrf_headers, app):
    make_user("member@example.com")
    headers = csrf_headers()

    r = client.post(f"{API}/auth/forgot-password", json={"email": "member@example.com"}, headers=headers)
    assert r.status_code == 200
    # Unknown addresses get the same answer.
    r2 = client.post(f"{API}/auth/forgot-password", json={"email": "ghost@example.com"}, headers=headers)
    assert r2.json["message"] == r.json["message"]

    token = _user(app, "member@example.com").password_reset_token
    assert token

    r = client.post(
        f"{API}/auth/reset-password", json={"token": token, "password": "N3w!Password"}, headers=headers
    )
    assert r.status_code == 200
    assert _user(app, "member@example.com").password_reset_token is None

    r = client.post(f"{API}/auth/login", json={"email": "member@example.com", "password": PASSWORD})
    assert r.status_code == 401
    r = client.post(f"{API}/auth/login", json={"email": "member@example.com", "password": "N3w!Password"})
    assert r.status_code == 200

    r = client.post(
        f"{API}/auth/reset-password", json={"token": token, "password": "An0ther!Pass"}, headers=headers
    )
    assert r.status_code == 400
    assert r.json["code"] == "INVALID_RESET_TOKEN"


def test_email_verification_flow(client, app):
    app.config["ENABLE_EMAIL_VERIFICATION"] = True
    r = _register(client)
    assert r.status_code == 201
    assert r.json["user"]["status"] == "PENDING_VERIFICATION"
    assert r.json["user"]["emailVerificationRequired"] is True

    r = client.post(f"{API}/auth/login", json={"email": "new@example.com", "password": PASSWORD})
    assert r.status_code == 403
    assert r.json["code"] == "EMAIL_NOT_VERIFIED"

    token = _user(app, "new@example.com").email_verification_token
    r = client.get(f"{API}/auth/verify-email?token={token}")
    assert r.status_code == 200
    assert r.json["user"]["emailVerified"] is True
    assert r.json["user"]["status"] == "ACTIVE"

    r = client.get(f"{API}/auth/verify-email?token={token}")
    assert r.status_code == 400
    assert r.json["code"] == "INVALID_VERIFICATION_TOKEN"

    r = client.post(f"{API}/auth/login", json={"email": "new@example.com", "password": PASSWORD})
    assert r.status_code == 200
