import pytest

from app.meyden.constants import ROLE_PERMISSIONS
from app.meyden.rbac import require_admin, require_role


@pytest.fixture()
def guarded(app):
    @app.get("/_test/vendors-only")
    @require_role("VENDOR")
    def _vendors_only():
        return {"ok": True}

    @app.get("/_test/admins-only")
    @require_admin
    def _admins_only():
        return {"ok": True}

    return app


def _bearer(login, email):
    return {"Authorization": f"Bearer {login(email)['accessToken']}"}


def test_require_role_reports_required_and_current(client, guarded, make_user, login):
    make_user("user@example.com")
    r = client.get("/_test/vendors-only", headers=_bearer(login, "user@example.com"))
    assert r.status_code == 403
    assert r.json == {
        "error": "Insufficient permissions",
        "code": "INSUFFICIENT_PERMISSIONS",
        "required": ["VENDOR"],
        "current": "USER",
    }

    make_user("vendor@example.com", role="VENDOR")
    r = client.get("/_test/vendors-only", headers=_bearer(login, "vendor@example.com"))
    assert r.status_code == 200


def test_require_role_needs_login(client, guarded):
    r = client.get("/_test/vendors-only")
    assert r.status_code == 401
    assert r.json["code"] == "TOKEN_MISSING"

    r = client.get("/_test/vendors-only", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json["code"] == "TOKEN_INVALID"


@pytest.mark.parametrize("role, status", [("USER", 403), ("VENDOR", 403), ("ADMIN", 200), ("SUPER_ADMIN", 200)])
def test_require_admin(client, guarded, make_user, login, role, status):
    make_user("someone@example.com", role=role)
    r = client.get("/_test/admins-only", headers=_bearer(login, "someone@example.com"))
    assert r.status_code == status
    if status == 403:
        assert r.json["required"] == ["ADMIN", "SUPER_ADMIN"]
        assert r.json["current"] == role


def test_only_super_admin_can_assign_admins():
    assert "users.assign_admin" in ROLE_PERMISSIONS["SUPER_ADMIN"]
    assert "users.assign_admin" not in ROLE_PERMISSIONS["ADMIN"]
    assert ROLE_PERMISSIONS["ADMIN"] < ROLE_PERMISSIONS["SUPER_ADMIN"]
