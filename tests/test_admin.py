import pytest

from app.meyden.db import session_scope
from app.meyden.models import AuditEvent, AuthSession, User
from tests.conftest import API, PASSWORD


@pytest.fixture()
def admin(make_user, auth_headers):
    make_user("admin@example.com", role="ADMIN")
    return auth_headers("admin@example.com")


@pytest.fixture()
def super_admin(make_user, auth_headers):
    make_user("root@example.com", role="SUPER_ADMIN")
    return auth_headers("root@example.com")


@pytest.mark.parametrize(
    "method, path",
    [
        ("get", "/admin/analytics"),
        ("get", "/admin/settings"),
        ("get", "/admin/vendors/pending"),
        ("get", "/admin/reviews/pending"),
        ("get", "/admin/audit-events"),
        ("patch", "/admin/users/1/status"),
    ],
)
def test_admin_routes_forbid_regular_users(client, make_user, auth_headers, method, path):
    make_user("member@example.com")
    r = getattr(client, method)(f"{API}{path}", json={"status": "SUSPENDED"}, headers=auth_headers("member@example.com"))
    assert r.status_code == 403
    assert r.json["code"] == "INSUFFICIENT_PERMISSIONS"


def test_admin_routes_require_login(client):
    r = client.get(f"{API}/admin/analytics")
    assert r.status_code == 401
    assert r.json["code"] == "TOKEN_MISSING"


def test_analytics(client, admin, make_user):
    make_user("vendor@example.com", role="VENDOR")
    make_user("suspended@example.com", status="SUSPENDED")
    r = client.get(f"{API}/admin/analytics", headers=admin)
    assert r.status_code == 200
    users = r.json["users"]
    assert users["total"] == 3
    assert users["byStatus"] == {"ACTIVE": 2, "SUSPENDED": 1}
    assert users["byRole"]["VENDOR"] == 1
    assert r.json["surveys"] == {"responses": 0, "averagePercentage": None}
    assert r.json["reviews"]["pending"] == 0


def test_settings_upsert(client, admin):
    r = client.put(
        f"{API}/admin/settings/maintenance_mode",
        json={"value": True, "type": "boolean", "description": "Show maintenance banner"},
        headers=admin,
    )
    assert r.status_code == 201
    assert r.json["setting"]["value"] == "true"
    assert r.json["setting"]["type"] == "boolean"

    r = client.put(f"{API}/admin/settings/maintenance_mode", json={"value": False}, headers=admin)
    assert r.status_code == 200
    assert r.json["setting"]["value"] == "false"
    assert r.json["setting"]["description"] == "Show maintenance banner"

    r = client.get(f"{API}/admin/settings", headers=admin)
    assert [x["key"] for x in r.json["settings"]] == ["maintenance_mode"]

    r = client.put(f"{API}/admin/settings/bad", json={"type": "xml"}, headers=admin)
    assert r.status_code == 400


def test_suspending_user_revokes_sessions(client, app, admin, make_user, login):
    uid = make_user("member@example.com")
    tokens = login("member@example.com")

    r = client.patch(
        f"{API}/admin/users/{uid}/status", json={"status": "SUSPENDED", "reason": "Abuse report"}, headers=admin
    )
    assert r.status_code == 200
    assert r.json["user"]["status"] == "SUSPENDED"

    with session_scope(app) as s:
        assert s.query(AuthSession).filter(AuthSession.user_id == uid).count() == 0
        ev = s.query(AuditEvent).filter(AuditEvent.action == "user.status").one()
        assert ev.reason == "Abuse report"

    r = client.get(f"{API}/users/profile", headers={"Authorization": f"Bearer {tokens['accessToken']}"})
    assert r.status_code == 401
    r = client.post(f"{API}/auth/login", json={"email": "member@example.com", "password": PASSWORD})
    assert r.status_code == 423


def test_reactivating_user_clears_lockout(client, app, admin, make_user):
    uid = make_user("member@example.com", status="SUSPENDED", login_attempts=3)
    r = client.patch(f"{API}/admin/users/{uid}/status", json={"status": "ACTIVE"}, headers=admin)
    assert r.status_code == 200
    with session_scope(app) as s:
        u = s.get(User, uid)
        assert u.status == "ACTIVE"
        assert u.login_attempts == 0


def test_admin_cannot_change_own_status(client, app, admin):
    with session_scope(app) as s:
        me = s.query(User).filter(User.email == "admin@example.com").one().id
    r = client.patch(f"{API}/admin/users/{me}/status", json={"status": "SUSPENDED"}, headers=admin)
    assert r.status_code == 403
    assert r.json["code"] == "SELF_MODIFICATION"


def test_admin_cannot_suspend_other_admin(client, admin, make_user):
    other = make_user("other-admin@example.com", role="ADMIN")
    r = client.patch(f"{API}/admin/users/{other}/status", json={"status": "SUSPENDED"}, headers=admin)
    assert r.status_code == 403


def test_role_changes(client, admin, super_admin, make_user):
    uid = make_user("member@example.com")

    r = client.patch(f"{API}/admin/users/{uid}/role", json={"role": "VENDOR"}, headers=admin)
    assert r.status_code == 200
    assert r.json["user"]["role"] == "VENDOR"

    # Granting admin needs the super admin permission.
    r = client.patch(f"{API}/admin/users/{uid}/role", json={"role": "ADMIN"}, headers=admin)
    assert r.status_code == 403
    r = client.patch(f"{API}/admin/users/{uid}/role", json={"role": "ADMIN"}, headers=super_admin)
    assert r.status_code == 200
    assert r.json["user"]["role"] == "ADMIN"

    r = client.patch(f"{API}/admin/users/{uid}/role", json={"role": "OWNER"}, headers=super_admin)
    assert r.status_code == 400


def test_super_admin_cannot_demote_self(client, app, super_admin):
    with session_scope(app) as s:
        me = s.query(User).filter(User.email == "root@example.com").one().id
    r = client.patch(f"{API}/admin/users/{me}/role", json={"role": "USER"}, headers=super_admin)
    assert r.status_code == 400
    assert r.json["code"] == "SELF_MODIFICATION"


def test_unknown_user_and_vendor(client, admin):
    r = client.patch(f"{API}/admin/users/9999/status", json={"status": "ACTIVE"}, headers=admin)
    assert r.status_code == 404
    r = client.patch(f"{API}/admin/vendors/9999/approve", headers=admin)
    assert r.status_code == 404
    assert r.json["code"] == "VENDOR_NOT_FOUND"


def test_audit_events_are_listed_and_filtered(client, admin, make_user):
    uid = make_user("member@example.com")
    client.patch(f"{API}/admin/users/{uid}/status", json={"status": "SUSPENDED"}, headers=admin)

    r = client.get(f"{API}/admin/audit-events", headers=admin)
    assert r.status_code == 200
    actions = {e["action"] for e in r.json["events"]}
    assert {"auth.login", "user.status"} <= actions

    r = client.get(f"{API}/admin/audit-events?action=user.status", headers=admin)
    events = r.json["events"]
    assert len(events) == 1
    assert events[0]["entityId"] == str(uid)
    assert events[0]["metadata"] == {"before": "ACTIVE", "after": "SUSPENDED"}
    assert events[0]["actorUserEmail"] == "admin@example.com"


def test_moderation_inputs_fit_their_columns(client, app, admin, make_user):
    uid = make_user("member@example.com")

    r = client.patch(
        f"{API}/admin/users/{uid}/status",
        json={"status": "SUSPENDED", "reason": "x" * 513},
        headers=admin,
    )
    assert r.status_code == 400
    assert r.json["details"][0]["field"] == "reason"
    with session_scope(app) as s:
        assert s.get(User, uid).status == "ACTIVE"

    r = client.put(f"{API}/admin/settings/{'k' * 129}", json={"value": "on"}, headers=admin)
    assert r.status_code == 400
    assert r.json["code"] == "VALIDATION_ERROR"

    r = client.put(f"{API}/admin/settings/{'k' * 128}", json={"value": "on"}, headers=admin)
    assert r.status_code == 201
