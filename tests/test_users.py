from app.meyden.db import session_scope
from app.meyden.models import AuditEvent
from tests.conftest import API


def test_get_own_profile(client, make_user, auth_headers):
    uid = make_user("member@example.com", first_name="Mona")
    r = client.get(f"{API}/users/profile", headers=auth_headers("member@example.com"))
    assert r.status_code == 200
    user = r.json["user"]
    assert user["id"] == uid
    assert user["firstName"] == "Mona"
    assert user["profile"] is None
    assert user["vendor"] is None


def test_update_profile_creates_profile_and_audits(client, app, make_user, auth_headers):
    make_user("member@example.com")
    headers = auth_headers("member@example.com")
    r = client.put(
        f"{API}/users/profile",
        json={
            "firstName": "Mona",
            "bio": "Data engineer",
            "jobTitle": "Lead",
            "experienceYears": 7,
            "website": "https://mona.dev",
        },
        headers=headers,
    )
    assert r.status_code == 200
    user = r.json["user"]
    assert user["firstName"] == "Mona"
    assert user["profile"]["bio"] == "Data engineer"
    assert user["profile"]["jobTitle"] == "Lead"
    assert user["profile"]["experienceYears"] == 7

    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "user.profile_update").one()
        assert "bio" in ev.metadata_json
        assert "first_name" in ev.metadata_json


def test_update_profile_validates_fields(client, make_user, auth_headers):
    make_user("member@example.com")
    headers = auth_headers("member@example.com")

    r = client.put(f"{API}/users/profile", json={"website": "not-a-url"}, headers=headers)
    assert r.status_code == 400
    assert r.json["code"] == "VALIDATION_ERROR"

    r = client.put(f"{API}/users/profile", json={"experienceYears": 90}, headers=headers)
    assert r.status_code == 400


def test_list_users_requires_permission(client, make_user, auth_headers):
    make_user("member@example.com")
    r = client.get(f"{API}/users", headers=auth_headers("member@example.com"))
    assert r.status_code == 403
    assert r.json["code"] == "INSUFFICIENT_PERMISSIONS"


def test_admin_lists_and_filters_users(client, make_user, auth_headers):
    make_user("admin@example.com", role="ADMIN")
    make_user("vendor@example.com", role="VENDOR")
    make_user("member@example.com")
    headers = auth_headers("admin@example.com")

    r = client.get(f"{API}/users", headers=headers)
    assert r.status_code == 200
    assert r.json["pagination"]["totalCount"] == 3

    r = client.get(f"{API}/users?role=vendor", headers=headers)
    assert [u["email"] for u in r.json["users"]] == ["vendor@example.com"]

    r = client.get(f"{API}/users?status=bogus", headers=headers)
    assert r.status_code == 400


def test_public_view_of_other_user(client, make_user, auth_headers):
    make_user("member@example.com")
    other = make_user("other@example.com", first_name="Omar")
    r = client.get(f"{API}/users/{other}", headers=auth_headers("member@example.com"))
    assert r.status_code == 200
    user = r.json["user"]
    assert user["firstName"] == "Omar"
    assert "email" not in user
    assert "status" not in user


def test_unknown_user(client, make_user, auth_headers):
    make_user("member@example.com")
    r = client.get(f"{API}/users/9999", headers=auth_headers("member@example.com"))
    assert r.status_code == 404
    assert r.json["code"] == "USER_NOT_FOUND"


def test_profile_urls_fit_their_columns(client, make_user, auth_headers):
    make_user("member@example.com")
    headers = auth_headers("member@example.com")
    long_url = "https://example.com/" + "a" * 240

    r = client.put(f"{API}/users/profile", json={"website": long_url}, headers=headers)
    assert r.status_code == 400
    assert r.json["details"][0]["field"] == "website"

    r = client.put(f"{API}/users/profile", json={"website": long_url[:255]}, headers=headers)
    assert r.status_code == 200
    assert r.json["user"]["profile"]["website"] == long_url[:255]


def test_user_list_accepts_trailing_slash(client, make_user, auth_headers):
    make_user("admin@example.com", role="ADMIN")
    headers = auth_headers("admin@example.com")
    for path in (f"{API}/users", f"{API}/users/"):
        r = client.get(path, headers=headers)
        assert r.status_code == 200, path
        assert r.json["pagination"]["totalCount"] == 1
