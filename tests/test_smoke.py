from tests.conftest import API


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["status"] == "OK"
    assert r.json["database"] == "CONNECTED"


def test_healthz_plain(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_index_lists_endpoints(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json["endpoints"]["vendors"] == f"{API}/vendors"


def test_security_headers_and_request_id(client):
    r = client.get("/health")
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert "Referrer-Policy" in r.headers
    assert len(r.headers["X-Request-ID"]) == 32


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.headers["X-Request-ID"] == "abc123"


def test_cors_echoes_allowed_origin_only(client):
    r = client.get("/health", headers={"Origin": "http://localhost:3000"})
    assert r.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert r.headers["Access-Control-Allow-Credentials"] == "true"

    r = client.get("/health", headers={"Origin": "https://evil.example"})
    assert "Access-Control-Allow-Origin" not in r.headers


def test_unknown_route_is_json_404(client):
    r = client.get(f"{API}/nope")
    assert r.status_code == 404
    assert r.json["code"] == "NOT_FOUND"
    assert r.json["error"] == f"Route {API}/nope not found"


def test_csrf_token_sets_cookie(client):
    r = client.get(f"{API}/csrf-token")
    assert r.status_code == 200
    assert r.json["success"] is True
    cookie = r.headers["Set-Cookie"]
    assert cookie.startswith("x-csrf-token=")
    assert r.json["csrfToken"] in cookie
    assert "HttpOnly" in cookie


def test_mutation_without_csrf_is_rejected(client, make_user, login):
    make_user("member@example.com")
    tokens = login("member@example.com")
    r = client.put(
        f"{API}/users/profile",
        json={"bio": "hello"},
        headers={"Authorization": f"Bearer {tokens['accessToken']}"},
    )
    assert r.status_code == 403
    assert r.json["code"] == "CSRF_INVALID"


def test_mutation_with_wrong_csrf_header_is_rejected(client, make_user, login, csrf_headers):
    make_user("member@example.com")
    tokens = login("member@example.com")
    csrf_headers()
    r = client.put(
        f"{API}/users/profile",
        json={"bio": "hello"},
        headers={"Authorization": f"Bearer {tokens['accessToken']}", "X-CSRF-Token": "0" * 64},
    )
    assert r.status_code == 403


def test_login_and_register_are_csrf_exempt(client, make_user):
    make_user("member@example.com")
    r = client.post(f"{API}/auth/login", json={"email": "member@example.com", "password": "wrong"})
    assert r.status_code == 401
