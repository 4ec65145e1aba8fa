import pytest
from werkzeug.security import generate_password_hash

from app.meyden import create_app
from app.meyden.db import session_scope
from app.meyden.models import Base, User

API = "/api/v1"
PASSWORD = "Str0ng!Pass"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("PASSWORD_HASH_METHOD", "pbkdf2:sha256:1000")
    monkeypatch.setenv("ENABLE_REGISTRATION", "true")
    monkeypatch.setenv("ENABLE_PASSWORD_RESET", "true")
    monkeypatch.setenv("LOGIN_RATE_LIMIT", "1000")
    monkeypatch.setenv("REGISTER_RATE_LIMIT", "1000")
    for k in (
        "S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY",
        "RESEND_API_KEY", "ENABLE_EMAIL_VERIFICATION", "LOG_FILE", "CORS_ORIGIN", "CORS_CREDENTIALS",
        "GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "MICROSOFT_CLIENT_ID", "MICROSOFT_CLIENT_SECRET",
    ):
        monkeypatch.delenv(k, raising=False)
    # Local storage writes under ./storage
    monkeypatch.chdir(tmp_path)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    yield app
    engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    def _make(email, *, password=PASSWORD, role="USER", status="ACTIVE", verified=True, **fields) -> int:
        with session_scope(app) as s:
            u = User(
                email=email,
                password_hash=generate_password_hash(password, method="pbkdf2:sha256:1000"),
                role=role,
                status=status,
                email_verified=verified,
                first_name=fields.pop("first_name", "Test"),
                last_name=fields.pop("last_name", "User"),
                **fields,
            )
            s.add(u)
            s.flush()
            return u.id

    return _make


@pytest.fixture()
def csrf_headers(client):
    # One token per client; fetching another would replace the cookie.
    issued: dict[str, str] = {}

    def _headers() -> dict:
        if "token" not in issued:
            r = client.get(f"{API}/csrf-token")
            assert r.status_code == 200
            issued["token"] = r.json["csrfToken"]
        return {"X-CSRF-Token": issued["token"]}

    return _headers


@pytest.fixture()
def login(client):
    def _login(email, password=PASSWORD) -> dict:
        r = client.post(f"{API}/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.json
        return r.json["tokens"]

    return _login


@pytest.fixture()
def auth_headers(login, csrf_headers):
    def _headers(email, password=PASSWORD) -> dict:
        tokens = login(email, password)
        headers = {"Authorization": f"Bearer {tokens['accessToken']}"}
        headers.update(csrf_headers())
        return headers

    return _headers
