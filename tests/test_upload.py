import hashlib
import io

from app.meyden.db import session_scope
from app.meyden.models import AuditEvent
from tests.conftest import API

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _upload(client, headers, data=PNG, filename="company logo.png", mimetype="image/png"):
    return client.post(
        f"{API}/upload/upload",
        data={"file": (io.BytesIO(data), filename, mimetype)},
        content_type="multipart/form-data",
        headers=headers,
    )


def test_upload_and_download(client, app, make_user, auth_headers, tmp_path):
    uid = make_user("member@example.com")
    headers = auth_headers("member@example.com")

    r = _upload(client, headers)
    assert r.status_code == 201, r.json
    body = r.json
    assert body["filename"] == "company_logo.png"
    assert body["size"] == len(PNG)
    assert body["contentType"] == "image/png"
    assert body["sha256"] == hashlib.sha256(PNG).hexdigest()
    assert body["key"].startswith(f"uploads/{uid}/")
    assert body["key"].endswith("-company_logo.png")
    assert body["url"] == f"{API}/upload/files/{body['key']}"
    assert (tmp_path / "storage" / body["key"]).read_bytes() == PNG

    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "file.upload").one()
        assert ev.entity_id == body["sha256"]

    r = client.get(body["url"], headers=headers)
    assert r.status_code == 200
    assert r.data == PNG
    assert r.mimetype == "image/png"


def test_download_is_owner_only(client, make_user, auth_headers):
    make_user("member@example.com")
    make_user("other@example.com")
    make_user("admin@example.com", role="ADMIN")
    key = _upload(client, auth_headers("member@example.com")).json["key"]

    r = client.get(f"{API}/upload/files/{key}", headers=auth_headers("other@example.com"))
    assert r.status_code == 403
    assert r.json["code"] == "FILE_FORBIDDEN"

    r = client.get(f"{API}/upload/files/{key}", headers=auth_headers("admin@example.com"))
    assert r.status_code == 200

    r = client.get(f"{API}/upload/files/elsewhere/x.png", headers=auth_headers("admin@example.com"))
    assert r.status_code == 404


def test_upload_requires_file(client, make_user, auth_headers):
    make_user("member@example.com")
    r = client.post(f"{API}/upload/upload", data={}, content_type="multipart/form-data", headers=auth_headers("member@example.com"))
    assert r.status_code == 400
    assert r.json["code"] == "FILE_REQUIRED"


def test_upload_rejects_empty_file(client, make_user, auth_headers):
    make_user("member@example.com")
    r = _upload(client, auth_headers("member@example.com"), data=b"")
    assert r.status_code == 400
    assert r.json["code"] == "EMPTY_FILE"


def test_upload_rejects_unsupported_type(client, make_user, auth_headers):
    make_user("member@example.com")
    r = _upload(client, auth_headers("member@example.com"), data=b"MZ\x90\x00", filename="tool.exe", mimetype="application/x-msdownload")
    assert r.status_code == 400
    assert r.json["code"] == "UNSUPPORTED_FILE_TYPE"


def test_upload_rejects_large_file(client, app, make_user, auth_headers):
    app.config["MAX_FILE_SIZE"] = 16
    make_user("member@example.com")
    r = _upload(client, auth_headers("member@example.com"))
    assert r.status_code == 413
    assert r.json["code"] == "FILE_TOO_LARGE"
    assert r.json["maxSize"] == 16


def test_upload_requires_login(client, csrf_headers):
    r = _upload(client, csrf_headers())
    assert r.status_code == 401
