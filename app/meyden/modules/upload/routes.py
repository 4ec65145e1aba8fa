from __future__ import annotations

import hashlib
import mimetypes
import uuid

from flask import Blueprint, current_app, jsonify, request, send_file
from werkzeug.utils import secure_filename

from app.meyden.audit import record_event
from app.meyden.db import db_session
from app.meyden.errors import Forbidden, NotFound, PayloadTooLarge, ValidationFailed
from app.meyden.rbac import current_user, is_admin, require_auth
from app.meyden.storage import storage_from_config
from app.meyden.utils import utcnow

bp = Blueprint("upload", __name__)


def _object_url(key: str) -> str:
    storage = storage_from_config(current_app.config)
    url = storage.url_for_key(key)
    if url:
        return url
    return f"{current_app.config['API_BASE']}/upload/files/{key}"


@bp.post("/upload")
@require_auth
def upload_file():
    f = request.files.get("file")
    if f is None or not f.filename:
        raise ValidationFailed("No file uploaded", code="FILE_REQUIRED")
    data = f.read()
    if not data:
        raise ValidationFailed("Uploaded file is empty", code="EMPTY_FILE")

    max_size = int(current_app.config["MAX_FILE_SIZE"])
    if len(data) > max_size:
        raise PayloadTooLarge("File exceeds the maximum allowed size", code="FILE_TOO_LARGE", maxSize=max_size)

    content_type = (f.mimetype or "").lower() or mimetypes.guess_type(f.filename)[0] or "application/octet-stream"
    allowed = current_app.config.get("ALLOWED_FILE_TYPES") or ()
    if allowed and content_type not in allowed:
        raise ValidationFailed(
            "File type is not allowed", code="UNSUPPORTED_FILE_TYPE", contentType=content_type, allowed=list(allowed)
        )

    user = current_user()
    filename = secure_filename(f.filename) or "upload"
    key = f"uploads/{user.id}/{utcnow():%Y-%m-%d}/{uuid.uuid4().hex}-{filename}"
    sha256 = hashlib.sha256(data).hexdigest()

    storage_from_config(current_app.config).put_bytes(key, data, content_type=content_type)

    s = db_session()
    record_event(
        s,
        actor=user,
        action="file.upload",
        entity_type="File",
        entity_id=sha256,
        metadata={"key": key, "size": len(data), "contentType": content_type},
    )
    s.commit()
    current_app.logger.info("file uploaded key=%s size=%s", key, len(data))
    return (
        jsonify(
            {
                "message": "File uploaded successfully",
                "key": key,
                "url": _object_url(key),
                "filename": filename,
                "size": len(data),
                "contentType": content_type,
                "sha256": sha256,
            }
        ),
        201,
    )


@bp.get("/files/<path:key>")
@require_auth
def download_file(key: str):
    user = current_user()
    parts = key.split("/")
    if len(parts) < 3 or parts[0] != "uploads":
        raise NotFound("File not found", code="FILE_NOT_FOUND")
    if parts[1] != str(user.id) and not is_admin(user):
        raise Forbidden("You do not have access to this file", code="FILE_FORBIDDEN")
    storage = storage_from_config(current_app.config)
    if not storage.exists(key):
        raise NotFound("File not found", code="FILE_NOT_FOUND")
    mimetype = mimetypes.guess_type(parts[-1])[0] or "application/octet-stream"
    return send_file(storage.open(key), mimetype=mimetype, download_name=parts[-1])
