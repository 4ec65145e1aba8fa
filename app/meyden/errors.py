from __future__ import annotations

from typing import Any

from flask import Flask, current_app, g, jsonify, request
from jose import ExpiredSignatureError, JWTError
from pydantic import ValidationError
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.orm.exc import NoResultFound
from werkzeug.exceptions import HTTPException

from app.meyden.db import rollback_db_session


class APIError(Exception):
    """Error carrying the HTTP status and machine-readable code returned to the client."""

    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None, **extra: Any):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        body.update(self.extra)
        return body


class ValidationFailed(APIError):
    status_code = 400
    code = "VALIDATION_ERROR"


class Unauthorized(APIError):
    status_code = 401
    code = "AUTH_REQUIRED"


class Forbidden(APIError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(APIError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(APIError):
    status_code = 409
    code = "CONFLICT"


class PayloadTooLarge(APIError):
    status_code = 413
    code = "PAYLOAD_TOO_LARGE"


class Locked(APIError):
    status_code = 423
    code = "LOCKED"


class TooManyRequests(APIError):
    status_code = 429
    code = "RATE_LIMITED"


class ServiceUnavailable(APIError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"


def validation_details(exc: ValidationError) -> list[dict[str, str]]:
    details = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        details.append({"field": field, "message": err.get("msg", "Invalid value")})
    return details


def _is_unique_violation(exc: IntegrityError) -> bool:
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode:
        return pgcode == "23505"
    return "UNIQUE" in str(exc.orig).upper()


def _error_response(status: int, message: str, code: str, **extra: Any):
    body: dict[str, Any] = {"error": message, "code": code}
    body.update(extra)
    return jsonify(body), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(APIError)
    def _api_error(e: APIError):  # type: ignore[no-redef]
        rollback_db_session()
        if e.status_code >= 500:
            app.logger.error("%s (request_id=%s)", e.message, getattr(g, "request_id", None))
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(ValidationError)
    def _validation_error(e: ValidationError):  # type: ignore[no-redef]
        rollback_db_session()
        return _error_response(400, "Validation failed", "VALIDATION_ERROR", details=validation_details(e))

    @app.errorhandler(IntegrityError)
    def _integrity_error(e: IntegrityError):  # type: ignore[no-redef]
        rollback_db_session()
        app.logger.warning("Integrity error on %s %s: %s", request.method, request.path, e.orig)
        if _is_unique_violation(e):
            return _error_response(409, "Duplicate field value", "DUPLICATE_VALUE")
        return _error_response(400, "Invalid reference to related record", "INVALID_REFERENCE")

    @app.errorhandler(DataError)
    def _data_error(e: DataError):  # type: ignore[no-redef]
        rollback_db_session()
        app.logger.warning("Data error on %s %s: %s", request.method, request.path, e.orig)
        return _error_response(400, "Invalid field value", "VALIDATION_ERROR")

    @app.errorhandler(NoResultFound)
    def _no_result(e: NoResultFound):  # type: ignore[no-redef]
        rollback_db_session()
        return _error_response(404, "Record not found", "NOT_FOUND")

    @app.errorhandler(ExpiredSignatureError)
    def _jwt_expired(e: ExpiredSignatureError):  # type: ignore[no-redef]
        return _error_response(401, "Token expired", "TOKEN_EXPIRED")

    @app.errorhandler(JWTError)
    def _jwt_invalid(e: JWTError):  # type: ignore[no-redef]
        return _error_response(401, "Invalid token", "TOKEN_INVALID")

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        rollback_db_session()
        status = e.code or 500
        if status == 404:
            return _error_response(404, f"Route {request.path} not found", "NOT_FOUND")
        if status == 413:
            return _error_response(413, "Request body too large", "PAYLOAD_TOO_LARGE")
        code = (e.name or "Error").upper().replace(" ", "_")
        return _error_response(status, e.description or e.name, code)

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):  # type: ignore[no-redef]
        rollback_db_session()
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        message = "Internal server error"
        if (current_app.config.get("ENV") or "").lower() == "development":
            message = str(e) or message
        return _error_response(500, message, "INTERNAL_ERROR", requestId=rid)
