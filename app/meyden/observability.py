from __future__ import annotations

import logging
import time
import uuid
from logging.handlers import RotatingFileHandler

from flask import Flask, g, request

from app.meyden.utils import looks_suspicious

access_logger = logging.getLogger("meyden.access")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL") or "INFO").upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    app.logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        stream = logging.StreamHandler()
        stream.setFormatter(formatter)
        root.addHandler(stream)

    log_file = (app.config.get("LOG_FILE") or "").strip()
    if log_file and not any(
        isinstance(h, RotatingFileHandler) and h.baseFilename.endswith(log_file) for h in root.handlers
    ):
        fh = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=5)
        fh.setFormatter(formatter)
        root.addHandler(fh)

    # Per-statement logging is too noisy outside debugging.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def init_request_logging(app: Flask) -> None:
    @app.before_request
    def _start_request():
        g.request_id = (request.headers.get("X-Request-ID") or "").strip()[:64] or uuid.uuid4().hex
        g.request_started = time.perf_counter()
        if request.method in ("POST", "PUT", "PATCH") and request.mimetype == "application/json":
            body = request.get_data(as_text=True) or ""
            if body and looks_suspicious(body):
                app.logger.warning(
                    "Suspicious payload path=%s ip=%s request_id=%s",
                    request.path,
                    request.remote_addr,
                    g.request_id,
                )

    @app.after_request
    def _log_request(response):
        rid = getattr(g, "request_id", None)
        if rid:
            response.headers["X-Request-ID"] = rid
        if request.path in ("/health", "/healthz"):
            return response
        started = getattr(g, "request_started", None)
        duration_ms = (time.perf_counter() - started) * 1000 if started else 0.0
        status = response.status_code
        level = logging.ERROR if status >= 500 else logging.WARNING if status >= 400 else logging.INFO
        access_logger.log(
            level,
            "request completed method=%s path=%s status=%d duration_ms=%.1f request_id=%s",
            request.method,
            request.path,
            status,
            duration_ms,
            rid,
        )
        return response
