import logging
import os

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request

# Model registry first: feature models attach to the shared metadata on import.
from app.meyden.auth import bp as auth_bp, client_ip, init_throttle, load_current_user
from app.meyden.admin import bp as admin_bp
from app.meyden.config import load_config
from app.meyden.db import init_db, teardown_db_session
from app.meyden.errors import register_error_handlers
from app.meyden.modules.ai_readiness.routes import bp as ai_readiness_bp
from app.meyden.modules.community.routes import bp as community_bp
from app.meyden.modules.oauth.routes import bp as oauth_bp
from app.meyden.modules.upload.routes import bp as upload_bp
from app.meyden.modules.users.routes import bp as users_bp
from app.meyden.modules.vendors.routes import bp as vendors_bp
from app.meyden.observability import configure_logging, init_request_logging
from app.meyden.routes import api_bp as platform_api_bp, bp as routes_bp
from app.meyden.security import validate_csrf

CSRF_EXEMPT_PATHS = ("/auth/login", "/auth/register")
UNSAFE_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.json.sort_keys = False

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if not app.config.get("JWT_SECRET") or str(app.config["JWT_SECRET"]) in ("", "change-me-jwt"):
            raise RuntimeError("JWT_SECRET must be set to a strong value in production (not default).")

    configure_logging(app)
    init_db(app)
    init_throttle(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    api = app.config["API_BASE"]
    app.register_blueprint(routes_bp)
    app.register_blueprint(platform_api_bp, url_prefix=api)
    app.register_blueprint(auth_bp, url_prefix=f"{api}/auth")
    app.register_blueprint(oauth_bp, url_prefix=f"{api}/auth/oauth")
    app.register_blueprint(users_bp, url_prefix=f"{api}/users")
    app.register_blueprint(vendors_bp, url_prefix=f"{api}/vendors")
    app.register_blueprint(community_bp, url_prefix=f"{api}/community")
    app.register_blueprint(ai_readiness_bp, url_prefix=f"{api}/ai-readiness")
    app.register_blueprint(admin_bp, url_prefix=f"{api}/admin")
    app.register_blueprint(upload_bp, url_prefix=f"{api}/upload")

    init_request_logging(app)

    def _load_user_wrapper():
        if request.path in ("/health", "/healthz"):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)

    @app.before_request
    def _csrf_guard():
        if request.method not in UNSAFE_METHODS or not request.path.startswith(api):
            return None
        if request.path[len(api):] in CSRF_EXEMPT_PATHS:
            return None
        ok = validate_csrf(
            request.headers.get("X-CSRF-Token"),
            request.cookies.get(app.config["CSRF_COOKIE_NAME"]),
            app.config["SECRET_KEY"],
            client_ip(),
        )
        if not ok:
            app.logger.warning("CSRF validation failed path=%s request_id=%s", request.path, getattr(g, "request_id", None))
            return jsonify({"error": "Invalid CSRF token", "code": "CSRF_INVALID"}), 403
        return None

    @app.after_request
    def _security_headers(response):
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        origin = request.headers.get("Origin")
        if origin and origin in app.config["CORS_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            if app.config["CORS_CREDENTIALS"]:
                response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-CSRF-Token, X-Request-ID"
        return response

    register_error_handlers(app)
    app.teardown_appcontext(teardown_db_session)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
