from flask import Blueprint, current_app, jsonify

from app.meyden.auth import client_ip
from app.meyden.db import ping_database
from app.meyden.security import generate_csrf_token
from app.meyden.utils import iso, utcnow

bp = Blueprint("routes", __name__)
api_bp = Blueprint("platform_api", __name__)


@bp.get("/")
def index():
    base = current_app.config["API_BASE"]
    return jsonify(
        {
            "name": "Meyden API",
            "version": current_app.config["API_VERSION"],
            "endpoints": {
                "health": "/health",
                "csrf": f"{base}/csrf-token",
                "auth": f"{base}/auth",
                "oauth": f"{base}/auth/oauth",
                "users": f"{base}/users",
                "vendors": f"{base}/vendors",
                "community": f"{base}/community",
                "aiReadiness": f"{base}/ai-readiness",
                "admin": f"{base}/admin",
                "upload": f"{base}/upload",
            },
        }
    )


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON with database connectivity."""
    connected = ping_database(current_app)
    return jsonify(
        {
            "status": "OK",
            "timestamp": iso(utcnow()),
            "environment": current_app.config["ENV"],
            "version": current_app.config["API_VERSION"],
            "database": "CONNECTED" if connected else "DISCONNECTED",
        }
    )


@bp.get("/healthz")
def healthz():
    """
    Fast health check for the load balancer. No DB access, minimal overhead.
    """
    return "ok", 200


@api_bp.get("/csrf-token")
def csrf_token():
    cfg = current_app.config
    token, cookie_value = generate_csrf_token(cfg["SECRET_KEY"], client_ip())
    resp = jsonify({"success": True, "csrfToken": token})
    resp.set_cookie(
        cfg["CSRF_COOKIE_NAME"],
        cookie_value,
        httponly=True,
        secure=bool(cfg["CSRF_COOKIE_SECURE"]),
        samesite=cfg["CSRF_COOKIE_SAMESITE"],
        max_age=60 * 60,
    )
    return resp
