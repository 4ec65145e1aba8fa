import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    api_prefix: str
    api_version: str
    frontend_url: str
    cors_origins: tuple[str, ...]
    cors_credentials: bool

    jwt_secret: str
    jwt_expires_in: str
    jwt_refresh_expires_in: str
    password_hash_method: str

    login_max_attempts: int
    login_lockout_minutes: int
    login_rate_limit: int
    login_rate_window: int
    register_rate_limit: int
    register_rate_window: int

    google_client_id: str
    google_client_secret: str
    google_callback_url: str
    microsoft_client_id: str
    microsoft_client_secret: str
    microsoft_callback_url: str
    microsoft_tenant: str

    resend_api_key: str
    email_from_address: str
    email_from_name: str

    storage_backend: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str
    max_file_size: int
    allowed_file_types: tuple[str, ...]

    log_level: str
    log_file: str

    enable_registration: bool
    enable_email_verification: bool
    enable_password_reset: bool


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getint(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _getflag(name: str, default: bool = False) -> bool:
    raw = _getenv(name).lower()
    if not raw:
        return default
    return raw == "true"


def _getlist(name: str, default: str = "") -> tuple[str, ...]:
    return tuple(x.strip() for x in _getenv(name, default).split(",") if x.strip())


def load_settings() -> Settings:
    port = _getenv("PORT", "3001")
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///meyden.db"),
        api_prefix=_getenv("API_PREFIX", "/api").rstrip("/"),
        api_version=_getenv("API_VERSION", "v1"),
        frontend_url=_getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
        cors_origins=_getlist("CORS_ORIGIN", "http://localhost:3000"),
        cors_credentials=_getflag("CORS_CREDENTIALS", True),
        jwt_secret=_getenv("JWT_SECRET", "change-me-jwt"),
        jwt_expires_in=_getenv("JWT_EXPIRES_IN", "15m"),
        jwt_refresh_expires_in=_getenv("JWT_REFRESH_EXPIRES_IN", "7d"),
        password_hash_method=_getenv("PASSWORD_HASH_METHOD", "scrypt"),
        login_max_attempts=_getint("LOGIN_MAX_ATTEMPTS", 5),
        login_lockout_minutes=_getint("LOGIN_LOCKOUT_MINUTES", 15),
        login_rate_limit=_getint("LOGIN_RATE_LIMIT", 5),
        login_rate_window=_getint("LOGIN_RATE_WINDOW", 900),
        register_rate_limit=_getint("REGISTER_RATE_LIMIT", 3),
        register_rate_window=_getint("REGISTER_RATE_WINDOW", 3600),
        google_client_id=_getenv("GOOGLE_CLIENT_ID"),
        google_client_secret=_getenv("GOOGLE_CLIENT_SECRET"),
        google_callback_url=_getenv(
            "GOOGLE_CALLBACK_URL", f"http://localhost:{port}/api/v1/auth/oauth/google/callback"
        ),
        microsoft_client_id=_getenv("MICROSOFT_CLIENT_ID"),
        microsoft_client_secret=_getenv("MICROSOFT_CLIENT_SECRET"),
        microsoft_callback_url=_getenv(
            "MICROSOFT_CALLBACK_URL", f"http://localhost:{port}/api/v1/auth/oauth/microsoft/callback"
        ),
        microsoft_tenant=_getenv("MICROSOFT_TENANT", "common"),
        resend_api_key=_getenv("RESEND_API_KEY"),
        email_from_address=_getenv("EMAIL_FROM_ADDRESS", "noreply@meyden.com"),
        email_from_name=_getenv("EMAIL_FROM_NAME", "Meyden"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        max_file_size=_getint("MAX_FILE_SIZE", 10 * 1024 * 1024),
        allowed_file_types=_getlist(
            "ALLOWED_FILE_TYPES", "image/jpeg,image/png,image/gif,image/webp,application/pdf"
        ),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        log_file=_getenv("LOG_FILE", ""),
        enable_registration=_getflag("ENABLE_REGISTRATION"),
        enable_email_verification=_getflag("ENABLE_EMAIL_VERIFICATION"),
        enable_password_reset=_getflag("ENABLE_PASSWORD_RESET"),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "API_PREFIX": s.api_prefix,
        "API_VERSION": s.api_version,
        "API_BASE": f"{s.api_prefix}/{s.api_version}",
        "FRONTEND_URL": s.frontend_url,
        "CORS_ORIGINS": s.cors_origins,
        "CORS_CREDENTIALS": s.cors_credentials,
        "JWT_SECRET": s.jwt_secret,
        "JWT_EXPIRES_IN": s.jwt_expires_in,
        "JWT_REFRESH_EXPIRES_IN": s.jwt_refresh_expires_in,
        "PASSWORD_HASH_METHOD": s.password_hash_method,
        "LOGIN_MAX_ATTEMPTS": s.login_max_attempts,
        "LOGIN_LOCKOUT_MINUTES": s.login_lockout_minutes,
        "LOGIN_RATE_LIMIT": s.login_rate_limit,
        "LOGIN_RATE_WINDOW": s.login_rate_window,
        "REGISTER_RATE_LIMIT": s.register_rate_limit,
        "REGISTER_RATE_WINDOW": s.register_rate_window,
        "GOOGLE_CLIENT_ID": s.google_client_id,
        "GOOGLE_CLIENT_SECRET": s.google_client_secret,
        "GOOGLE_CALLBACK_URL": s.google_callback_url,
        "MICROSOFT_CLIENT_ID": s.microsoft_client_id,
        "MICROSOFT_CLIENT_SECRET": s.microsoft_client_secret,
        "MICROSOFT_CALLBACK_URL": s.microsoft_callback_url,
        "MICROSOFT_TENANT": s.microsoft_tenant,
        "RESEND_API_KEY": s.resend_api_key,
        "EMAIL_FROM_ADDRESS": s.email_from_address,
        "EMAIL_FROM_NAME": s.email_from_name,
        "STORAGE_BACKEND": s.storage_backend,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "MAX_FILE_SIZE": s.max_file_size,
        "ALLOWED_FILE_TYPES": s.allowed_file_types,
        "LOG_LEVEL": s.log_level,
        "LOG_FILE": s.log_file,
        "ENABLE_REGISTRATION": s.enable_registration,
        "ENABLE_EMAIL_VERIFICATION": s.enable_email_verification,
        "ENABLE_PASSWORD_RESET": s.enable_password_reset,
        # cookie defaults
        "CSRF_COOKIE_NAME": "x-csrf-token",
        "CSRF_COOKIE_SECURE": is_production,
        "CSRF_COOKIE_SAMESITE": "Strict" if is_production else "Lax",
        # multipart bodies get a little headroom over the per-file limit
        "MAX_CONTENT_LENGTH": s.max_file_size + 1024 * 1024,
    }
