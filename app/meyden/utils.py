from __future__ import annotations

import math
import re
import unicodedata
from datetime import datetime, timezone
from typing import Any

from flask import request

_TAG_RE = re.compile(r"<!--.*?-->|<[^>]*>", re.DOTALL)

_SENSITIVE_KEYS = (
    "password",
    "email",
    "phone",
    "ssn",
    "token",
    "secret",
    "address",
    "creditcard",
    "cvv",
)

_BROADCAST_DROP = (
    "password_hash",
    "passwordHash",
    "email_verification_token",
    "emailVerificationToken",
    "password_reset_token",
    "passwordResetToken",
    "login_attempts",
    "loginAttempts",
    "lockout_until",
    "lockoutUntil",
)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime(timezone=False) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat() + "Z" if dt.tzinfo is None else dt.isoformat()


def is_expired(dt: datetime | None) -> bool:
    return dt is None or dt <= utcnow()


def _to_int(raw: str | None, default: int) -> int:
    try:
        return int(raw) if raw not in (None, "") else default
    except (TypeError, ValueError):
        return default


def get_pagination_params(default_limit: int = 20, max_limit: int = 100) -> tuple[int, int, int]:
    """Read ?page=&limit= from the current request. Returns (page, limit, offset)."""
    page = max(1, _to_int(request.args.get("page"), 1))
    limit = max(1, min(max_limit, _to_int(request.args.get("limit"), default_limit)))
    return page, limit, (page - 1) * limit


def pagination_meta(page: int, limit: int, total: int) -> dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "totalCount": total,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def slugify(text: str, max_length: int = 80) -> str:
    value = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-zA-Z0-9\s-]", "", value).strip().lower()
    value = re.sub(r"[\s_-]+", "-", value).strip("-")
    return value[:max_length].rstrip("-") or "post"


def _mask_email(value: str) -> str:
    local, _, domain = value.partition("@")
    if not domain or not local:
        return "***MASKED***"
    return f"{local[0]}***@{domain}"


def mask_pii(data: Any) -> Any:
    """Return a copy of data with PII-looking fields masked, for log output."""
    if isinstance(data, list):
        return [mask_pii(item) for item in data]
    if not isinstance(data, dict):
        return data
    masked: dict[str, Any] = {}
    for key, value in data.items():
        lowered = str(key).lower().replace("_", "")
        if any(s in lowered for s in _SENSITIVE_KEYS):
            if "email" in lowered and isinstance(value, str):
                masked[key] = _mask_email(value)
            else:
                masked[key] = "***MASKED***"
        elif isinstance(value, (dict, list)):
            masked[key] = mask_pii(value)
        else:
            masked[key] = value
    return masked


def sanitize_input(data: Any) -> Any:
    """Strip HTML tags from every string in data (recursively)."""
    if isinstance(data, str):
        return _TAG_RE.sub("", data).strip()
    if isinstance(data, list):
        return [sanitize_input(item) for item in data]
    if isinstance(data, dict):
        return {k: sanitize_input(v) for k, v in data.items()}
    return data


def sanitize_user_for_broadcast(user: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in user.items() if k not in _BROADCAST_DROP}


_SUSPICIOUS_PATTERNS = (
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"\bunion\b\s+\bselect\b", re.IGNORECASE),
    re.compile(r"\bdrop\b\s+\btable\b", re.IGNORECASE),
    re.compile(r"\.\./"),
)


def looks_suspicious(payload: str) -> bool:
    return any(p.search(payload) for p in _SUSPICIOUS_PATTERNS)
