from datetime import datetime, timedelta, timezone

from app.meyden.db import session_scope
from app.meyden.models import User
from app.meyden.utils import (
    looks_suspicious,
    mask_pii,
    pagination_meta,
    sanitize_input,
    sanitize_user_for_broadcast,
    slugify,
    utcnow,
)


def test_slugify():
    assert slugify("Hello, World!") == "hello-world"
    assert slugify("  AI   in the   UAE  ") == "ai-in-the-uae"
    assert slugify("Café déjà vu") == "cafe-deja-vu"
    assert slugify("!!!") == "post"
    assert len(slugify("word " * 50)) <= 80


def test_mask_pii_masks_nested_fields():
    masked = mask_pii(
        {
            "email": "jane@example.com",
            "password": "hunter2",
            "name": "Jane",
            "contact": {"phoneNumber": "555-0100", "city": "Dubai"},
            "items": [{"accessToken": "abc"}],
        }
    )
    assert masked["email"] == "j***@example.com"
    assert masked["password"] == "***MASKED***"
    assert masked["name"] == "Jane"
    assert masked["contact"] == {"phoneNumber": "***MASKED***", "city": "Dubai"}
    assert masked["items"] == [{"accessToken": "***MASKED***"}]


def test_mask_pii_leaves_scalars_alone():
    assert mask_pii("plain") == "plain"
    assert mask_pii(3) == 3


def test_sanitize_input_strips_tags_recursively():
    cleaned = sanitize_input(
        {"title": "<b>Bold</b> move", "tags": ["<i>ai</i>", " ml "], "count": 2, "note": "<!-- x -->ok"}
    )
    assert cleaned == {"title": "Bold move", "tags": ["ai", "ml"], "count": 2, "note": "ok"}


def test_sanitize_user_for_broadcast():
    out = sanitize_user_for_broadcast({"id": 1, "passwordHash": "x", "loginAttempts": 3, "email": "a@b.co"})
    assert out == {"id": 1, "email": "a@b.co"}


def test_pagination_meta():
    assert pagination_meta(1, 10, 25) == {
        "page": 1,
        "limit": 10,
        "totalCount": 25,
        "totalPages": 3,
        "hasNextPage": True,
        "hasPrevPage": False,
    }
    last = pagination_meta(3, 10, 25)
    assert last["hasNextPage"] is False
    assert last["hasPrevPage"] is True
    assert pagination_meta(1, 10, 0)["totalPages"] == 0


def test_looks_suspicious():
    assert looks_suspicious('{"bio": "<script>alert(1)</script>"}')
    assert looks_suspicious("1 UNION SELECT password FROM users")
    assert not looks_suspicious('{"bio": "I like data pipelines"}')


def test_utcnow_is_naive_utc():
    now = utcnow()
    assert now.tzinfo is None
    reference = datetime.now(timezone.utc).replace(tzinfo=None)
    assert abs(reference - now) < timedelta(seconds=5)


def test_model_timestamps_use_naive_utc(app, make_user):
    uid = make_user("member@example.com")
    with session_scope(app) as s:
        created = s.get(User, uid).created_at
    assert created.tzinfo is None
    assert abs(utcnow() - created) < timedelta(seconds=5)
