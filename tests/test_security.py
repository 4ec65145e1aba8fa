from datetime import timedelta

import pytest
from jose import JWTError, jwt

from app.meyden.security import (
    decode_token,
    generate_csrf_token,
    generate_tokens,
    hash_password,
    is_valid_email,
    parse_duration,
    validate_csrf,
    validate_password_strength,
    verify_password,
    verify_token,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("15m", timedelta(minutes=15)),
        ("7d", timedelta(days=7)),
        ("2h", timedelta(hours=2)),
        ("30s", timedelta(seconds=30)),
        ("90", timedelta(seconds=90)),
        (45, timedelta(seconds=45)),
    ],
)
def test_parse_duration(raw, expected):
    assert parse_duration(raw) == expected


def test_parse_duration_rejects_garbage():
    with pytest.raises(ValueError):
        parse_duration("soon")


def test_password_strength_rules():
    assert validate_password_strength("Str0ng!Pass") == []
    errors = validate_password_strength("weak")
    assert "Password must be at least 8 characters long" in errors
    assert "Password must contain at least one uppercase letter" in errors
    assert "Password must contain at least one number" in errors
    assert "Password must contain at least one special character" in errors


def test_password_hash_roundtrip(app):
    with app.app_context():
        h = hash_password("Str0ng!Pass")
        assert h.startswith("pbkdf2:sha256")
        assert verify_password("Str0ng!Pass", h)
        assert not verify_password("other", h)
        assert not verify_password("Str0ng!Pass", None)


def test_email_format():
    assert is_valid_email("someone@example.com")
    assert not is_valid_email("someone@")
    assert not is_valid_email("")


def test_tokens_carry_issuer_audience_and_user(app):
    with app.app_context():
        access, refresh = generate_tokens(42)
        claims = decode_token(access)
        assert claims["userId"] == 42
        assert claims["iss"] == "meyden-api"
        assert claims["aud"] == "meyden-client"
        assert "type" not in claims

        assert decode_token(refresh, expected_type="refresh")["type"] == "refresh"


def test_refresh_token_is_not_an_access_token(app):
    with app.app_context():
        access, refresh = generate_tokens(7)
        with pytest.raises(JWTError):
            decode_token(refresh)
        with pytest.raises(JWTError):
            decode_token(access, expected_type="refresh")
        assert verify_token(refresh) is None


def test_token_signed_with_other_secret_is_rejected(app):
    with app.app_context():
        forged = jwt.encode(
            {"userId": 1, "iss": "meyden-api", "aud": "meyden-client"}, "not-the-secret", algorithm="HS256"
        )
        assert verify_token(forged) is None


def test_expired_token_is_rejected(app):
    expired = jwt.encode(
        {"userId": 3, "iss": "meyden-api", "aud": "meyden-client", "exp": 1_000_000},
        "test-jwt-secret",
        algorithm="HS256",
    )
    with app.app_context():
        assert verify_token(expired) is None


def test_csrf_double_submit():
    token, cookie = generate_csrf_token("secret", "127.0.0.1")
    assert cookie.startswith(token + "|")
    assert validate_csrf(token, cookie, "secret", "127.0.0.1")
    assert not validate_csrf(None, cookie, "secret", "127.0.0.1")
    assert not validate_csrf(token, None, "secret", "127.0.0.1")
    assert not validate_csrf("f" * 64, cookie, "secret", "127.0.0.1")
    assert not validate_csrf(token, cookie, "other-secret", "127.0.0.1")
    # Bound to the client it was issued to.
    assert not validate_csrf(token, cookie, "secret", "10.0.0.9")
