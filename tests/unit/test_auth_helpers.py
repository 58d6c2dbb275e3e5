"""Tests for JWT, password and rate limit key helpers."""

import uuid
from datetime import timedelta
from unittest.mock import MagicMock

import jwt
import pytest
from fastapi import Response

from creditflow.core.auth import (
    clear_auth_cookie,
    create_jwt,
    decode_jwt,
    hash_password,
    set_auth_cookie,
    validate_password_strength,
    verify_password,
)
from creditflow.core.config import settings
from creditflow.core.errors import ValidationError
from creditflow.core.rate_limiting import _rate_limit_key_func
from tests.conftest import TEST_AUTH_SECRET, create_test_jwt

# =============================================================================
# JWT
# =============================================================================


class TestJwt:
    def test_round_trip_claims(self) -> None:
        user_id = str(uuid.uuid4())

        payload = decode_jwt(create_jwt(user_id=user_id, secret=TEST_AUTH_SECRET))

        assert payload["sub"] == user_id
        assert payload["aud"] == settings.auth_audience
        assert payload["iss"] == settings.auth_issuer
        assert payload["exp"] - payload["iat"] == int(timedelta(days=7).total_seconds())

    def test_expired_token_rejected(self) -> None:
        token = create_jwt(
            user_id="x",
            secret=TEST_AUTH_SECRET,
            expires_delta=timedelta(seconds=-1),
        )
        with pytest.raises(jwt.ExpiredSignatureError):
            decode_jwt(token)

    def test_wrong_secret_rejected(self) -> None:
        token = create_jwt(user_id="x", secret="another-secret-of-sufficient-length!")
        with pytest.raises(jwt.InvalidSignatureError):
            decode_jwt(token)

    def test_wrong_audience_rejected(self) -> None:
        token = jwt.encode(
            {"sub": "x", "aud": "other", "iss": settings.auth_issuer},
            TEST_AUTH_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(jwt.InvalidAudienceError):
            decode_jwt(token)


# =============================================================================
# Passwords
# =============================================================================


class TestPasswords:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("Correct1horse", rounds=4)

        assert hashed.startswith("$2b$04$")
        assert verify_password("Correct1horse", hashed) is True
        assert verify_password("wrong", hashed) is False

    def test_missing_hash_never_verifies(self) -> None:
        assert verify_password("anything", None) is False

    @pytest.mark.parametrize(
        ("password", "message"),
        [
            ("Ab1", "at least 8"),
            ("A" * 64 + "a" * 64 + "1", "at most 128"),
            ("lowercase1", "uppercase"),
            ("UPPERCASE1", "lowercase"),
            ("NoDigitsHere", "number"),
        ],
    )
    def test_weak_passwords_rejected(self, password: str, message: str) -> None:
        with pytest.raises(ValidationError, match=message):
            validate_password_strength(password)

    def test_strong_password_accepted(self) -> None:
        validate_password_strength("Str0ngEnough")


# =============================================================================
# Cookies
# =============================================================================


class TestCookies:
    def test_set_cookie_is_http_only(self) -> None:
        response = Response()

        set_auth_cookie(response, "token-value")

        header = response.headers["set-cookie"]
        assert header.startswith(f"{settings.auth_cookie_name}=token-value")
        assert "HttpOnly" in header
        assert "Path=/" in header

    def test_clear_cookie_expires_it(self) -> None:
        response = Response()

        clear_auth_cookie(response)

        header = response.headers["set-cookie"]
        assert "Max-Age=0" in header


# =============================================================================
# Rate limit keys
# =============================================================================


def _request(cookies: dict[str, str]) -> MagicMock:
    request = MagicMock()
    request.cookies = cookies
    request.client.host = "203.0.113.7"
    return request


class TestRateLimitKey:
    def test_authenticated_requests_keyed_by_user(self) -> None:
        user_id = uuid.uuid4()
        request = _request({settings.auth_cookie_name: create_test_jwt(user_id)})

        assert _rate_limit_key_func(request) == f"user:{user_id}"

    def test_invalid_token_falls_back_to_ip(self) -> None:
        request = _request({settings.auth_cookie_name: "not-a-jwt"})

        assert _rate_limit_key_func(request) == "unauth:203.0.113.7"

    def test_anonymous_requests_keyed_by_ip(self) -> None:
        assert _rate_limit_key_func(_request({})) == "unauth:203.0.113.7"
