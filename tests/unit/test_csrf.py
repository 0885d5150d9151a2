"""Tests for CSRF token generation, verification and the double-submit check."""

import pytest
from fastapi import Response

from app.config import settings
from app.core.csrf import (
    CsrfVerification,
    generate_csrf_token,
    set_csrf_cookie,
    validate_csrf_request,
    verify_csrf_token,
)

NOW_MS = 1_700_000_000_000
DAY_MS = settings.CSRF_TOKEN_EXPIRY_SECONDS * 1000
REFRESH_PATH = f"{settings.API_V1_STR}/auth/refresh"


def _mutate_char(s: str, index: int) -> str:
    replacement = "0" if s[index] != "0" else "1"
    return s[:index] + replacement + s[index + 1 :]


@pytest.mark.unit
class TestCsrfToken:
    """Tests for generate_csrf_token / verify_csrf_token."""

    def test_token_format(self):
        value, timestamp, signature = generate_csrf_token(now_ms=NOW_MS).split(".")

        assert len(value) == 64  # 32 random bytes, hex
        assert timestamp == str(NOW_MS)
        assert len(signature) == 64  # HMAC-SHA256, hex

    def test_tokens_are_unique(self):
        assert generate_csrf_token() != generate_csrf_token()

    def test_fresh_immediately_after_generation(self):
        assert verify_csrf_token(generate_csrf_token()) is CsrfVerification.FRESH

    def test_fresh_at_end_of_window(self):
        token = generate_csrf_token(now_ms=NOW_MS)

        assert verify_csrf_token(token, now_ms=NOW_MS + DAY_MS) is CsrfVerification.FRESH

    def test_expired_after_window(self):
        token = generate_csrf_token(now_ms=NOW_MS)

        result = verify_csrf_token(token, now_ms=NOW_MS + DAY_MS + 1)

        assert result is CsrfVerification.EXPIRED
        assert result.signature_valid

    def test_any_signature_mutation_is_invalid(self):
        token = generate_csrf_token(now_ms=NOW_MS)
        payload, signature = token.rsplit(".", 1)

        for i in range(len(signature)):
            mutated = f"{payload}.{_mutate_char(signature, i)}"
            assert verify_csrf_token(mutated, now_ms=NOW_MS) is CsrfVerification.INVALID

    def test_tampered_timestamp_is_invalid(self):
        value, timestamp, signature = generate_csrf_token(now_ms=NOW_MS).split(".")
        token = f"{value}.{int(timestamp) + 1}.{signature}"

        assert verify_csrf_token(token, now_ms=NOW_MS) is CsrfVerification.INVALID

    def test_signed_with_other_secret_is_invalid(self, monkeypatch):
        monkeypatch.setattr(settings, "CSRF_SECRET", "another-secret")
        token = generate_csrf_token(now_ms=NOW_MS)
        monkeypatch.undo()

        assert verify_csrf_token(token, now_ms=NOW_MS) is CsrfVerification.INVALID

    @pytest.mark.parametrize(
        "token",
        [None, "", "abc", "a.b", "a.b.c.d", "..", "a..c", ".123.sig"],
    )
    def test_malformed_is_invalid(self, token):
        assert verify_csrf_token(token) is CsrfVerification.INVALID

    def test_set_csrf_cookie(self):
        response = Response()

        token = set_csrf_cookie(response)

        cookie = response.headers["set-cookie"]
        assert cookie.startswith(f"csrf_token={token};")
        assert "HttpOnly" in cookie
        assert "samesite=strict" in cookie.lower()
        assert f"Max-Age={settings.CSRF_TOKEN_EXPIRY_SECONDS}" in cookie
        assert "Path=/" in cookie


@pytest.mark.unit
class TestValidateCsrfRequest:
    """Tests for the double-submit decision."""

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS", "TRACE"])
    def test_safe_methods_pass(self, method):
        assert validate_csrf_request(method, REFRESH_PATH, None, None) is True

    @pytest.mark.parametrize("path", ["/auth/login", "/auth/register"])
    def test_exempt_paths_pass(self, path):
        assert validate_csrf_request("POST", f"{settings.API_V1_STR}{path}", None, None) is True

    def test_missing_header_fails(self):
        token = generate_csrf_token()

        assert validate_csrf_request("POST", REFRESH_PATH, token, None) is False

    def test_missing_cookie_fails(self):
        token = generate_csrf_token()

        assert validate_csrf_request("POST", REFRESH_PATH, None, token) is False

    def test_matching_tokens_pass(self):
        token = generate_csrf_token()

        assert validate_csrf_request("POST", REFRESH_PATH, token, token) is True

    def test_mismatched_tokens_fail(self):
        assert (
            validate_csrf_request("POST", REFRESH_PATH, generate_csrf_token(), generate_csrf_token())
            is False
        )

    def test_different_length_header_fails(self):
        token = generate_csrf_token()

        assert validate_csrf_request("POST", REFRESH_PATH, token, token + "x") is False

    def test_matching_but_forged_tokens_fail(self):
        forged = "a" * 64 + ".1700000000000." + "b" * 64

        assert validate_csrf_request("POST", REFRESH_PATH, forged, forged) is False

    def test_expired_token_accepted_by_default(self):
        token = generate_csrf_token(now_ms=NOW_MS - 2 * DAY_MS)

        assert validate_csrf_request("DELETE", REFRESH_PATH, token, token) is True

    def test_expired_token_rejected_when_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "CSRF_REJECT_EXPIRED", True)
        expired = generate_csrf_token(now_ms=NOW_MS - 2 * DAY_MS)
        fresh = generate_csrf_token()

        assert validate_csrf_request("POST", REFRESH_PATH, expired, expired) is False
        assert validate_csrf_request("POST", REFRESH_PATH, fresh, fresh) is True
