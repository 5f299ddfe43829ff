"""Unit tests for auth/tokens.py -- session token issue, refresh and verify.

Covers:
- issue -> verify returns the same account id
- payload carries exactly sub / iat / exp, with exp = iat + ttl
- expired tokens raise TokenExpired; tampered or foreign-secret tokens raise TokenMalformed
- tokens without a subject are rejected
- refresh issues a verifiable token for the same account
- cookie helpers set and clear the httpOnly "jwt" cookie
"""

from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt
from starlette.responses import Response

from auth.models import Account
from auth.tokens import (
    SESSION_COOKIE,
    clear_session_cookie,
    issue_session_token,
    refresh_session_token,
    set_session_cookie,
    verify_session_token,
)
from core.config import get_settings
from core.errors import AuthenticationError, TokenExpired, TokenMalformed

_ACCOUNT_ID = "0b6c1f4e-1f0e-4c7e-9a53-5a3e8d1b2c10"


def _b64url(data: dict) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _flip(segment: str, index: int) -> str:
    replacement = "A" if segment[index] != "A" else "B"
    return segment[:index] + replacement + segment[index + 1 :]


class TestIssueAndVerify:
    def test_round_trip(self) -> None:
        token = issue_session_token(_ACCOUNT_ID)
        assert verify_session_token(token) == _ACCOUNT_ID

    def test_payload_has_only_sub_iat_exp(self) -> None:
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        token = issue_session_token(_ACCOUNT_ID, ttl=timedelta(hours=2), now=now)
        claims = jwt.get_unverified_claims(token)
        assert set(claims) == {"sub", "iat", "exp"}
        assert claims["sub"] == _ACCOUNT_ID
        assert claims["iat"] == int(now.timestamp())
        assert claims["exp"] - claims["iat"] == 7200

    def test_default_ttl_is_one_day(self) -> None:
        claims = jwt.get_unverified_claims(issue_session_token(_ACCOUNT_ID))
        assert claims["exp"] - claims["iat"] == get_settings().session_token_ttl_seconds == 86400

    def test_uses_hs256(self) -> None:
        assert jwt.get_unverified_header(issue_session_token(_ACCOUNT_ID))["alg"] == "HS256"

    def test_expired_token_raises_token_expired(self) -> None:
        token = issue_session_token(_ACCOUNT_ID, now=datetime.now(timezone.utc) - timedelta(days=2))
        with pytest.raises(TokenExpired) as excinfo:
            verify_session_token(token)
        assert excinfo.value.message == "Token expired"
        assert isinstance(excinfo.value, AuthenticationError)

    def test_tampered_signature_is_malformed(self) -> None:
        header, payload, signature = issue_session_token(_ACCOUNT_ID).split(".")
        forged = ".".join([header, payload, _flip(signature, len(signature) // 2)])
        with pytest.raises(TokenMalformed):
            verify_session_token(forged)

    def test_tampered_payload_is_malformed(self) -> None:
        token = issue_session_token(_ACCOUNT_ID)
        header, _payload, signature = token.split(".")
        claims = jwt.get_unverified_claims(token)
        claims["sub"] = "someone-else"
        with pytest.raises(TokenMalformed):
            verify_session_token(".".join([header, _b64url(claims), signature]))

    def test_foreign_secret_is_malformed(self) -> None:
        token = issue_session_token(_ACCOUNT_ID, secret="f" * 64)
        with pytest.raises(TokenMalformed):
            verify_session_token(token)

    @pytest.mark.parametrize("garbage", ["", "not-a-jwt", "a.b.c", "x" * 300])
    def test_garbage_is_malformed(self, garbage: str) -> None:
        with pytest.raises(TokenMalformed) as excinfo:
            verify_session_token(garbage)
        assert excinfo.value.message == "Unauthorized"

    def test_missing_subject_is_malformed(self) -> None:
        now = int(datetime.now(timezone.utc).timestamp())
        token = jwt.encode({"iat": now, "exp": now + 60}, get_settings().jwt_secret, algorithm="HS256")
        with pytest.raises(TokenMalformed):
            verify_session_token(token)

    def test_missing_exp_is_malformed(self) -> None:
        token = jwt.encode({"sub": _ACCOUNT_ID}, get_settings().jwt_secret, algorithm="HS256")
        with pytest.raises(TokenMalformed):
            verify_session_token(token)


class TestRefresh:
    def test_refresh_issues_token_for_same_account(self) -> None:
        account = Account(id=_ACCOUNT_ID, username="alice", email="alice@example.com", password_hash="x")
        later = datetime.now(timezone.utc) + timedelta(seconds=5)
        token = refresh_session_token(account, now=later)
        assert verify_session_token(token) == _ACCOUNT_ID
        assert jwt.get_unverified_claims(token)["iat"] == int(later.timestamp())


class TestCookies:
    def test_set_session_cookie_is_http_only(self) -> None:
        resp = Response()
        set_session_cookie(resp, "tok123")
        cookie = resp.headers["set-cookie"]
        assert cookie.startswith(f"{SESSION_COOKIE}=tok123")
        assert "httponly" in cookie.lower()
        assert "max-age=604800" in cookie.lower()
        assert "samesite=lax" in cookie.lower()

    def test_secure_flag_off_outside_production(self) -> None:
        resp = Response()
        set_session_cookie(resp, "tok123")
        assert "secure" not in resp.headers["set-cookie"].lower()

    def test_clear_session_cookie_expires_it(self) -> None:
        resp = Response()
        clear_session_cookie(resp)
        cookie = resp.headers["set-cookie"].lower()
        assert cookie.startswith(f"{SESSION_COOKIE}=")
        assert "max-age=0" in cookie
