"""Unit tests for auth/dependencies.py -- the auth gate.

Covers every branch of authenticate():
  no token -> 401 "Unauthorized"
  bearer header and jwt cookie both accepted; header wins
  expired token -> TokenExpired, malformed token -> TokenMalformed
  valid token for a missing or soft-deleted account -> 401 "Unauthorized"
  store failures propagate unchanged
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from auth.dependencies import authenticate, extract_token
from auth.store import AccountStore
from auth.tokens import SESSION_COOKIE, issue_session_token
from core.errors import AuthenticationError, DatabaseError, TokenExpired, TokenMalformed


class _BrokenStore:
    def get_by_id(self, account_id: str):
        raise DatabaseError("connection refused")


class TestExtractToken:
    def test_bearer_header(self) -> None:
        assert extract_token({"authorization": "Bearer abc.def.ghi"}) == "abc.def.ghi"

    def test_bearer_prefix_is_case_insensitive(self) -> None:
        assert extract_token({"authorization": "bearer abc"}) == "abc"

    def test_cookie_fallback(self) -> None:
        assert extract_token({}, {SESSION_COOKIE: "from-cookie"}) == "from-cookie"

    def test_header_wins_over_cookie(self) -> None:
        assert extract_token({"authorization": "Bearer from-header"}, {SESSION_COOKIE: "from-cookie"}) == "from-header"

    @pytest.mark.parametrize("header", ["", "Basic dXNlcjpwYXNz", "Bearer ", "Token abc"])
    def test_unusable_header_without_cookie(self, header: str) -> None:
        assert extract_token({"authorization": header}) is None

    def test_nothing_present(self) -> None:
        assert extract_token({}, {}) is None


class TestAuthenticate:
    def test_valid_bearer_resolves_account(self, store: AccountStore, make_account) -> None:
        account = make_account()
        token = issue_session_token(account.id)
        resolved = authenticate({"authorization": f"Bearer {token}"}, None, store)
        assert resolved.id == account.id
        assert resolved.username == account.username

    def test_valid_cookie_resolves_account(self, store: AccountStore, make_account) -> None:
        account = make_account()
        resolved = authenticate({}, {SESSION_COOKIE: issue_session_token(account.id)}, store)
        assert resolved.id == account.id

    def test_no_token(self, store: AccountStore) -> None:
        with pytest.raises(AuthenticationError) as excinfo:
            authenticate({}, {}, store)
        assert excinfo.value.message == "Unauthorized"

    def test_expired_token(self, store: AccountStore, make_account) -> None:
        account = make_account()
        token = issue_session_token(account.id, now=datetime.now(timezone.utc) - timedelta(days=2))
        with pytest.raises(TokenExpired) as excinfo:
            authenticate({"authorization": f"Bearer {token}"}, None, store)
        assert excinfo.value.message == "Token expired"

    def test_malformed_token(self, store: AccountStore) -> None:
        with pytest.raises(TokenMalformed) as excinfo:
            authenticate({"authorization": "Bearer not.a.token"}, None, store)
        assert excinfo.value.message == "Unauthorized"

    def test_unknown_account(self, store: AccountStore) -> None:
        token = issue_session_token(str(uuid.uuid4()))
        with pytest.raises(AuthenticationError) as excinfo:
            authenticate({"authorization": f"Bearer {token}"}, None, store)
        assert excinfo.value.message == "Unauthorized"

    def test_soft_deleted_account(self, store: AccountStore, make_account) -> None:
        account = make_account()
        token = issue_session_token(account.id)
        store.soft_delete(account.id)
        with pytest.raises(AuthenticationError) as excinfo:
            authenticate({"authorization": f"Bearer {token}"}, None, store)
        assert excinfo.value.status == 401

    def test_store_failure_propagates(self) -> None:
        token = issue_session_token(str(uuid.uuid4()))
        with pytest.raises(DatabaseError):
            authenticate({"authorization": f"Bearer {token}"}, None, _BrokenStore())  # type: ignore[arg-type]
