"""
tests/conftest.py -- Shared test fixtures for Gatehouse.

This module provides:
  - store: a fresh in-memory AccountStore per test (unit tests)
  - mailer: a CapturingMailer that records every message sent
  - make_account: factory that creates an account directly through the service layer
  - _make_test_store(): isolated named shared-memory DB for API tests
  - _patch_lifespan(): wires the test store and a capturing mailer into app.state
  - api_client: module-scoped TestClient plus a signed-in account's token and id
  - _fresh_cookie_jar: autouse; clears the shared client's cookies before each API test
  - register: signs up a new account over HTTP and returns (account_id, token)

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API fixtures because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to each
worker thread.

DEBUG must be set before any auth/core import so get_settings() auto-generates
JWT_SECRET instead of raising. The sign-in rate limit is raised so the suite's
many sign-ins from the single "testclient" address are never throttled.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any auth/core import -- Settings is read at import time.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SIGN_IN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth import service
from auth.models import Account
from auth.store import AccountStore
from auth.tokens import issue_session_token

DEFAULT_PASSWORD = "Str0ngPass!"


class CapturingMailer:
    """Mailer that keeps every message so tests can pull tokens out of links."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    def send(self, to: str, subject: str, html: str) -> None:
        self.sent.append((to, subject, html))

    def last_to(self, to: str) -> str:
        """Return the HTML body of the most recent message sent to `to`."""
        for recipient, _subject, html in reversed(self.sent):
            if recipient == to:
                return html
        raise AssertionError(f"no email sent to {to}")


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def mailer() -> CapturingMailer:
    return CapturingMailer()


@pytest.fixture
def make_account(store: AccountStore) -> Callable[..., Account]:
    """Return a factory creating an account with a unique username and email."""

    def _make(username: str | None = None, email: str | None = None, password: str = DEFAULT_PASSWORD) -> Account:
        name = username or f"user_{uuid.uuid4().hex[:8]}"
        return service.sign_up(store, username=name, email=email or f"{name}@example.com", password=password)

    return _make


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> AccountStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    return AccountStore(db_url=f"sqlite:///file:test_accounts_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(account_store: AccountStore, mailer: CapturingMailer):
    """Return a lifespan that installs the test store and mailer on app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = account_store
        app.state.mailer = mailer
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, token, account_id) for API integration tests.

    The account "apiuser" (password DEFAULT_PASSWORD) is created before the
    client starts; token is a valid session token for it.
    """
    account_store = _make_test_store(request.module.__name__.rsplit(".", 1)[-1])
    account = service.sign_up(
        account_store,
        username="apiuser",
        email="apiuser@example.com",
        password=DEFAULT_PASSWORD,
    )
    token = issue_session_token(account.id)

    app.router.lifespan_context = _patch_lifespan(account_store, CapturingMailer())

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, account.id

    account_store.close()


@pytest.fixture(autouse=True)
def _fresh_cookie_jar(request) -> None:
    """Drop cookies left by earlier tests; sign-up and sign-in set the jwt cookie."""
    if "api_client" in request.fixturenames:
        request.getfixturevalue("api_client")[0].cookies.clear()


@pytest.fixture
def register(api_client) -> Callable[..., tuple[str, str]]:
    """Return a helper that signs up a fresh account over HTTP -> (account_id, token)."""
    client, _token, _uid = api_client

    def _register(username: str | None = None, password: str = DEFAULT_PASSWORD) -> tuple[str, str]:
        name = username or f"user_{uuid.uuid4().hex[:8]}"
        resp = client.post(
            "/api/v1/auth/sign-up",
            json={"username": name, "email": f"{name}@example.com", "password": password},
        )
        assert resp.status_code == 201, resp.text
        token = resp.json()["access_token"]
        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        return me.json()["id"], token

    return _register
