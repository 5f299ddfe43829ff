"""
auth/dependencies.py -- The auth gate: turns a request's session token into
an authenticated Account or a 401.

Token sources, checked in priority order:
  1. Authorization: Bearer <token> header -- API clients.
  2. "jwt" cookie -- set by sign-in / sign-up for the web-facing surface.

Outcomes of authenticate():
  no token                    -> AuthenticationError("Unauthorized")
  token expired               -> TokenExpired ("Token expired")
  bad signature / structure   -> TokenMalformed ("Unauthorized")
  valid, account missing or
  soft-deleted                -> AuthenticationError("Unauthorized")
  valid, account active       -> Account

Anything else (a DatabaseError from the lookup, for instance) propagates
unchanged to the exception handlers in api/main.py.

get_current_account() is the FastAPI dependency. It records the account on
request.state.account so the error handlers can log who was acting; it
never modifies the account.

Layer rule: auth/dependencies.py may import from fastapi (Request) because
it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Mapping

from fastapi import Request

from auth.models import Account
from auth.store import AccountStore
from auth.tokens import SESSION_COOKIE, verify_session_token
from core.errors import AuthenticationError

_BEARER_PREFIX = "bearer "


def extract_token(headers: Mapping[str, str], cookies: Mapping[str, str] | None = None) -> str | None:
    """Return the session token carried by the request, or None."""
    auth_header = headers.get("authorization") or headers.get("Authorization") or ""
    if auth_header[: len(_BEARER_PREFIX)].lower() == _BEARER_PREFIX:
        token = auth_header[len(_BEARER_PREFIX) :].strip()
        if token:
            return token
    if cookies:
        return cookies.get(SESSION_COOKIE) or None
    return None


def authenticate(
    headers: Mapping[str, str],
    cookies: Mapping[str, str] | None,
    store: AccountStore,
    secret: str | None = None,
) -> Account:
    """Resolve the request's session token to an active Account."""
    token = extract_token(headers, cookies)
    if token is None:
        raise AuthenticationError("Unauthorized")
    account_id = verify_session_token(token, secret=secret)
    account = store.get_by_id(account_id)
    if account is None:
        raise AuthenticationError("Unauthorized")
    return account


def get_current_account(request: Request) -> Account:
    """Require a valid session. Raises AuthenticationError (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: Account = Depends(get_current_account)): ...
    """
    store: AccountStore = request.app.state.account_store
    account = authenticate(request.headers, request.cookies, store)
    request.state.account = account
    return account
