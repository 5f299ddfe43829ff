"""
auth/ephemeral.py -- Single-use, time-limited tokens for password reset and
email verification.

Each account has exactly one slot per TokenKind. Issuing writes a new token
and expiry into the slot in one UPDATE, so a previously issued token stops
working the moment a new one exists. Consuming is a compare-and-clear: the
UPDATE only matches while the slot still holds the presented token, and it
applies the caller's changes (new password hash, email_verified=True) in the
same statement. Two concurrent consumers of one token cannot both succeed.

Tokens are secrets.token_hex(20): 160 bits from the OS CSPRNG.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from html import escape

from auth.models import Account, TokenKind
from auth.store import AccountStore
from core.config import get_settings
from core.errors import ExpiredToken, InvalidToken, NotFoundError

logger = logging.getLogger("gatehouse.auth")

_settings = get_settings()

_TOKEN_BYTES = 20


def generate_token() -> str:
    return secrets.token_hex(_TOKEN_BYTES)


def issue_token(
    store: AccountStore,
    account: Account,
    kind: TokenKind,
    now: datetime | None = None,
) -> tuple[str, datetime]:
    """Issue a fresh token of `kind` for the account and return (token, expires_at).

    Raises NotFoundError if the account no longer exists or was soft-deleted.
    """
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(seconds=_settings.ephemeral_token_ttl_seconds)
    token = generate_token()
    if not store.set_token(account.id, kind, token, expires_at.isoformat()):
        raise NotFoundError("Account not found")
    logger.info("Issued %s token for account %s (expires %s)", kind.value, account.id, expires_at.isoformat())
    return token, expires_at


def consume_token(
    store: AccountStore,
    kind: TokenKind,
    token: str,
    now: datetime | None = None,
    **changes,
) -> Account:
    """Consume a token of `kind`, applying `changes` to the account atomically.

    Raises:
        InvalidToken: no active account holds this token, or a concurrent
                      consumer cleared it first.
        ExpiredToken: the token is past its expiry. The slot is cleared so
                      the token cannot be presented again.

    Returns the account as it was before the update; callers that need the
    new state re-read it from the store.
    """
    if not token:
        raise InvalidToken()
    account = store.get_by_token(kind, token)
    if account is None:
        raise InvalidToken()

    current = now or datetime.now(timezone.utc)
    if _is_expired(account, kind, current):
        store.clear_token(account.id, kind, token)
        logger.info("Rejected expired %s token for account %s", kind.value, account.id)
        raise ExpiredToken()

    if not store.clear_token(account.id, kind, token, **changes):
        raise InvalidToken()
    logger.info("Consumed %s token for account %s", kind.value, account.id)
    return account


def _is_expired(account: Account, kind: TokenKind, now: datetime) -> bool:
    raw = (
        account.password_reset_token_expires_at
        if kind is TokenKind.RESET_PASSWORD
        else account.email_verification_token_expires_at
    )
    # A token without an expiry cannot be written through the store; treat
    # one found in the data as expired rather than valid forever.
    if not raw:
        return True
    return now > datetime.fromisoformat(raw)


# ---------------------------------------------------------------------------
# Email bodies
# ---------------------------------------------------------------------------


def render_password_reset_email(token: str) -> str:
    link = f"{_settings.frontend_url.rstrip('/')}/reset-password/{escape(token)}"
    return (
        "<h1>Reset your password</h1>\n"
        "<p>Click the link below to reset your password. The link expires in one hour.</p>\n"
        f'<a href="{link}">Reset Password</a>\n'
    )


def render_email_verification_email(token: str) -> str:
    link = f"{_settings.frontend_url.rstrip('/')}/verify-email/{escape(token)}"
    return (
        "<h1>Verify your email address</h1>\n"
        "<p>Click the link below to verify your email address.</p>\n"
        f'<a href="{link}">Verify Email</a>\n'
    )
