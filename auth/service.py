"""
auth/service.py -- Account flows: sign-up, sign-in, password reset, email
verification and account management.

Each flow is a plain function taking the store (and mailer where needed)
explicitly. The functions compose the credential, ephemeral-token and
session-token components; they hold no state of their own.

Sign-in failure is deliberately uniform: an unknown email, a soft-deleted
account and a wrong password all raise AuthenticationError("Invalid
credentials") after the same amount of bcrypt work, so neither the message
nor the response time tells a caller which accounts exist.

Passwords are hashed only when a new plaintext arrives (sign-up, password
change, reset). Updating any other field never touches password_hash.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re

from auth.ephemeral import (
    consume_token,
    issue_token,
    render_email_verification_email,
    render_password_reset_email,
)
from auth.mail import Mailer
from auth.models import Account, TokenKind
from auth.passwords import burn_verification, hash_password, verify_password
from auth.store import AccountStore
from core.errors import AuthenticationError, NotFoundError, ValidationError

logger = logging.getLogger("gatehouse.auth")

EMAIL_PATTERN = re.compile(r"^[\w.\-]+@([\w-]+\.)+[\w-]{2,4}$")

INVALID_CREDENTIALS = "Invalid credentials"


# ---------------------------------------------------------------------------
# Input normalization
# ---------------------------------------------------------------------------


def normalize_email(email: str) -> str:
    """Trim and lower-case an email, raising ValidationError if it is not well formed."""
    normalized = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValidationError(f"{email!r} is not a valid email address.")
    return normalized


def _normalize_username(username: str) -> str:
    normalized = (username or "").strip()
    if not normalized:
        raise ValidationError("Username must not be empty.")
    return normalized


# ---------------------------------------------------------------------------
# Sign-up / sign-in
# ---------------------------------------------------------------------------


def sign_up(
    store: AccountStore,
    username: str,
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
) -> Account:
    """Create an account and return it as stored.

    Raises ValidationError for a malformed email or username, PolicyViolation
    for a weak password and ConflictError if the username or email is taken
    by an active account.
    """
    account = Account(
        username=_normalize_username(username),
        email=normalize_email(email),
        first_name=first_name,
        last_name=last_name,
        password_hash=hash_password(password),
    )
    account_id = store.create_account(account)
    logger.info("Created account %s", account_id)
    return get_account(store, account_id)


def authenticate_account(store: AccountStore, email: str, password: str) -> Account:
    """Return the active account matching the credentials or raise AuthenticationError."""
    try:
        normalized = normalize_email(email)
    except ValidationError:
        normalized = None
    account = store.get_by_email(normalized) if normalized else None
    if account is None:
        # Equalize timing -- do NOT return before running bcrypt.
        burn_verification(password)
        raise AuthenticationError(INVALID_CREDENTIALS)
    if not verify_password(password, account.password_hash):
        raise AuthenticationError(INVALID_CREDENTIALS)
    return account


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


def request_password_reset(store: AccountStore, mailer: Mailer, email: str) -> None:
    """Issue a reset token and mail it, if an active account has this email.

    Unknown or malformed emails return silently so the caller's response
    is the same whether or not the account exists.
    """
    try:
        normalized = normalize_email(email)
    except ValidationError:
        return
    account = store.get_by_email(normalized)
    if account is None:
        return
    token, _expires_at = issue_token(store, account, TokenKind.RESET_PASSWORD)
    mailer.send(account.email, "Reset your password", render_password_reset_email(token))


def reset_password(store: AccountStore, token: str, new_password: str) -> Account:
    """Consume a reset token and set the new password in the same update.

    The new password is validated and hashed before the token is touched, so
    a weak password does not burn the token.
    """
    password_hash = hash_password(new_password)
    account = consume_token(store, TokenKind.RESET_PASSWORD, token, password_hash=password_hash)
    logger.info("Password reset for account %s", account.id)
    return get_account(store, account.id)


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


def request_email_verification(store: AccountStore, mailer: Mailer, account: Account) -> None:
    token, _expires_at = issue_token(store, account, TokenKind.VERIFY_EMAIL)
    mailer.send(account.email, "Verify your email address", render_email_verification_email(token))


def verify_email(store: AccountStore, token: str) -> Account:
    account = consume_token(store, TokenKind.VERIFY_EMAIL, token, email_verified=True)
    logger.info("Email verified for account %s", account.id)
    return get_account(store, account.id)


# ---------------------------------------------------------------------------
# Account management
# ---------------------------------------------------------------------------


def get_account(store: AccountStore, account_id: str) -> Account:
    account = store.get_by_id(account_id)
    if account is None:
        raise NotFoundError("Account not found")
    return account


def list_accounts(store: AccountStore, limit: int = 20, skip: int = 0, sort: str | None = None) -> list[Account]:
    return store.list_accounts(limit=limit, skip=skip, sort=sort)


def update_account(store: AccountStore, account_id: str, changes: dict) -> Account:
    """Apply a partial update. A supplied password is policy-checked and re-hashed.

    Changing the email drops the verified flag and any outstanding
    verification token, so a link mailed to the old address cannot verify the
    new one.
    """
    fields: dict = {}
    clear_tokens: tuple[TokenKind, ...] = ()
    if changes.get("username") is not None:
        fields["username"] = _normalize_username(changes["username"])
    if changes.get("email") is not None:
        fields["email"] = normalize_email(changes["email"])
        if fields["email"] != get_account(store, account_id).email:
            fields["email_verified"] = False
            clear_tokens = (TokenKind.VERIFY_EMAIL,)
    for name in ("first_name", "last_name"):
        if changes.get(name) is not None:
            fields[name] = changes[name]
    if changes.get("password") is not None:
        fields["password_hash"] = hash_password(changes["password"])
    if not store.update_account(account_id, clear_tokens=clear_tokens, **fields):
        raise NotFoundError("Account not found")
    return get_account(store, account_id)


def delete_account(store: AccountStore, account_id: str) -> None:
    """Soft-delete an account. Its username and email become free for reuse."""
    if not store.soft_delete(account_id):
        raise NotFoundError("Account not found")
    logger.info("Soft-deleted account %s", account_id)
