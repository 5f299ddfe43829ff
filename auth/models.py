"""
auth/models.py -- Domain dataclasses for account entities.

Pattern: Data class (pure data container, zero logic). The store maps rows to
Account; passwords.py, ephemeral.py and tokens.py operate on an Account passed
in explicitly rather than through methods attached to it.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TokenKind(str, Enum):
    """The two single-use token slots every account carries."""

    RESET_PASSWORD = "reset_password"
    VERIFY_EMAIL = "verify_email"


@dataclass
class Account:
    """An identity and credential record.

    password_hash is a bcrypt hash and is never serialized outward -- the API
    layer maps Account onto response models that do not carry it.

    Each token field is paired with an *_expires_at field; the store writes
    and clears the pair together, so one is set iff the other is.

    Timestamps are ISO 8601 UTC strings. deleted_at marks a soft-deleted
    account; such accounts are invisible to every auth lookup.
    """

    username: str
    email: str
    password_hash: str
    id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email_verified: bool = False
    password_reset_token: str | None = None
    password_reset_token_expires_at: str | None = None
    email_verification_token: str | None = None
    email_verification_token_expires_at: str | None = None
    deleted_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
