"""
auth/passwords.py -- Password policy, hashing and verification.

Passwords: bcrypt used directly (no passlib wrapper), cost factor from
    Settings.bcrypt_rounds (>= 10, validated at startup). bcrypt salts every
    hash, so two hashes of the same plaintext never match byte-for-byte, and
    checkpw() compares in constant time.

    bcrypt only ever considers the first 72 bytes of its input, and the
    policy allows up to 100 characters. The plaintext is therefore pre-hashed
    (base64 of its SHA-256 digest, 44 bytes) before it reaches bcrypt, the
    same construction as passlib's bcrypt_sha256, so every character of the
    password counts. hash and verify must pre-hash identically.

Concurrency: bcrypt is CPU-bound. Route handlers that hash are plain `def`
    functions, which FastAPI runs in its worker thread pool so the event loop
    keeps serving other requests. _HASH_SLOTS additionally caps how many
    bcrypt computations run at once, so a burst of sign-ins cannot pin every
    core.

Plaintext passwords are never logged, stored or echoed in error messages.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import base64
import hashlib
import threading

import bcrypt

from core.config import get_settings
from core.errors import PolicyViolation

_settings = get_settings()

_MIN_LENGTH = 8
_MAX_LENGTH = 100

_HASH_SLOTS = threading.BoundedSemaphore(_settings.hash_concurrency)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


def is_password_valid(plain: str) -> bool:
    """Return True if the plaintext satisfies the password policy.

    Policy: 8-100 characters, at least one uppercase letter, one lowercase
    letter and one digit, and no whitespace anywhere.
    """
    return (
        _MIN_LENGTH <= len(plain) <= _MAX_LENGTH
        and any(c.isupper() for c in plain)
        and any(c.islower() for c in plain)
        and any(c.isdigit() for c in plain)
        and not any(c.isspace() for c in plain)
    )


def check_password_policy(plain: str) -> None:
    """Raise PolicyViolation unless the plaintext satisfies the password policy."""
    if not isinstance(plain, str) or not is_password_valid(plain):
        raise PolicyViolation(
            "Password must be 8-100 characters with at least one uppercase letter, "
            "one lowercase letter and one digit, and no spaces."
        )


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def _encode(plain: str) -> bytes:
    return base64.b64encode(hashlib.sha256(plain.encode("utf-8")).digest())


def hash_password(plain: str) -> str:
    """Validate the plaintext against the policy and return its bcrypt hash."""
    check_password_policy(plain)
    with _HASH_SLOTS:
        hashed = bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=_settings.bcrypt_rounds))
    return hashed.decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext matches the bcrypt hash.

    A wrong password, a malformed hash or a non-string input all return
    False; nothing about the mismatch is raised to the caller.
    """
    try:
        with _HASH_SLOTS:
            return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except (ValueError, TypeError, AttributeError):
        return False


# Timing equalization dummy hash.
# Sign-in runs verify_password() against this when no active account matches
# the email, so "unknown email" costs the same bcrypt work as "wrong password"
# and response time does not reveal which accounts exist.
_DUMMY_HASH: str = bcrypt.hashpw(b"gatehouse-timing-dummy", bcrypt.gensalt(rounds=_settings.bcrypt_rounds)).decode(
    "utf-8"
)


def burn_verification(plain: str) -> None:
    """Spend one bcrypt verification without a real hash to compare against."""
    verify_password(plain, _DUMMY_HASH)
