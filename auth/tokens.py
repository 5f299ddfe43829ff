"""
auth/tokens.py -- Session token issuance, refresh and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with Settings.jwt_secret and
       carry exactly three claims: sub (account id), iat and exp. Nothing
       about the account besides its id goes into the token, and nothing
       about the token goes into the database -- sessions are stateless.

  Verification is purely cryptographic: signature, structure and exp. It does
       not consult the store. Whether the account still exists (and is not
       soft-deleted) is the auth gate's job (auth/dependencies.py).

  Revocation: there is none. Sign-out clears the client cookie; a copied
       token stays valid until exp. Keep session_token_ttl_seconds short if
       that matters for a deployment.

  Cookie: the web-facing surface carries the token in an httpOnly cookie
       named "jwt" (Secure in production). API clients send it as
       "Authorization: Bearer <token>" instead.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import Account
from core.config import get_settings
from core.errors import TokenExpired, TokenMalformed

logger = logging.getLogger("gatehouse.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

SESSION_COOKIE = "jwt"


def _default_ttl() -> timedelta:
    return timedelta(seconds=_settings.session_token_ttl_seconds)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def issue_session_token(
    account_id: str,
    ttl: timedelta | None = None,
    now: datetime | None = None,
    secret: str | None = None,
) -> str:
    """Encode a signed session token for an account.

    Args:
        account_id: The account's id, stored as the sub claim.
        ttl:        Token lifetime. Defaults to Settings.session_token_ttl_seconds (1 day).
        now:        Issue time; tests pass a fixed or past time.
        secret:     Signing secret. Defaults to Settings.jwt_secret.
    """
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        "sub": str(account_id),
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + (ttl if ttl is not None else _default_ttl())).timestamp()),
    }
    return jwt.encode(payload, secret or _settings.jwt_secret, algorithm=_ALGORITHM)


def refresh_session_token(
    account: Account,
    ttl: timedelta | None = None,
    now: datetime | None = None,
    secret: str | None = None,
) -> str:
    """Issue a fresh token for an account that already passed the auth gate.

    The old token is not needed and not invalidated.
    """
    return issue_session_token(account.id, ttl=ttl, now=now, secret=secret)


def verify_session_token(token: str, secret: str | None = None) -> str:
    """Verify a session token and return the account id it is bound to.

    Raises TokenExpired once exp has passed, and TokenMalformed for a bad
    signature, a structurally broken token or a missing subject.
    """
    try:
        payload = jwt.decode(token, secret or _settings.jwt_secret, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpired() from exc
    except JWTError as exc:
        raise TokenMalformed() from exc
    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject or "exp" not in payload:
        raise TokenMalformed()
    return subject


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POSTs.
    secure: only sent over HTTPS in production (Settings.cookies_secure).
    max_age: Settings.session_cookie_max_age_seconds (7 days by default).
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.cookies_secure,
        max_age=_settings.session_cookie_max_age_seconds,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE, httponly=True, samesite="lax", secure=_settings.cookies_secure)
