"""
api/routes/v1/auth.py -- Sign-up, sign-in, session and single-use token endpoints.

Routes:
  POST /api/v1/auth/sign-up                     -- create account; sets jwt cookie
  POST /api/v1/auth/sign-in                     -- email + password; sets jwt cookie
  POST /api/v1/auth/sign-out                    -- clears cookie
  POST /api/v1/auth/refresh                     -- new token for the current session (requires auth)
  GET  /api/v1/auth/me                          -- current account (requires auth)
  POST /api/v1/auth/password-reset              -- mail a reset link
  POST /api/v1/auth/password-reset/confirm      -- consume reset token, set new password
  POST /api/v1/auth/email-verification          -- mail a verification link (requires auth)
  POST /api/v1/auth/email-verification/confirm  -- consume verification token

Security:
  POST /sign-in is rate-limited per IP (Settings.sign_in_rate_limit).
  Sign-in failures all read "Invalid credentials" with status 401.
  POST /password-reset answers 202 with the same body whether or not the
      email belongs to an account.
  Cache-Control: no-store on every response that carries a token.

Handlers that hash or verify passwords are plain `def` so FastAPI runs them
in its worker pool instead of on the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    EmailVerificationConfirm,
    MeResponse,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
)
from auth import service
from auth.dependencies import get_current_account
from auth.models import Account
from auth.store import AccountStore
from auth.tokens import clear_session_cookie, issue_session_token, refresh_session_token, set_session_cookie
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST /auth/sign-up, /auth/sign-in, /auth/sign-out:      public
# - POST /auth/password-reset, /auth/password-reset/confirm: public (the token is the credential)
# - POST /auth/email-verification/confirm:                 public (the token is the credential)
# - POST /auth/refresh, GET /auth/me:                      requires auth (get_current_account)
# - POST /auth/email-verification:                         requires auth (get_current_account)
router = APIRouter()

_RESET_REQUESTED = "If an account exists for that email, a password reset link has been sent."


def _session_response(message: str, token: str, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=SessionResponse(
            message=message,
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.session_token_ttl_seconds,
        ).model_dump(),
    )
    set_session_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/sign-up", response_model=SessionResponse, status_code=201)
def sign_up(request: Request, body: SignUpRequest) -> JSONResponse:
    """Create an account and start a session for it."""
    store: AccountStore = request.app.state.account_store
    account = service.sign_up(
        store,
        username=body.username,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return _session_response("Successfully signed up", issue_session_token(account.id), status_code=201)


@limiter.limit(_settings.sign_in_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/sign-in", response_model=SessionResponse)
def sign_in(request: Request, body: SignInRequest) -> JSONResponse:
    """Authenticate with email and password; set the jwt cookie and return the token."""
    store: AccountStore = request.app.state.account_store
    account = service.authenticate_account(store, body.email, body.password)
    return _session_response("Successfully signed in", issue_session_token(account.id))


@router.post("/auth/sign-out", response_model=MessageResponse)
async def sign_out() -> JSONResponse:
    """Clear the jwt cookie. The token itself stays valid until it expires."""
    resp = JSONResponse(content={"message": "Successfully signed out"})
    clear_session_cookie(resp)
    return resp


@router.post("/auth/password-reset", response_model=MessageResponse, status_code=202)
async def request_password_reset(request: Request, body: PasswordResetRequest) -> MessageResponse:
    store: AccountStore = request.app.state.account_store
    service.request_password_reset(store, request.app.state.mailer, body.email)
    return MessageResponse(message=_RESET_REQUESTED)


@router.post("/auth/password-reset/confirm", response_model=MessageResponse)
def confirm_password_reset(request: Request, body: PasswordResetConfirm) -> MessageResponse:
    """Consume a reset token and set the new password. The token cannot be reused."""
    store: AccountStore = request.app.state.account_store
    service.reset_password(store, body.token, body.new_password)
    return MessageResponse(message="Successfully reset password")


@router.post("/auth/email-verification/confirm", response_model=MessageResponse)
async def confirm_email_verification(request: Request, body: EmailVerificationConfirm) -> MessageResponse:
    store: AccountStore = request.app.state.account_store
    service.verify_email(store, body.token)
    return MessageResponse(message="Successfully verified email")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/refresh", response_model=SessionResponse)
async def refresh(current_account: Account = Depends(get_current_account)) -> JSONResponse:
    """Issue a fresh session token for the already-authenticated account."""
    return _session_response("Successfully refreshed JWT token", refresh_session_token(current_account))


@router.get("/auth/me", response_model=MeResponse)
async def me(current_account: Account = Depends(get_current_account)) -> MeResponse:
    return MeResponse.from_account(current_account)


@router.post("/auth/email-verification", response_model=MessageResponse, status_code=202)
async def request_email_verification(
    request: Request,
    current_account: Account = Depends(get_current_account),
) -> MessageResponse:
    """Mail a verification link to the current account's address."""
    if current_account.email_verified:
        return MessageResponse(message="Email already verified")
    store: AccountStore = request.app.state.account_store
    service.request_email_verification(store, request.app.state.mailer, current_account)
    return MessageResponse(message="Verification email sent")
