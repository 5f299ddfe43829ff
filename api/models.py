"""
API request and response models for Gatehouse REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the Account dataclass in auth/models.py,
which owns the internal representation. Route handlers map between the two,
and no response model has a field for the password hash or the single-use
tokens.

Fields here only bound sizes. Domain rules (password policy, email format,
uniqueness) are enforced in auth/ so every entry point shares them.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Account

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignUpRequest(BaseModel):
    """Request body for POST /api/v1/auth/sign-up and POST /api/v1/users."""

    username: str = Field(min_length=1, max_length=50)
    email: str = Field(min_length=3, max_length=254)
    password: str = Field(max_length=255)
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)


class SignInRequest(BaseModel):
    """Request body for POST /api/v1/auth/sign-in."""

    email: str = Field(max_length=254)
    password: str = Field(max_length=255)


class PasswordResetRequest(BaseModel):
    email: str = Field(max_length=254)


class PasswordResetConfirm(BaseModel):
    token: str = Field(min_length=1, max_length=128)
    new_password: str = Field(max_length=255)


class EmailVerificationConfirm(BaseModel):
    token: str = Field(min_length=1, max_length=128)


class AccountUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}. Every field is optional."""

    model_config = ConfigDict(extra="forbid")

    username: Optional[str] = Field(default=None, min_length=1, max_length=50)
    email: Optional[str] = Field(default=None, min_length=3, max_length=254)
    password: Optional[str] = Field(default=None, max_length=255)
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class SessionResponse(BaseModel):
    """Returned by sign-up, sign-in and refresh. The same token is also set as the jwt cookie."""

    model_config = ConfigDict(frozen=True)

    message: str
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AccountResponse(BaseModel):
    """Public view of an account."""

    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email_verified: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            username=account.username,
            first_name=account.first_name,
            last_name=account.last_name,
            email_verified=account.email_verified,
            created_at=account.created_at or "",
            updated_at=account.updated_at or "",
        )


class MeResponse(AccountResponse):
    """The current account, including its email address."""

    email: str

    @classmethod
    def from_account(cls, account: Account) -> "MeResponse":
        return cls(
            id=account.id,
            username=account.username,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            email_verified=account.email_verified,
            created_at=account.created_at or "",
            updated_at=account.updated_at or "",
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    details: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
