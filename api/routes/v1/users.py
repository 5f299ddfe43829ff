"""
api/routes/v1/users.py -- Account management endpoints.

Routes (all behind the auth gate):
  GET    /api/v1/users        -- list active accounts (limit / skip / sort)
  POST   /api/v1/users        -- create an account
  GET    /api/v1/users/{id}   -- one active account
  PUT    /api/v1/users/{id}   -- partial update (own account only)
  DELETE /api/v1/users/{id}   -- soft delete (own account only)

Soft-deleted accounts answer 404 everywhere. Deleting an account frees its
username and email for new sign-ups.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import AccountResponse, AccountUpdate, MessageResponse, SignUpRequest
from auth import service
from auth.dependencies import get_current_account
from auth.models import Account
from auth.store import AccountStore
from core.errors import AuthorizationError

router = APIRouter(dependencies=[Depends(get_current_account)])


def _require_self(current_account: Account, account_id: str) -> None:
    if current_account.id != account_id:
        raise AuthorizationError("You can only modify your own account.")


@router.get("/users", response_model=list[AccountResponse])
async def list_users(
    request: Request,
    limit: int = Query(default=20, ge=1, le=100),
    skip: int = Query(default=0, ge=0),
    sort: Optional[str] = Query(default=None, max_length=30, description='Field name, "-" prefix for descending'),
) -> list[AccountResponse]:
    store: AccountStore = request.app.state.account_store
    return [AccountResponse.from_account(a) for a in service.list_accounts(store, limit=limit, skip=skip, sort=sort)]


@router.post("/users", response_model=AccountResponse, status_code=201)
def create_user(request: Request, body: SignUpRequest) -> AccountResponse:
    store: AccountStore = request.app.state.account_store
    account = service.sign_up(
        store,
        username=body.username,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return AccountResponse.from_account(account)


@router.get("/users/{account_id}", response_model=AccountResponse)
async def get_user(request: Request, account_id: str) -> AccountResponse:
    store: AccountStore = request.app.state.account_store
    return AccountResponse.from_account(service.get_account(store, account_id))


@router.put("/users/{account_id}", response_model=AccountResponse)
def update_user(
    request: Request,
    account_id: str,
    body: AccountUpdate,
    current_account: Account = Depends(get_current_account),
) -> AccountResponse:
    """Update the caller's own account. A new password is re-hashed; nothing else touches the hash."""
    _require_self(current_account, account_id)
    store: AccountStore = request.app.state.account_store
    updated = service.update_account(store, account_id, body.model_dump(exclude_none=True))
    return AccountResponse.from_account(updated)


@router.delete("/users/{account_id}", response_model=MessageResponse)
async def delete_user(
    request: Request,
    account_id: str,
    current_account: Account = Depends(get_current_account),
) -> MessageResponse:
    _require_self(current_account, account_id)
    store: AccountStore = request.app.state.account_store
    service.delete_account(store, account_id)
    return MessageResponse(message="Successfully deleted user")
