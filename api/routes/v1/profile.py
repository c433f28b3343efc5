"""
api/routes/v1/profile.py -- Profile read/update endpoints.

Routes:
  GET /api/v1/users/me     -- current account with profile (requires auth)
  PUT /api/v1/users/me     -- partial profile update (requires auth)
  GET /api/v1/users/{id}   -- any account; self or admin only (requires auth)

/me is registered before /{id} so the literal path wins the match.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import AccountId, ProfileUpdateInput
from api.responses import success_response
from auth.dependencies import get_current_account
from auth.gate import role_allows
from auth.models import Account, Role
from auth.store import AccountStore
from core.errors import ForbiddenError, NotFoundError

router = APIRouter()


@router.get("/me")
def get_me(current: Account = Depends(get_current_account)) -> JSONResponse:
    """Return the caller's account. The gate already reloaded it from the store."""
    return success_response("User profile retrieved successfully", {"user": current.to_public()})


@router.put("/me")
def update_me(
    request: Request,
    body: ProfileUpdateInput,
    current: Account = Depends(get_current_account),
) -> JSONResponse:
    """Update the caller's profile fields present in the body."""
    store: AccountStore = request.app.state.account_store
    updated = store.update_profile(current.id, body.changes())
    return success_response("Profile updated successfully", {"user": updated.to_public()})


@router.get("/{account_id}")
def get_account(
    request: Request,
    account_id: AccountId,
    current: Account = Depends(get_current_account),
) -> JSONResponse:
    """Return an account by id. Callers may read themselves; admins may read anyone.

    The ownership check runs before the lookup so non-admins cannot test
    which ids exist.
    """
    if current.id != account_id and not role_allows(current.role, Role.ADMIN):
        raise ForbiddenError()
    store: AccountStore = request.app.state.account_store
    account = store.get_by_id(account_id)
    if account is None:
        raise NotFoundError()
    return success_response("User retrieved successfully", {"user": account.to_public()})
