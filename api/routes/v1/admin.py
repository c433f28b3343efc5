"""
api/routes/v1/admin.py -- Admin account management.

Routes (all require bearer token + admin role):
  GET    /api/v1/users/admin/users                     -- paginated account list
  DELETE /api/v1/users/admin/users/{id}                -- delete account (cascades)
  PATCH  /api/v1/users/admin/users/{id}/status         -- {status: 0..3}
  PATCH  /api/v1/users/admin/users/{id}/verification   -- {verified: bool}
  PATCH  /api/v1/users/admin/users/{id}/role           -- {role: guest|user|admin}
  POST   /api/v1/users/admin/users/{id}/force-logout   -- bump target's force_logout

Self-action guard: every mutating route rejects the caller's own id with 400
before touching the store. It keeps an admin from locking themselves out,
and because the caller is an active admin it also guarantees at least one
active admin survives every admin action.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.models import AccountId, AdminRoleInput, AdminStatusInput, AdminVerifyInput
from api.responses import success_response
from auth.dependencies import require_admin
from auth.models import Account, AccountStatus
from auth.service import AccountService
from auth.store import AccountStore
from core.errors import NotFoundError, SelfActionError

logger = logging.getLogger("userbase.api.admin")

router = APIRouter(prefix="/admin")


def _store(request: Request) -> AccountStore:
    return request.app.state.account_store


def _reject_self(current: Account, account_id: int, message: str) -> None:
    if current.id == account_id:
        raise SelfActionError(message)


@router.get("/users")
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    current: Account = Depends(require_admin),
) -> JSONResponse:
    """Return one page of accounts ordered by id."""
    store = _store(request)
    accounts = store.list_accounts(offset=(page - 1) * limit, limit=limit)
    return success_response(
        "Users retrieved successfully",
        {
            "users": [a.to_public() for a in accounts],
            "page": page,
            "limit": limit,
            "total": store.count_accounts(),
        },
    )


@router.delete("/users/{account_id}")
def delete_user(
    request: Request,
    account_id: AccountId,
    current: Account = Depends(require_admin),
) -> JSONResponse:
    _reject_self(current, account_id, "Cannot delete your own account")
    if not _store(request).delete_account(account_id):
        raise NotFoundError()
    logger.info("Admin id=%s deleted account id=%s", current.id, account_id)
    return success_response("User deleted successfully")


@router.patch("/users/{account_id}/status")
def update_status(
    request: Request,
    body: AdminStatusInput,
    account_id: AccountId,
    current: Account = Depends(require_admin),
) -> JSONResponse:
    _reject_self(current, account_id, "Cannot change your own status")
    status = AccountStatus(body.status)
    if not _store(request).set_status(account_id, status):
        raise NotFoundError()
    logger.info("Admin id=%s set status of account id=%s to %s", current.id, account_id, status.name)
    return success_response("User status updated successfully")


@router.patch("/users/{account_id}/verification")
def update_verification(
    request: Request,
    body: AdminVerifyInput,
    account_id: AccountId,
    current: Account = Depends(require_admin),
) -> JSONResponse:
    _reject_self(current, account_id, "Cannot change your own verification status")
    if not _store(request).set_verified(account_id, body.verified):
        raise NotFoundError()
    return success_response("User verification status updated successfully")


@router.patch("/users/{account_id}/role")
def update_role(
    request: Request,
    body: AdminRoleInput,
    account_id: AccountId,
    current: Account = Depends(require_admin),
) -> JSONResponse:
    _reject_self(current, account_id, "Cannot change your own role")
    if not _store(request).set_role(account_id, body.role):
        raise NotFoundError()
    logger.info("Admin id=%s set role of account id=%s to %s", current.id, account_id, body.role.value)
    return success_response("User role updated successfully")


@router.post("/users/{account_id}/force-logout")
def force_logout(
    request: Request,
    account_id: AccountId,
    current: Account = Depends(require_admin),
) -> JSONResponse:
    _reject_self(current, account_id, "Cannot force logout yourself")
    service: AccountService = request.app.state.account_service
    service.counter.bump(account_id)
    return success_response("User force logout successful")
