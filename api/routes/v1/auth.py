"""
api/routes/v1/auth.py -- Registration, login, logout, and email confirmation.

Routes:
  POST /api/v1/users/register        -- create account + profile (public)
  POST /api/v1/users/login           -- password login; returns {user, token} (public)
  POST /api/v1/users/logout          -- bump force_logout (requires auth)
  POST /api/v1/users/confirm-email   -- consume a confirmation selector/verifier (public)

Security:
  [H2] POST /login is rate-limited per client IP (Settings.login_rate_limit).
  [C1] AccountService.login() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on login responses.

Handlers are plain def, so FastAPI runs them in its worker thread pool and the
bcrypt work inside AccountService never blocks the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import ConfirmEmailInput, LoginInput, RegisterInput
from api.responses import success_response
from auth.dependencies import get_current_account
from auth.models import Account
from auth.service import AccountService

# Auth policy:
# - POST /register:       public
# - POST /login:          public, rate-limited
# - POST /confirm-email:  public -- possession of the verifier is the credential
# - POST /logout:         requires auth (get_current_account)
router = APIRouter()


def _service(request: Request) -> AccountService:
    return request.app.state.account_service


@router.post("/register", status_code=201)
def register(request: Request, body: RegisterInput) -> JSONResponse:
    """Create an inactive account with its profile. The password hash is never returned."""
    account = _service(request).register(body.email, body.password, body.profile_fields())
    return success_response("User registered successfully", {"user": account.to_public()}, status_code=201)


@router.post("/login")
@limiter.limit(login_rate_limit)  # below @router.post so the registered endpoint is the limited one
def login(request: Request, body: LoginInput) -> JSONResponse:
    """Authenticate with email and password; return the fresh account and a session token.

    Wrong email and wrong password produce the same 401 so the response does
    not reveal which emails are registered.
    """
    account, token = _service(request).login(body.email, body.password)
    resp = success_response("Login successful", {"user": account.to_public(), "token": token})
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/logout")
def logout(request: Request, account: Account = Depends(get_current_account)) -> JSONResponse:
    """Invalidate every token issued to the caller, including the one on this request."""
    _service(request).logout(account)
    return success_response("Logged out successfully")


@router.post("/confirm-email")
def confirm_email(request: Request, body: ConfirmEmailInput) -> JSONResponse:
    """Mark the account verified if the selector/verifier pair is valid and unexpired."""
    account = _service(request).confirm_email(body.selector, body.token)
    return success_response("Email confirmed successfully", {"user": account.to_public()})
