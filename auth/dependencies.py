"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_current_account() runs the AccessGate against the request's
Authorization header and attaches the resolved Account to request.state.
require_role(Role.ADMIN) composes on top of it.

Gate failures are ServiceError subclasses; api/main.py renders them as the
standard error envelope, so nothing here builds HTTP responses.

Layer rule: no imports from api/. This module may import fastapi because it is
part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.gate import AccessGate
from auth.models import Account, Role


def get_current_account(request: Request) -> Account:
    """Require a valid bearer token. Raises a 401/403 ServiceError otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: Account = Depends(get_current_account)): ...
    """
    gate: AccessGate = request.app.state.gate
    account = gate.authenticate(request.headers.get("Authorization"))
    request.state.account = account
    return account


def require_role(minimum: Role) -> Callable[..., Account]:
    """Build a dependency that admits only accounts at or above minimum's tier.

    Use as a FastAPI dependency:
        @router.delete("/admin/users/{id}")
        def route(admin: Account = Depends(require_role(Role.ADMIN))): ...
    """

    def dependency(account: Account = Depends(get_current_account)) -> Account:
        return AccessGate.require_role(account, minimum)

    return dependency


require_admin = require_role(Role.ADMIN)
