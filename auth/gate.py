"""
auth/gate.py -- Request-time authentication and role checks.

AccessGate.authenticate() walks one request through:

    Unauthenticated -> TokenPresent -> TokenVerified -> AccountLoaded -> Admitted

and raises the matching ServiceError at the first step that fails:

  1. no "Authorization: Bearer <token>"          -> MissingToken (401)
  2. TokenService.verify() fails                 -> InvalidOrExpiredToken (401)
  3. claims.id no longer exists                  -> InvalidToken (401)
  4. account not active                          -> AccountInactive / AccountSuspended (403)
  5. token minted before the last force-logout   -> SessionInvalidated (401)

Contract: the gate trusts nothing in the token beyond the account id. Status,
role, verified, and the force_logout counter are re-read from the store on
every request, so an admin action takes effect on the caller's next request.

This module is framework-free; auth/dependencies.py adapts it to FastAPI.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from auth.models import ROLE_TIERS, AccountStatus, Role
from auth.sessions import ForceLogoutCounter
from core.errors import (
    AccountInactive,
    AccountSuspended,
    InsufficientRole,
    InvalidOrExpiredToken,
    InvalidToken,
    MissingToken,
    SessionInvalidated,
    TokenExpired,
    TokenMalformed,
)

if TYPE_CHECKING:
    from auth.models import Account
    from auth.store import AccountStore
    from auth.tokens import TokenService

logger = logging.getLogger("userbase.auth.gate")


def extract_bearer(header: str | None) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header value."""
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def role_allows(role: Role, required: Role) -> bool:
    return ROLE_TIERS[Role(role)] >= ROLE_TIERS[Role(required)]


class AccessGate:
    def __init__(self, tokens: TokenService, store: AccountStore) -> None:
        self._tokens = tokens
        self._store = store

    def authenticate(self, authorization: str | None) -> Account:
        """Return the freshly loaded Account behind the bearer token, or raise."""
        token = extract_bearer(authorization)
        if token is None:
            raise MissingToken()

        try:
            claims = self._tokens.verify(token)
        except TokenExpired as exc:
            raise InvalidOrExpiredToken("Token has expired") from exc
        except TokenMalformed as exc:
            logger.info("Rejected malformed token: %s", exc)
            raise InvalidOrExpiredToken("Invalid token") from exc

        account = self._store.get_by_id(claims.id)
        if account is None:
            raise InvalidToken()

        if account.status == AccountStatus.INACTIVE:
            raise AccountInactive()
        if account.status in (AccountStatus.SUSPENDED, AccountStatus.BANNED):
            raise AccountSuspended()

        if not ForceLogoutCounter.is_current(claims, account):
            logger.info("Rejected token for account id=%s minted before force-logout", account.id)
            raise SessionInvalidated()

        return account

    @staticmethod
    def require_role(account: Account, minimum: Role) -> Account:
        """Raise InsufficientRole unless account's role tier is at least minimum."""
        if not role_allows(account.role, minimum):
            raise InsufficientRole(f"{Role(minimum).value.capitalize()} access required")
        return account
