"""
auth/sessions.py -- Force-logout counter: bulk invalidation without a revocation list.

Every account carries a monotonic force_logout integer. TokenService.issue()
snapshots it into the token; bump() increments it. A token is current only
while its snapshot is >= the live counter, so one bump invalidates every
token minted before it. Explicit logout and admin force-logout both bump.

The server keeps no other session state, so any replica can validate any
token after a single account reload.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from core.errors import NotFoundError

if TYPE_CHECKING:
    from auth.models import Account
    from auth.store import AccountStore
    from auth.tokens import TokenClaims

logger = logging.getLogger("userbase.auth.sessions")


class ForceLogoutCounter:
    def __init__(self, store: AccountStore) -> None:
        self._store = store

    def bump(self, account_id: int) -> int:
        """Increment the account's counter once and return the new value.

        Not idempotent: N calls raise the counter by N.
        """
        value = self._store.bump_force_logout(account_id)
        if value is None:
            raise NotFoundError()
        logger.info("force_logout bumped for account id=%s (now %d)", account_id, value)
        return value

    @staticmethod
    def is_current(claims: TokenClaims, account: Account) -> bool:
        """Return True if the token was minted at or after the account's last bump."""
        return claims.force_logout >= account.force_logout
