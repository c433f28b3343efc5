"""
auth/service.py -- Account use-cases that span several auth components.

AccountService wires the Credential Hasher, Token Service, force-logout
counter, and Account Store into register / login / logout / confirm_email.
Single-component operations (profile reads, admin status flips) stay in the
route handlers and call the store directly.

Login is timing-equalized [C1]: bcrypt runs whether or not the email exists,
so response time does not reveal which emails are registered.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from auth.models import Account, AccountStatus, EphemeralKind, EphemeralToken
from auth.passwords import PasswordHasher
from auth.sessions import ForceLogoutCounter
from auth.store import AccountStore
from auth.tokens import TokenService, generate_selector_pair
from core.errors import AccountSuspended, BadCredentials, DuplicateError, InternalError, ValidationError

logger = logging.getLogger("userbase.auth.service")

# Receives (account, selector, verifier) for a freshly issued email confirmation.
ConfirmationNotifier = Callable[[Account, str, str], None]


def _log_confirmation(account: Account, selector: str, verifier: str) -> None:
    # No mailer is wired in; the verifier is a secret and is not logged.
    logger.info("Email confirmation issued for account id=%s selector=%s", account.id, selector)


class AccountService:
    def __init__(
        self,
        store: AccountStore,
        hasher: PasswordHasher,
        tokens: TokenService,
        counter: ForceLogoutCounter,
        confirmation_ttl: int = 24 * 3600,
        notifier: ConfirmationNotifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.tokens = tokens
        self.counter = counter
        self._confirmation_ttl = confirmation_ttl
        self._notify = notifier or _log_confirmation
        self._clock = clock

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, profile_fields: dict) -> Account:
        """Create an INACTIVE account with its profile and issue an email confirmation.

        The pre-check gives a fast 409 without paying for bcrypt; the UNIQUE
        constraint in the store still catches a concurrent duplicate.

        The confirmation record commits in the same transaction as the account.
        The notifier runs after the commit; a notifier failure is logged and
        the registration still succeeds.
        """
        if self.store.get_by_email(email) is not None:
            raise DuplicateError()
        try:
            digest = self.hasher.hash(password)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        now = int(self._clock())
        selector, verifier = generate_selector_pair()
        account = self.store.create_account_with_profile(
            {"email": email, "password_hash": digest, "registered": now},
            profile_fields,
            confirmation=EphemeralToken(
                account_id=0,  # assigned by the store
                selector=selector,
                token=self.tokens.hash_verifier(verifier),
                expires=now + self._confirmation_ttl,
            ),
        )
        try:
            self._notify(account, selector, verifier)
        except Exception:
            logger.exception("Confirmation notifier failed for account id=%s", account.id)
        return account

    def confirm_email(self, selector: str, verifier: str) -> Account:
        """Mark the account behind a confirmation pair as verified and consume the pair."""
        record = self.store.get_ephemeral_token(EphemeralKind.CONFIRMATION, selector)
        if (
            record is None
            or record.expires < int(self._clock())
            or not self.tokens.check_verifier(verifier, record.token)
        ):
            raise ValidationError("Invalid or expired confirmation token", code="invalid_confirmation")

        self.store.set_verified(record.account_id, True)
        self.store.delete_ephemeral_token(EphemeralKind.CONFIRMATION, selector)
        account = self.store.get_by_id(record.account_id)
        if account is None:
            raise InternalError("User not found after write")
        logger.info("Email confirmed for account id=%s", account.id)
        return account

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> tuple[Account, str]:
        """Verify credentials and return (fresh account, session token).

        An INACTIVE account is activated on its first successful login.
        Suspended and banned accounts are refused with 403 even when the
        password is right.
        """
        account = self.store.get_by_email(email)
        if account is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            self.hasher.verify_dummy(password)
            raise BadCredentials()
        if not self.hasher.verify(password, account.password_hash):
            logger.info("Failed login for account id=%s", account.id)
            raise BadCredentials()

        if account.status in (AccountStatus.SUSPENDED, AccountStatus.BANNED):
            raise AccountSuspended()
        if account.status == AccountStatus.INACTIVE:
            self.store.set_status(account.id, AccountStatus.ACTIVE)
            logger.info("Activated account id=%s on first login", account.id)

        self.store.touch_last_login(account.id, int(self._clock()))
        fresh = self.store.get_by_id(account.id)
        if fresh is None:
            raise InternalError("User not found after write")
        return fresh, self.tokens.issue(fresh)

    def logout(self, account: Account) -> int:
        """Invalidate every token issued to account so far. Returns the new counter value."""
        return self.counter.bump(account.id)
