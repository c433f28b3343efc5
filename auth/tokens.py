"""
auth/tokens.py -- Session token issuance/verification and selector/verifier helpers.

Security design decisions:
  JWT: python-jose with HS256. A token carries the account identity plus a
       snapshot of the account's force_logout counter, and standard iat / exp /
       iss / aud claims. Verification is pure CPU work (no I/O) so the access
       gate can run it on every request.

       verify() distinguishes TokenExpired from TokenMalformed so the gate can
       tell the client whether to simply log in again or that the token is
       garbage. Everything other than expiry (bad signature, wrong issuer or
       audience, missing claims) is TokenMalformed.

  Selector/verifier pairs: ephemeral credentials (email confirmation,
       remember-me, password reset) use a public selector for O(1) lookup and
       a secret verifier. Only HMAC-SHA256(SECRET_KEY, verifier) is stored, so
       a leaked table alone cannot be replayed.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from jose import ExpiredSignatureError, JWTError, jwt

from core.errors import ConfigurationError, TokenExpired, TokenMalformed

if TYPE_CHECKING:
    from auth.models import Account
    from core.config import Settings

logger = logging.getLogger("userbase.auth.tokens")

_ALGORITHM = "HS256"

_REQUIRED_CLAIMS = ("id", "email", "verified", "status", "force_logout", "iat", "exp", "iss", "aud")


@dataclass(frozen=True)
class TokenClaims:
    """Verified payload of a session token."""

    id: int
    email: str
    verified: bool
    status: int
    force_logout: int
    iat: int
    exp: int
    iss: str
    aud: str


class TokenService:
    """Issues and verifies signed, time-bounded session tokens.

    clock returns the current unix time in seconds. It only drives the iat/exp
    stamped at issue time; expiry checks during verify() use python-jose's own
    wall clock, with settings.token_leeway_seconds of tolerance.
    """

    def __init__(self, settings: Settings, clock: Callable[[], float] = time.time) -> None:
        self._secret = settings.secret_key
        self._ttl = settings.token_expire_seconds
        self._issuer = settings.token_issuer
        self._audience = settings.token_audience
        self._leeway = settings.token_leeway_seconds
        self._clock = clock

    def issue(self, account: Account) -> str:
        """Mint a token for account, snapshotting its force_logout counter."""
        if not self._secret:
            raise ConfigurationError("Token signing secret is not configured")
        now = int(self._clock())
        payload = {
            "id": account.id,
            "email": account.email,
            "verified": account.verified,
            "status": int(account.status),
            "force_logout": account.force_logout,
            "iat": now,
            "exp": now + self._ttl,
            "iss": self._issuer,
            "aud": self._audience,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """Return the claims of a valid token.

        Raises TokenExpired when exp has passed (beyond the configured leeway)
        and TokenMalformed for every other failure.
        """
        if not token:
            raise TokenMalformed("Empty token")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=self._audience,
                issuer=self._issuer,
                options={"leeway": self._leeway},
            )
        except ExpiredSignatureError as exc:
            raise TokenExpired("Token has expired") from exc
        except JWTError as exc:
            raise TokenMalformed(str(exc)) from exc

        missing = [c for c in _REQUIRED_CLAIMS if c not in payload]
        if missing:
            raise TokenMalformed(f"Missing claims: {', '.join(missing)}")
        try:
            return TokenClaims(
                id=int(payload["id"]),
                email=str(payload["email"]),
                verified=bool(payload["verified"]),
                status=int(payload["status"]),
                force_logout=int(payload["force_logout"]),
                iat=int(payload["iat"]),
                exp=int(payload["exp"]),
                iss=str(payload["iss"]),
                aud=str(payload["aud"]),
            )
        except (TypeError, ValueError) as exc:
            raise TokenMalformed("Claim has the wrong type") from exc

    def hash_verifier(self, verifier: str) -> str:
        """Return HMAC-SHA256(SECRET_KEY, verifier) as hex, the stored form of a verifier."""
        return hmac.new(self._secret.encode(), verifier.encode(), hashlib.sha256).hexdigest()

    def check_verifier(self, verifier: str, stored_hash: str) -> bool:
        """Constant-time comparison of a presented verifier against its stored HMAC."""
        return hmac.compare_digest(self.hash_verifier(verifier), stored_hash)


def generate_selector_pair() -> tuple[str, str]:
    """Return a fresh (selector, verifier) pair.

    The selector is 16 URL-safe characters (96 bits), enough for a unique
    lookup key. The verifier is 256 bits of entropy.
    """
    return secrets.token_urlsafe(12), secrets.token_urlsafe(32)
