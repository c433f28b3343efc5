"""
auth/models.py -- Domain dataclasses for account entities.

Pattern: Data class (pure data container, near-zero logic). Stores and
services do the work; these own the domain shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum, IntEnum


class AccountStatus(IntEnum):
    """Lifecycle state of an account. Stored and transported as 0..3."""

    INACTIVE = 0
    ACTIVE = 1
    SUSPENDED = 2
    BANNED = 3


class Role(str, Enum):
    """Authorization tier. Ordering is by ROLE_TIERS, not by string value."""

    GUEST = "guest"
    USER = "user"
    ADMIN = "admin"


ROLE_TIERS: dict[Role, int] = {Role.GUEST: 0, Role.USER: 1, Role.ADMIN: 2}


class EphemeralKind(str, Enum):
    """Selector/verifier tables owned by an account."""

    CONFIRMATION = "confirmation"
    REMEMBER = "remember"
    RESET = "reset"


@dataclass
class Profile:
    """1:1 extension of Account. Created in the same transaction as the account."""

    first_name: str
    last_name: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None
    phone: str | None = None


PROFILE_FIELDS: tuple[str, ...] = (
    "first_name",
    "last_name",
    "address",
    "city",
    "state",
    "country",
    "postal_code",
    "phone",
)


@dataclass
class Account:
    """An identity record.

    password_hash is an opaque bcrypt string and must never leave the process;
    to_public() is the only projection the API layer serializes.

    force_logout only ever increases. Tokens snapshot it at mint time and the
    access gate rejects any token whose snapshot is behind the live value.

    registered and last_login are unix timestamps in seconds.
    """

    email: str
    password_hash: str
    id: int | None = None
    status: AccountStatus = AccountStatus.INACTIVE
    verified: bool = False
    resettable: bool = True
    registered: int = 0
    last_login: int | None = None
    force_logout: int = 0
    role: Role = Role.USER
    profile: Profile | None = None

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    def to_public(self) -> dict:
        """Return a JSON-ready projection without password_hash."""
        return {
            "id": self.id,
            "email": self.email,
            "status": int(self.status),
            "verified": self.verified,
            "resettable": self.resettable,
            "registered": self.registered,
            "last_login": self.last_login,
            "force_logout": self.force_logout,
            "role": self.role.value,
            "details": asdict(self.profile) if self.profile is not None else None,
        }


@dataclass
class EphemeralToken:
    """A selector/verifier record (confirmation, remember-me, password reset).

    selector is the public lookup key; token holds the hashed verifier.
    email is only meaningful for confirmation records.
    """

    account_id: int
    selector: str
    token: str
    expires: int
    email: str | None = None
    id: int | None = None

