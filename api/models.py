"""
API request and response models for Userbase REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Every request body gets its own input model with extra="forbid": unknown keys
and wrong JSON types are rejected at the boundary with 400, before any store
access.
"""

from typing import Annotated, Any, Optional

from fastapi import Path
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StringConstraints, field_validator, model_validator

from auth.models import Role
from auth.passwords import MAX_PASSWORD_BYTES

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

_Email = Annotated[str, StringConstraints(strip_whitespace=True, to_lower=True, max_length=249, pattern=EMAIL_PATTERN)]
_Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]
_OptText = Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=255)]]
_OptPlace = Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)]]
_OptShort = Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=20)]]

# Path id for /{account_id} routes, bounded to the signed 64-bit INTEGER column range.
AccountId = Annotated[int, Path(gt=0, le=2**63 - 1)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterInput(BaseModel):
    """Request body for POST /api/v1/users/register."""

    model_config = ConfigDict(extra="forbid", strict=True)

    email: _Email
    password: str = Field(min_length=8)
    first_name: _Name
    last_name: _Name
    address: _OptText = None
    city: _OptPlace = None
    state: _OptPlace = None
    country: _OptPlace = None
    postal_code: _OptShort = None
    phone: _OptShort = None

    @field_validator("password")
    @classmethod
    def check_password_strength(cls, value: str) -> str:
        """Require upper, lower, and digit; cap at bcrypt's 72-byte input limit."""
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        has_classes = (
            any(c.islower() for c in value),
            any(c.isupper() for c in value),
            any(c.isdigit() for c in value),
        )
        if not all(has_classes):
            raise ValueError(
                "Password must contain at least one uppercase letter, one lowercase letter, and one number"
            )
        return value

    def profile_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude={"email", "password"})


class LoginInput(BaseModel):
    """Request body for POST /api/v1/users/login."""

    model_config = ConfigDict(extra="forbid", strict=True)

    email: _Email
    password: str = Field(min_length=1, max_length=255)


class ProfileUpdateInput(BaseModel):
    """Request body for PUT /api/v1/users/me.

    Partial update: only keys present in the body are written. Optional
    fields may be sent as null to clear them; first_name and last_name may not.
    """

    model_config = ConfigDict(extra="forbid", strict=True)

    first_name: Optional[_Name] = None
    last_name: Optional[_Name] = None
    address: _OptText = None
    city: _OptPlace = None
    state: _OptPlace = None
    country: _OptPlace = None
    postal_code: _OptShort = None
    phone: _OptShort = None

    @model_validator(mode="after")
    def names_not_null(self) -> "ProfileUpdateInput":
        for name in ("first_name", "last_name"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class AdminStatusInput(BaseModel):
    """Request body for PATCH /admin/users/{id}/status. 0=inactive 1=active 2=suspended 3=banned."""

    model_config = ConfigDict(extra="forbid")

    status: int = Field(ge=0, le=3, strict=True)


class AdminVerifyInput(BaseModel):
    """Request body for PATCH /admin/users/{id}/verification."""

    model_config = ConfigDict(extra="forbid")

    verified: StrictBool


class AdminRoleInput(BaseModel):
    """Request body for PATCH /admin/users/{id}/role."""

    model_config = ConfigDict(extra="forbid")

    role: Role


class ConfirmEmailInput(BaseModel):
    """Request body for POST /api/v1/users/confirm-email."""

    model_config = ConfigDict(extra="forbid", strict=True)

    selector: str = Field(min_length=1, max_length=24)
    token: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class Envelope(BaseModel):
    """Top-level envelope for every response."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str
    data: Optional[dict[str, Any]] = None


class ErrorEnvelope(BaseModel):
    """Envelope returned on 4xx/5xx. code is machine-readable and stable."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    message: str
    code: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
