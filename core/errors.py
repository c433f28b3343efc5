"""
core/errors.py -- Error taxonomy shared by the auth services and the API layer.

Every failure the services can report is a ServiceError subclass carrying an
HTTP status_code and a stable machine-readable code. Services raise them;
api/main.py has one exception handler that renders any ServiceError as the
uniform {success: false, message, code} envelope. Nothing below the API layer
imports FastAPI.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# 400
# ---------------------------------------------------------------------------


class ValidationError(ServiceError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request"


class SelfActionError(ValidationError):
    """An admin tried to run a mutating admin action against their own account."""

    code = "self_action"
    default_message = "Cannot perform this action on your own account"


# ---------------------------------------------------------------------------
# 401
# ---------------------------------------------------------------------------


class AuthError(ServiceError):
    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required"


class BadCredentials(AuthError):
    code = "bad_credentials"
    default_message = "Invalid credentials"


class MissingToken(AuthError):
    code = "missing_token"
    default_message = "Access token required"


class InvalidOrExpiredToken(AuthError):
    code = "invalid_or_expired_token"
    default_message = "Invalid or expired token"


class InvalidToken(AuthError):
    """The token verified but names an account that no longer exists."""

    code = "invalid_token"
    default_message = "Invalid token"


class SessionInvalidated(AuthError):
    code = "session_invalidated"
    default_message = "Token has been invalidated. Please login again."


# ---------------------------------------------------------------------------
# 403
# ---------------------------------------------------------------------------


class ForbiddenError(ServiceError):
    status_code = 403
    code = "forbidden"
    default_message = "Access denied"


class AccountInactive(ForbiddenError):
    code = "account_inactive"
    default_message = "Account is inactive"


class AccountSuspended(ForbiddenError):
    code = "account_suspended"
    default_message = "Account is suspended or banned"


class InsufficientRole(ForbiddenError):
    code = "insufficient_role"
    default_message = "Insufficient role for this action"


# ---------------------------------------------------------------------------
# 404 / 409 / 500
# ---------------------------------------------------------------------------


class NotFoundError(ServiceError):
    status_code = 404
    code = "not_found"
    default_message = "User not found"


class DuplicateError(ServiceError):
    status_code = 409
    code = "conflict"
    default_message = "User with this email already exists"


class InternalError(ServiceError):
    status_code = 500
    code = "internal_error"
    default_message = "Internal server error"


class ConfigurationError(RuntimeError):
    """Fatal misconfiguration detected at runtime (e.g. no signing secret).

    Not a ServiceError: it is a deployment bug, so the generic 500 handler
    logs it with a traceback.
    """


# ---------------------------------------------------------------------------
# Token verification
# ---------------------------------------------------------------------------


class TokenError(Exception):
    """Raised by TokenService.verify(). The gate maps it to InvalidOrExpiredToken."""


class TokenExpired(TokenError):
    pass


class TokenMalformed(TokenError):
    pass
