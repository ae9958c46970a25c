"""
auth/errors.py -- Error taxonomy for the authentication core.

Errors are categorized, not typed per call site. Each category carries the
stable HTTP status code and machine-readable code the transport maps it to,
so api/main.py needs a single exception handler for the whole family.

None of these are retried internally; all are terminal for the request.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 400
    code: str = "auth_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AuthError):
    """Malformed input. field names the offending input where there is one."""

    status_code = 400
    code = "validation_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ConflictError(AuthError):
    status_code = 409
    code = "conflict"


class UnauthorizedError(AuthError):
    status_code = 401
    code = "unauthorized"


class InvalidTokenError(UnauthorizedError):
    """Raised by TokenService on bad signature, wrong type, bad payload or expiry."""

    code = "invalid_token"


class ForbiddenError(AuthError):
    status_code = 403
    code = "forbidden"


class NotFoundError(AuthError):
    status_code = 404
    code = "not_found"


class TooManyRequestsError(AuthError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, message: str = "Too many requests.", retry_after: int = 60) -> None:
        super().__init__(message)
        self.retry_after = retry_after
