"""
auth/errors.py -- Closed set of error kinds raised by the auth core.

Every failure the core reports deliberately is an AuthError carrying one
AuthErrorCode. The code is the stable contract: the HTTP layer maps it to a
status, audit logs filter on it. The message is safe to show to a client and
never contains stack traces, SQL, or secrets.

Storage errors (sqlalchemy.exc.*) are not wrapped -- they propagate unchanged
to whoever owns retries.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    INPUT = "input"
    CONFLICT = "conflict"
    AUTHENTICATION = "authentication"
    TOKEN_LIFECYCLE = "token_lifecycle"
    SECURITY_INCIDENT = "security_incident"


class AuthErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    EMAIL_ALREADY_EXISTS = "EMAIL_ALREADY_EXISTS"
    PHONE_ALREADY_EXISTS = "PHONE_ALREADY_EXISTS"
    INVALID_ACCESS_TOKEN = "INVALID_ACCESS_TOKEN"
    ACCESS_TOKEN_EXPIRED = "ACCESS_TOKEN_EXPIRED"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    REFRESH_TOKEN_EXPIRED = "REFRESH_TOKEN_EXPIRED"
    USER_ACCOUNT_INACTIVE = "USER_ACCOUNT_INACTIVE"
    REFRESH_TOKEN_REUSE_DETECTED = "REFRESH_TOKEN_REUSE_DETECTED"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES[self]


_CATEGORIES: dict[AuthErrorCode, ErrorCategory] = {
    AuthErrorCode.VALIDATION_ERROR: ErrorCategory.INPUT,
    AuthErrorCode.EMAIL_ALREADY_EXISTS: ErrorCategory.CONFLICT,
    AuthErrorCode.PHONE_ALREADY_EXISTS: ErrorCategory.CONFLICT,
    AuthErrorCode.INVALID_ACCESS_TOKEN: ErrorCategory.AUTHENTICATION,
    AuthErrorCode.ACCESS_TOKEN_EXPIRED: ErrorCategory.AUTHENTICATION,
    AuthErrorCode.INVALID_REFRESH_TOKEN: ErrorCategory.TOKEN_LIFECYCLE,
    AuthErrorCode.REFRESH_TOKEN_EXPIRED: ErrorCategory.TOKEN_LIFECYCLE,
    AuthErrorCode.USER_ACCOUNT_INACTIVE: ErrorCategory.AUTHENTICATION,
    AuthErrorCode.REFRESH_TOKEN_REUSE_DETECTED: ErrorCategory.SECURITY_INCIDENT,
}

_DEFAULT_MESSAGES: dict[AuthErrorCode, str] = {
    AuthErrorCode.VALIDATION_ERROR: "Invalid input data.",
    AuthErrorCode.EMAIL_ALREADY_EXISTS: "An account with this email already exists.",
    AuthErrorCode.PHONE_ALREADY_EXISTS: "An account with this phone number already exists.",
    AuthErrorCode.INVALID_ACCESS_TOKEN: "Access token is malformed or invalid.",
    AuthErrorCode.ACCESS_TOKEN_EXPIRED: "Access token has expired. Please refresh your token.",
    AuthErrorCode.INVALID_REFRESH_TOKEN: "Invalid refresh token.",
    AuthErrorCode.REFRESH_TOKEN_EXPIRED: "Refresh token has expired. Please log in again.",
    AuthErrorCode.USER_ACCOUNT_INACTIVE: "User account is inactive.",
    AuthErrorCode.REFRESH_TOKEN_REUSE_DETECTED: (
        "Token reuse detected. All sessions have been invalidated. Please log in again."
    ),
}


class AuthError(Exception):
    """A deliberate, classified failure of an auth operation.

    field names the offending input for VALIDATION_ERROR so API clients can
    highlight it; it is None for every other code.
    """

    def __init__(self, code: AuthErrorCode, message: str | None = None, field: str | None = None) -> None:
        self.code = code
        self.message = message or _DEFAULT_MESSAGES[code]
        self.field = field
        super().__init__(f"{code.value}: {self.message}")

    @property
    def category(self) -> ErrorCategory:
        return self.code.category


def validation_error(message: str, field: str | None = None) -> AuthError:
    return AuthError(AuthErrorCode.VALIDATION_ERROR, message, field=field)
