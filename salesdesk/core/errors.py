"""
Error taxonomy.

Every failure the API reports carries a stable ``ErrorCode``. Each code has a
default HTTP status in ``STATUS_FOR_CODE``; callers may override the status
when the same condition means something different at a given step (a refresh
token presented to the access gate is a 401, not a 400).
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    # Token extraction / verification
    MISSING_TOKEN = "MISSING_TOKEN"
    INVALID_TOKEN_FORMAT = "INVALID_TOKEN_FORMAT"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "TOKEN_INVALID"
    TOKEN_VERIFICATION_FAILED = "TOKEN_VERIFICATION_FAILED"
    WRONG_TOKEN_TYPE = "WRONG_TOKEN_TYPE"
    MISSING_REFRESH_TOKEN = "MISSING_REFRESH_TOKEN"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"

    # Principal resolution
    USER_NOT_FOUND = "USER_NOT_FOUND"
    USER_INACTIVE = "USER_INACTIVE"
    INVALID_USER = "INVALID_USER"
    INVALID_PASSWORD = "INVALID_PASSWORD"

    # Sessions
    INVALID_SESSION = "INVALID_SESSION"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    MISSING_SESSION_TOKEN = "MISSING_SESSION_TOKEN"

    # Authorization
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    ACCESS_DENIED = "ACCESS_DENIED"
    CANNOT_DEACTIVATE_SELF = "CANNOT_DEACTIVATE_SELF"
    REGISTRATION_DISABLED = "REGISTRATION_DISABLED"

    # Password changes
    INVALID_CURRENT_PASSWORD = "INVALID_CURRENT_PASSWORD"
    WEAK_PASSWORD = "WEAK_PASSWORD"
    PASSWORD_REUSED = "PASSWORD_REUSED"

    # Generic request failures
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    ROUTE_NOT_FOUND = "ROUTE_NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    LOGIN_RATE_LIMIT_EXCEEDED = "LOGIN_RATE_LIMIT_EXCEEDED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


STATUS_FOR_CODE: dict[ErrorCode, int] = {
    ErrorCode.MISSING_TOKEN: 401,
    ErrorCode.INVALID_TOKEN_FORMAT: 401,
    ErrorCode.TOKEN_EXPIRED: 401,
    ErrorCode.TOKEN_INVALID: 401,
    ErrorCode.TOKEN_VERIFICATION_FAILED: 401,
    ErrorCode.WRONG_TOKEN_TYPE: 400,
    ErrorCode.MISSING_REFRESH_TOKEN: 400,
    ErrorCode.INVALID_REFRESH_TOKEN: 401,
    ErrorCode.USER_NOT_FOUND: 401,
    ErrorCode.USER_INACTIVE: 401,
    ErrorCode.INVALID_USER: 401,
    ErrorCode.INVALID_PASSWORD: 401,
    ErrorCode.INVALID_SESSION: 401,
    ErrorCode.SESSION_NOT_FOUND: 404,
    ErrorCode.MISSING_SESSION_TOKEN: 400,
    ErrorCode.AUTHENTICATION_REQUIRED: 401,
    ErrorCode.INSUFFICIENT_PERMISSIONS: 403,
    ErrorCode.ACCESS_DENIED: 403,
    ErrorCode.CANNOT_DEACTIVATE_SELF: 400,
    ErrorCode.REGISTRATION_DISABLED: 403,
    ErrorCode.INVALID_CURRENT_PASSWORD: 400,
    ErrorCode.WEAK_PASSWORD: 400,
    ErrorCode.PASSWORD_REUSED: 400,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.ROUTE_NOT_FOUND: 404,
    ErrorCode.METHOD_NOT_ALLOWED: 405,
    ErrorCode.DUPLICATE_ENTRY: 409,
    ErrorCode.LOGIN_RATE_LIMIT_EXCEEDED: 429,
    ErrorCode.INTERNAL_SERVER_ERROR: 500,
}


class AuthError(Exception):
    """An expected failure with a stable code, rendered as an error envelope."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Any] = None,
        status_code: Optional[int] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code or STATUS_FOR_CODE[code]
        self.headers = headers

    def __repr__(self) -> str:
        return f"<AuthError {self.code.value} ({self.status_code}): {self.message}>"
