"""Typed error kinds for authentication and token operations

Services raise ``AuthError`` with a closed ``ErrorKind``; callers match on
``error.kind`` and the API layer translates kinds to HTTP responses.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of failure kinds"""

    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_LOCKED = "account_locked"
    SECOND_FACTOR_REQUIRED = "second_factor_required"
    INVALID_SECOND_FACTOR = "invalid_second_factor"
    INVALID_CODE = "invalid_code"
    ALREADY_EXISTS = "already_exists"
    WEAK_CREDENTIAL = "weak_credential"
    INVALID_TOKEN = "invalid_token"
    EXPIRED = "expired"
    REVOKED = "revoked"
    INVALID_CLIENT = "invalid_client"
    INVALID_REDIRECT = "invalid_redirect"
    INVALID_SCOPE = "invalid_scope"
    INVALID_GRANT = "invalid_grant"
    INVALID_GRANT_TYPE = "invalid_grant_type"
    UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"
    REDIRECT_MISMATCH = "redirect_mismatch"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


# HTTP status per kind, used by the API layer
STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.ACCOUNT_LOCKED: 423,
    ErrorKind.SECOND_FACTOR_REQUIRED: 401,
    ErrorKind.INVALID_SECOND_FACTOR: 401,
    ErrorKind.INVALID_CODE: 400,
    ErrorKind.ALREADY_EXISTS: 409,
    ErrorKind.WEAK_CREDENTIAL: 400,
    ErrorKind.INVALID_TOKEN: 401,
    ErrorKind.EXPIRED: 401,
    ErrorKind.REVOKED: 401,
    ErrorKind.INVALID_CLIENT: 401,
    ErrorKind.INVALID_REDIRECT: 400,
    ErrorKind.INVALID_SCOPE: 400,
    ErrorKind.INVALID_GRANT: 400,
    ErrorKind.INVALID_GRANT_TYPE: 400,
    ErrorKind.UNSUPPORTED_GRANT_TYPE: 400,
    ErrorKind.REDIRECT_MISMATCH: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNAVAILABLE: 503,
}


class AuthError(Exception):
    """
    Business-rule failure of an authentication or token operation

    Attributes:
        kind: Error kind
        message: Human-readable message (safe to return to callers)
        details: Additional context for logs
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.kind = kind
        self.message = message or kind.value.replace("_", " ").capitalize()
        self.details = details or {}
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        """HTTP status for this kind"""
        return STATUS_CODES.get(self.kind, 400)

    def to_dict(self) -> dict[str, Any]:
        """Error body for API responses"""
        return {
            "error": self.kind.value,
            "error_description": self.message,
        }

    def __repr__(self) -> str:
        return f"<AuthError(kind={self.kind.value}, message={self.message!r})>"
