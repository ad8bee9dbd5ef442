"""Error taxonomy surfaced to API callers.

Every failure leaving the auth subsystem is an ``AuthError`` carrying a stable
machine-readable ``code`` the mobile client can branch on, a human message,
the HTTP status to answer with, and optional extra fields that are merged into
the JSON error envelope (e.g. ``retryAfterMinutes``).
"""

from typing import Any, Dict, Optional

MISSING_FIELDS = "MISSING_FIELDS"
TERMS_NOT_ACCEPTED = "TERMS_NOT_ACCEPTED"
INVALID_EMAIL = "INVALID_EMAIL"
WEAK_PASSWORD = "WEAK_PASSWORD"
EMAIL_EXISTS = "EMAIL_EXISTS"
RATE_LIMITED = "RATE_LIMITED"
INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
INVALID_TOKEN = "INVALID_TOKEN"
TOKEN_EXPIRED = "TOKEN_EXPIRED"
USER_NOT_FOUND = "USER_NOT_FOUND"
ALREADY_VERIFIED = "ALREADY_VERIFIED"
NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
VALIDATION_ERROR = "VALIDATION_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"


class AuthError(Exception):
    """A caller-facing authentication failure.

    Attributes:
        code: Stable error code (one of the module constants)
        message: Human-readable message, safe to show to end users
        status_code: HTTP status the API layer responds with
        extra: Additional envelope fields, serialized next to code/message
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.extra = extra or {}

    def to_envelope(self) -> Dict[str, Any]:
        """Render the JSON error envelope."""
        return {"error": {"code": self.code, "message": self.message, **self.extra}}

    def __repr__(self) -> str:
        return f"AuthError(code={self.code!r}, status_code={self.status_code})"


def missing_fields(message: str) -> AuthError:
    return AuthError(MISSING_FIELDS, message, 400)


def invalid_credentials() -> AuthError:
    """The single error returned for every login failure."""
    return AuthError(INVALID_CREDENTIALS, "Invalid credentials", 401)
