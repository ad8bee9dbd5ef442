"""Models package exports."""

from familyhub.models.account import (
    Account,
    Family,
    LoginAttempt,
    Permissions,
    Role,
    Session,
    TokenType,
)

__all__ = [
    "Account",
    "Family",
    "LoginAttempt",
    "Permissions",
    "Role",
    "Session",
    "TokenType",
]
