"""Services package exports."""

from familyhub.services.auth_service import AuthContext, AuthService
from familyhub.services.logging_service import configure_logging, get_logger
from familyhub.services.session_store import PostgresSessionStore, SessionStore

__all__ = [
    "AuthContext",
    "AuthService",
    "PostgresSessionStore",
    "SessionStore",
    "configure_logging",
    "get_logger",
]
