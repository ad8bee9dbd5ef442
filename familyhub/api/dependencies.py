"""FastAPI dependencies for the store, the auth service and bearer auth."""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from familyhub.services.auth_service import AuthContext, AuthService
from familyhub.services.session_store import PostgresSessionStore, SessionStore

# auto_error is off so a missing header produces our 401 envelope, not a 403.
bearer_scheme = HTTPBearer(auto_error=False)


def get_session_store() -> SessionStore:
    """Return the persistence client used by the auth routes."""
    return PostgresSessionStore()


def get_auth_service(store: SessionStore = Depends(get_session_store)) -> AuthService:
    return AuthService(store)


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthContext:
    """Resolve the Bearer access token to the caller's identity.

    Args:
        credentials: Bearer token from the Authorization header, if any
        auth_service: Service used to look up the session

    Returns:
        AuthContext of the caller

    Raises:
        AuthError 401: If the token is missing, unknown, expired or not an
            access token
    """
    token = credentials.credentials if credentials else None
    return await auth_service.authenticate(token)
