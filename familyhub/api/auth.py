"""Authentication API endpoints."""

from fastapi import APIRouter, Depends, Request, status
import structlog

from familyhub import errors
from familyhub.api.dependencies import get_auth_context, get_auth_service
from familyhub.models.auth import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    PasswordPolicyResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    TokenRequest,
    UserProfile,
    ValidatePasswordRequest,
)
from familyhub.services.auth_service import AuthContext, AuthService
from familyhub.services.password_policy import (
    PasswordValidationResult,
    password_policy,
    validate_password,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    """Register a new user and create their family.

    Returns:
        RegisterResponse with tokens, profile and requiresEmailVerification

    Raises:
        AuthError 400: Missing fields, terms not accepted, bad email, weak password
        AuthError 409: If the email is already registered
    """
    return await auth_service.register(
        email=request.email,
        password=request.password,
        accept_terms=request.accept_terms,
        display_name=request.display_name,
        family_name=request.family_name,
    )


@router.post("/login")
async def login(
    request: LoginRequest,
    http_request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Authenticate with email and password.

    Raises:
        AuthError 401: If credentials are invalid (cause never disclosed)
        AuthError 429: If too many attempts were made recently
    """
    ip_address = http_request.client.host if http_request.client else None
    return await auth_service.login(request.email, request.password, ip_address)


@router.post("/refresh")
async def refresh(
    request: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Exchange a refresh token for a new token pair.

    The presented refresh token is consumed and can never be used again.
    """
    return await auth_service.refresh(request.refresh_token)


@router.post("/logout")
async def logout(
    context: AuthContext = Depends(get_auth_context),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Logout the current session."""
    return await auth_service.logout(context)


@router.post("/logout-all")
async def logout_all(
    context: AuthContext = Depends(get_auth_context),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Logout from all devices."""
    return await auth_service.logout_all(context)


@router.post("/verify-email")
async def verify_email(
    request: TokenRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    return await auth_service.verify_email(request.token)


@router.post("/resend-verification")
async def resend_verification(
    context: AuthContext = Depends(get_auth_context),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    return await auth_service.resend_verification(context)


@router.post("/forgot-password")
async def forgot_password(
    request: ForgotPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Request a password reset.

    Always answers with the same message so callers cannot probe which
    emails are registered.
    """
    return await auth_service.forgot_password(request.email)


@router.post("/reset-password")
async def reset_password(
    request: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Reset password with a token; signs the account out everywhere."""
    return await auth_service.reset_password(request.token, request.password)


@router.get("/password-policy")
async def get_password_policy() -> PasswordPolicyResponse:
    return PasswordPolicyResponse(**password_policy())


@router.post("/validate-password")
async def check_password(request: ValidatePasswordRequest) -> PasswordValidationResult:
    """Score a candidate password without storing anything."""
    if not request.password:
        raise errors.missing_fields("Password required")
    return validate_password(request.password)


@router.get("/me")
async def get_me(
    context: AuthContext = Depends(get_auth_context),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserProfile:
    """Get current authenticated user info."""
    return await auth_service.get_profile(context)
