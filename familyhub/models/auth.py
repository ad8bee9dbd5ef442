"""Auth request and response models.

JSON bodies use camelCase keys for the mobile client; Python attributes stay
snake_case. Request fields are optional so that absent values reach the
service and are reported as ``MISSING_FIELDS`` rather than a generic schema
error.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from familyhub.models.account import Permissions, Role


class CamelModel(BaseModel):
    """Base model serializing to camelCase and accepting either case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    """New account + family registration.

    Attributes:
        email: Login identifier
        password: Plain-text password, checked against the policy
        display_name: Optional display name (defaults to the email local part)
        family_name: Optional family name (defaults to "<name>'s Family")
        accept_terms: Must be true
    """

    email: Optional[str] = None
    password: Optional[str] = None
    display_name: Optional[str] = None
    family_name: Optional[str] = None
    accept_terms: bool = False


class LoginRequest(CamelModel):
    """Email + password credentials."""

    email: Optional[str] = None
    password: Optional[str] = None


class RefreshRequest(CamelModel):
    """Request to exchange a refresh token for a new token pair."""

    refresh_token: Optional[str] = None


class TokenRequest(CamelModel):
    """Body carrying a single emailed token (email verification)."""

    token: Optional[str] = None


class ForgotPasswordRequest(CamelModel):
    email: Optional[str] = None


class ResetPasswordRequest(CamelModel):
    token: Optional[str] = None
    password: Optional[str] = None


class ValidatePasswordRequest(CamelModel):
    password: Optional[str] = None


class UserProfile(CamelModel):
    """Account representation returned to the client."""

    id: UUID
    email: str
    username: str
    display_name: str
    family_id: UUID
    role: Role
    email_verified: bool
    created_at: datetime
    permissions: Permissions


class TokenPair(CamelModel):
    """Freshly issued access + refresh tokens.

    Attributes:
        access_token: Short-lived opaque token for API calls
        refresh_token: Single-use token for obtaining a new pair
        expires_in: Access token lifetime in seconds
    """

    access_token: str
    refresh_token: str
    expires_in: int = Field(ge=1, description="Access token lifetime in seconds")


class AuthResponse(TokenPair):
    """Successful authentication response with token pair and profile."""

    user: UserProfile


class RegisterResponse(AuthResponse):
    requires_email_verification: bool = True


class MessageResponse(CamelModel):
    """Generic acknowledgement."""

    success: bool = True
    message: str


class PasswordPolicyResponse(CamelModel):
    min_length: int
    requirements: List[str]
    symbols: str
