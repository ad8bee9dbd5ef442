"""Authentication service: registration, login, token rotation and recovery.

Sessions are opaque random tokens persisted through the SessionStore. Every
successful authentication event issues an access + refresh pair; refresh
tokens are single-use and are consumed with an atomic conditional delete.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

import structlog

from familyhub import errors
from familyhub.config import Settings, get_settings
from familyhub.errors import AuthError
from familyhub.models.account import Account, Role, TokenType
from familyhub.models.auth import (
    AuthResponse,
    MessageResponse,
    RegisterResponse,
    TokenPair,
    UserProfile,
)
from familyhub.services.password_hasher import hash_password, needs_rehash, verify_password
from familyhub.services.password_policy import validate_email, validate_password
from familyhub.services.permissions import default_permissions_for_role
from familyhub.services.rate_limiter import RateLimiter
from familyhub.services.session_store import DuplicateEmailError, SessionStore
from familyhub.services.token_service import generate_short_code, generate_token

logger = structlog.get_logger(__name__)

FORGOT_PASSWORD_MESSAGE = (
    "If an account exists with this email, a password reset link has been sent"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Verified against when the email is unknown so both failure paths cost one
# scrypt. Built at import so the first unknown-email login is not slower.
_DUMMY_PASSWORD_HASH = hash_password(generate_token())


@dataclass(frozen=True)
class AuthContext:
    """Identity resolved from a valid access token."""

    account_id: UUID
    family_id: UUID
    role: Role
    token: str


def _weak_password_error(password: str) -> Optional[AuthError]:
    result = validate_password(password)
    if result.valid:
        return None
    return AuthError(
        errors.WEAK_PASSWORD,
        "Password does not meet requirements",
        400,
        extra={"details": result.errors, "strength": result.strength},
    )


def build_profile(account: Account) -> UserProfile:
    """Convert an Account to the client-facing profile."""
    return UserProfile(
        id=account.id,
        email=account.email,
        username=account.username,
        display_name=account.display_name,
        family_id=account.family_id,
        role=account.role,
        email_verified=account.email_verified,
        created_at=account.created_at,
        permissions=account.permissions,
    )


class AuthService:
    """Service orchestrating the credential and session lifecycle."""

    def __init__(self, store: SessionStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()
        self.rate_limiter = RateLimiter(
            store,
            max_attempts=self.settings.login_rate_limit_max_attempts,
            window_minutes=self.settings.login_rate_limit_window_minutes,
            count_successful=self.settings.rate_limit_count_successful_logins,
        )

    # ------------------------------------------------------------------
    # Token issuance
    # ------------------------------------------------------------------

    async def issue_tokens(self, account: Account) -> TokenPair:
        """Create an access + refresh session pair for an account.

        The account's role and family are snapshotted into both sessions.

        Args:
            account: Authenticated account

        Returns:
            TokenPair with the raw tokens and access lifetime in seconds
        """
        now = _utcnow()
        access_ttl = timedelta(minutes=self.settings.access_token_expire_minutes)
        refresh_ttl = timedelta(days=self.settings.refresh_token_expire_days)

        access_token = generate_token()
        refresh_token = generate_token()

        await self.store.create_session(
            token=access_token,
            account_id=account.id,
            family_id=account.family_id,
            role=account.role,
            type=TokenType.ACCESS,
            expires_at=now + access_ttl,
        )
        await self.store.create_session(
            token=refresh_token,
            account_id=account.id,
            family_id=account.family_id,
            role=account.role,
            type=TokenType.REFRESH,
            expires_at=now + refresh_ttl,
        )

        logger.info(
            "session_pair_issued",
            account_id=str(account.id),
            access_expires_minutes=self.settings.access_token_expire_minutes,
        )

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(access_ttl.total_seconds()),
        )

    async def _auth_response(self, account: Account) -> AuthResponse:
        pair = await self.issue_tokens(account)
        return AuthResponse(**pair.model_dump(), user=build_profile(account))

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    async def register(
        self,
        email: Optional[str],
        password: Optional[str],
        accept_terms: bool,
        display_name: Optional[str] = None,
        family_name: Optional[str] = None,
    ) -> RegisterResponse:
        """Register a new account as admin of a new family.

        Raises:
            AuthError: MISSING_FIELDS, TERMS_NOT_ACCEPTED, INVALID_EMAIL,
                WEAK_PASSWORD or EMAIL_EXISTS (409)
        """
        if not email or not password:
            raise errors.missing_fields("Email and password required")

        if not accept_terms:
            raise AuthError(
                errors.TERMS_NOT_ACCEPTED,
                "You must accept the terms and privacy policy",
                400,
            )

        email = email.strip()
        if not validate_email(email):
            raise AuthError(errors.INVALID_EMAIL, "Invalid email format", 400)

        weak = _weak_password_error(password)
        if weak is not None:
            raise weak

        email = email.lower()
        if await self.store.get_account_by_email(email) is not None:
            raise _email_exists()

        local_part = email.split("@")[0]
        display_name = (display_name or "").strip() or local_part

        verification_token = generate_token()
        verification_expires = _utcnow() + timedelta(
            hours=self.settings.email_verification_expire_hours
        )

        try:
            family, account = await self.store.create_family_with_account(
                family_name=(family_name or "").strip() or f"{display_name}'s Family",
                email=email,
                username=f"{local_part}_{generate_short_code().lower()}",
                password_hash=hash_password(password),
                display_name=display_name,
                role=Role.ADMIN,
                permissions=default_permissions_for_role(Role.ADMIN),
                email_verification_token=verification_token,
                email_verification_expires=verification_expires,
            )
        except DuplicateEmailError:
            raise _email_exists()

        logger.info(
            "account_registered",
            account_id=str(account.id),
            family_id=str(family.id),
        )
        # Email delivery is handled outside this service.
        logger.info("verification_email_queued", account_id=str(account.id))

        pair = await self.issue_tokens(account)
        return RegisterResponse(
            **pair.model_dump(),
            user=build_profile(account),
            requires_email_verification=True,
        )

    async def login(
        self,
        email: Optional[str],
        password: Optional[str],
        ip_address: Optional[str] = None,
    ) -> AuthResponse:
        """Authenticate with email and password.

        Every failure returns the same INVALID_CREDENTIALS error regardless of
        whether the email or the password was wrong.

        Raises:
            AuthError: MISSING_FIELDS, RATE_LIMITED (429) or
                INVALID_CREDENTIALS (401)
        """
        if not email or not password:
            raise errors.missing_fields("Email and password required")

        identifier = email.strip().lower()

        decision = await self.rate_limiter.check(identifier)
        if not decision.allowed:
            raise AuthError(
                errors.RATE_LIMITED,
                "Too many login attempts. Please try again later.",
                429,
                extra={"retryAfterMinutes": decision.retry_after_minutes},
            )

        account = await self.store.get_account_by_email(identifier)

        if account is None:
            verify_password(password, _DUMMY_PASSWORD_HASH)
            await self.rate_limiter.record_attempt(identifier, ip_address, False)
            logger.warning("login_failed", reason="unknown_email", ip_address=ip_address)
            raise errors.invalid_credentials()

        if not verify_password(password, account.password_hash):
            await self.rate_limiter.record_attempt(identifier, ip_address, False)
            logger.warning(
                "login_failed",
                reason="bad_password",
                account_id=str(account.id),
                ip_address=ip_address,
            )
            raise errors.invalid_credentials()

        await self.rate_limiter.record_attempt(identifier, ip_address, True)

        if needs_rehash(account.password_hash):
            new_hash = hash_password(password)
            await self.store.update_account(account.id, password_hash=new_hash)
            account = account.model_copy(update={"password_hash": new_hash})
            logger.info("legacy_password_rehashed", account_id=str(account.id))

        logger.info("user_logged_in", account_id=str(account.id))
        return await self._auth_response(account)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def refresh(self, refresh_token: Optional[str]) -> AuthResponse:
        """Exchange a refresh token for a new pair (token rotation).

        The presented session is removed with a conditional delete before
        anything is issued; only the caller whose delete removed the row
        proceeds, so a refresh token can never be redeemed twice.

        Raises:
            AuthError: MISSING_FIELDS, INVALID_TOKEN (401) or TOKEN_EXPIRED (401)
        """
        if not refresh_token:
            raise errors.missing_fields("Refresh token required")

        session = await self.store.get_session(refresh_token)

        if session is None or session.type != TokenType.REFRESH:
            logger.warning("refresh_token_rejected", reason="unknown_or_wrong_type")
            raise AuthError(errors.INVALID_TOKEN, "Invalid refresh token", 401)

        if session.is_expired(_utcnow()):
            await self.store.delete_session(refresh_token)
            logger.info("refresh_token_expired", account_id=str(session.account_id))
            raise AuthError(errors.TOKEN_EXPIRED, "Refresh token expired", 401)

        removed = await self.store.delete_session(refresh_token)
        if removed == 0:
            logger.warning("refresh_token_replayed", account_id=str(session.account_id))
            raise AuthError(errors.INVALID_TOKEN, "Invalid refresh token", 401)

        account = await self.store.get_account_by_id(session.account_id)
        if account is None:
            logger.warning("refresh_account_missing", account_id=str(session.account_id))
            raise AuthError(errors.INVALID_TOKEN, "Invalid refresh token", 401)

        logger.info("refresh_token_rotated", account_id=str(account.id))
        return await self._auth_response(account)

    async def authenticate(self, access_token: Optional[str]) -> AuthContext:
        """Resolve a bearer access token to the caller's identity.

        Raises:
            AuthError: NOT_AUTHENTICATED, INVALID_TOKEN or TOKEN_EXPIRED (all 401)
        """
        if not access_token:
            raise AuthError(errors.NOT_AUTHENTICATED, "Not authenticated", 401)

        session = await self.store.get_session(access_token)

        if session is None or session.type != TokenType.ACCESS:
            raise AuthError(errors.INVALID_TOKEN, "Invalid token", 401)

        if session.is_expired(_utcnow()):
            await self.store.delete_session(access_token)
            raise AuthError(errors.TOKEN_EXPIRED, "Token expired", 401)

        return AuthContext(
            account_id=session.account_id,
            family_id=session.family_id,
            role=session.role,
            token=access_token,
        )

    async def logout(self, context: AuthContext) -> MessageResponse:
        """Delete the caller's current access session only."""
        await self.store.delete_session(context.token)
        logger.info("user_logged_out", account_id=str(context.account_id))
        return MessageResponse(message="Logged out successfully")

    async def logout_all(self, context: AuthContext) -> MessageResponse:
        """Delete every session of the caller's account, on all devices."""
        removed = await self.store.delete_sessions_by_account(context.account_id)
        logger.info(
            "user_logged_out_everywhere",
            account_id=str(context.account_id),
            sessions_removed=removed,
        )
        return MessageResponse(message="Logged out from all devices")

    async def cleanup_expired_sessions(self) -> int:
        """Purge sessions past their expiry. Returns the number removed."""
        removed = await self.store.delete_expired_sessions()
        if removed:
            logger.info("expired_sessions_purged", removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Password recovery
    # ------------------------------------------------------------------

    async def forgot_password(self, email: Optional[str]) -> MessageResponse:
        """Start a password reset.

        The response is identical whether or not the email is registered.
        """
        if not email:
            raise errors.missing_fields("Email required")

        account = await self.store.get_account_by_email(email.strip().lower())

        if account is not None:
            await self.store.update_account(
                account.id,
                password_reset_token=generate_token(),
                password_reset_expires=_utcnow()
                + timedelta(minutes=self.settings.password_reset_expire_minutes),
            )
            # Email delivery is handled outside this service.
            logger.info("password_reset_requested", account_id=str(account.id))

        return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

    async def reset_password(
        self, token: Optional[str], password: Optional[str]
    ) -> MessageResponse:
        """Set a new password using a reset token and sign out everywhere.

        Raises:
            AuthError: MISSING_FIELDS, WEAK_PASSWORD, INVALID_TOKEN or
                TOKEN_EXPIRED (all 400)
        """
        if not token or not password:
            raise errors.missing_fields("Token and new password required")

        weak = _weak_password_error(password)
        if weak is not None:
            raise weak

        account = await self.store.get_account_by_reset_token(token)
        if account is None:
            raise AuthError(errors.INVALID_TOKEN, "Invalid or expired reset token", 400)

        if account.password_reset_expires and account.password_reset_expires < _utcnow():
            raise AuthError(errors.TOKEN_EXPIRED, "Reset token has expired", 400)

        await self.store.delete_sessions_by_account(account.id)
        await self.store.update_account(
            account.id,
            password_hash=hash_password(password),
            password_reset_token=None,
            password_reset_expires=None,
        )

        logger.info("password_reset_completed", account_id=str(account.id))
        return MessageResponse(message="Password reset successfully")

    # ------------------------------------------------------------------
    # Email verification and profile
    # ------------------------------------------------------------------

    async def verify_email(self, token: Optional[str]) -> MessageResponse:
        """Mark the account holding the verification token as verified.

        Raises:
            AuthError: MISSING_FIELDS, INVALID_TOKEN or TOKEN_EXPIRED (all 400)
        """
        if not token:
            raise errors.missing_fields("Verification token required")

        account = await self.store.get_account_by_verification_token(token)
        if account is None:
            raise AuthError(
                errors.INVALID_TOKEN, "Invalid or expired verification token", 400
            )

        if (
            account.email_verification_expires
            and account.email_verification_expires < _utcnow()
        ):
            raise AuthError(errors.TOKEN_EXPIRED, "Verification token has expired", 400)

        await self.store.update_account(
            account.id,
            email_verified=True,
            email_verification_token=None,
            email_verification_expires=None,
        )

        logger.info("email_verified", account_id=str(account.id))
        return MessageResponse(message="Email verified successfully")

    async def resend_verification(self, context: AuthContext) -> MessageResponse:
        """Issue a fresh verification token for the caller.

        Raises:
            AuthError: USER_NOT_FOUND (404) or ALREADY_VERIFIED (400)
        """
        account = await self._require_account(context)

        if account.email_verified:
            raise AuthError(errors.ALREADY_VERIFIED, "Email is already verified", 400)

        await self.store.update_account(
            account.id,
            email_verification_token=generate_token(),
            email_verification_expires=_utcnow()
            + timedelta(hours=self.settings.email_verification_expire_hours),
        )

        logger.info("verification_email_queued", account_id=str(account.id))
        return MessageResponse(message="Verification email sent")

    async def get_profile(self, context: AuthContext) -> UserProfile:
        """Return the caller's profile and permissions."""
        return build_profile(await self._require_account(context))

    async def _require_account(self, context: AuthContext) -> Account:
        account = await self.store.get_account_by_id(context.account_id)
        if account is None:
            raise AuthError(errors.USER_NOT_FOUND, "User not found", 404)
        return account


def _email_exists() -> AuthError:
    return AuthError(
        errors.EMAIL_EXISTS, "An account with this email already exists", 409
    )
