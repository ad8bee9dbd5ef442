"""Account, family, session and login-attempt records."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    """Family role, snapshotted into every session at issuance."""

    ADMIN = "admin"
    MEMBER = "member"
    CHILD = "child"


class TokenType(str, Enum):
    """Kind of credential a session backs."""

    ACCESS = "access"
    REFRESH = "refresh"


class Permissions(BaseModel):
    """Feature visibility flags returned with every profile."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    can_view_calendar: bool = True
    can_view_tasks: bool = True
    can_view_shopping: bool = True
    can_view_budget: bool = False
    can_view_places: bool = True
    can_modify_items: bool = True


class Family(BaseModel):
    """Coordination unit owning accounts."""

    id: UUID
    name: str
    created_at: datetime


class Account(BaseModel):
    """Identity record of a family member.

    Attributes:
        email: Lower-cased address, unique across accounts
        password_hash: ``salt:key`` scrypt hash or a legacy encoding
        password_reset_token: Outstanding reset token, if any
        email_verification_token: Outstanding verification token, if any
    """

    id: UUID
    email: str
    username: str
    password_hash: str
    display_name: str
    family_id: UUID
    role: Role = Role.MEMBER
    email_verified: bool = False
    password_reset_token: Optional[str] = None
    password_reset_expires: Optional[datetime] = None
    email_verification_token: Optional[str] = None
    email_verification_expires: Optional[datetime] = None
    permissions: Permissions = Field(default_factory=Permissions)
    created_at: datetime


class Session(BaseModel):
    """A stored, revocable record backing one issued token."""

    token: str
    account_id: UUID
    family_id: UUID
    role: Role
    type: TokenType
    expires_at: datetime
    created_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


class LoginAttempt(BaseModel):
    """Append-only audit record of one login try."""

    email: str
    ip_address: Optional[str] = None
    success: bool
    created_at: datetime
