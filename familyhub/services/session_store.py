"""Session Store Client: persistence interface for the auth subsystem.

``SessionStore`` is the contract the auth service depends on;
``PostgresSessionStore`` implements it over the asyncpg pool. Every query uses
bound parameters.

Atomicity contract: ``delete_session`` is a single conditional DELETE and
returns the number of rows it actually removed. Refresh-token rotation relies
on this to let exactly one concurrent caller win.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Tuple
from uuid import UUID, uuid4

import asyncpg
import structlog

from familyhub.database import get_pool
from familyhub.models.account import (
    Account,
    Family,
    LoginAttempt,
    Permissions,
    Role,
    Session,
    TokenType,
)

logger = structlog.get_logger(__name__)

# Columns update_account may touch. Column names are never taken from input.
UPDATABLE_ACCOUNT_FIELDS = frozenset(
    {
        "password_hash",
        "display_name",
        "email_verified",
        "password_reset_token",
        "password_reset_expires",
        "email_verification_token",
        "email_verification_expires",
    }
)

_ACCOUNT_COLUMNS = """
    id, email, username, password_hash, display_name, family_id, role,
    email_verified, password_reset_token, password_reset_expires,
    email_verification_token, email_verification_expires,
    can_view_calendar, can_view_tasks, can_view_shopping, can_view_budget,
    can_view_places, can_modify_items, created_at
"""


class DuplicateEmailError(Exception):
    """Raised by create_account when the email is already registered."""


class SessionStore(ABC):
    """Abstract CRUD over accounts, families, sessions and login attempts."""

    # Accounts

    @abstractmethod
    async def get_account_by_email(self, email: str) -> Optional[Account]:
        """Case-insensitive lookup by email."""

    @abstractmethod
    async def get_account_by_id(self, account_id: UUID) -> Optional[Account]:
        ...

    @abstractmethod
    async def get_account_by_reset_token(self, token: str) -> Optional[Account]:
        ...

    @abstractmethod
    async def get_account_by_verification_token(self, token: str) -> Optional[Account]:
        ...

    @abstractmethod
    async def create_account(
        self,
        email: str,
        username: str,
        password_hash: str,
        display_name: str,
        family_id: UUID,
        role: Role,
        permissions: Permissions,
        email_verification_token: Optional[str] = None,
        email_verification_expires: Optional[datetime] = None,
    ) -> Account:
        """Insert an account.

        Raises:
            DuplicateEmailError: If the email is already taken
        """

    @abstractmethod
    async def update_account(self, account_id: UUID, **fields: Any) -> None:
        """Apply a partial update restricted to UPDATABLE_ACCOUNT_FIELDS."""

    # Families

    @abstractmethod
    async def create_family(self, name: str) -> Family:
        ...

    @abstractmethod
    async def create_family_with_account(
        self,
        family_name: str,
        email: str,
        username: str,
        password_hash: str,
        display_name: str,
        role: Role,
        permissions: Permissions,
        email_verification_token: Optional[str] = None,
        email_verification_expires: Optional[datetime] = None,
    ) -> Tuple[Family, Account]:
        """Insert a family and its first account as one unit.

        Either both rows exist afterwards or neither does.

        Raises:
            DuplicateEmailError: If the email is already taken
        """

    # Sessions

    @abstractmethod
    async def create_session(
        self,
        token: str,
        account_id: UUID,
        family_id: UUID,
        role: Role,
        type: TokenType,
        expires_at: datetime,
    ) -> Session:
        ...

    @abstractmethod
    async def get_session(self, token: str) -> Optional[Session]:
        ...

    @abstractmethod
    async def delete_session(self, token: str) -> int:
        """Delete a session if it exists; return the number of rows removed."""

    @abstractmethod
    async def delete_sessions_by_account(self, account_id: UUID) -> int:
        ...

    @abstractmethod
    async def delete_expired_sessions(self) -> int:
        ...

    # Login attempts

    @abstractmethod
    async def record_login_attempt(
        self, email: str, ip_address: Optional[str], success: bool
    ) -> LoginAttempt:
        ...

    @abstractmethod
    async def get_recent_login_attempts(
        self, email: str, window_minutes: int
    ) -> List[LoginAttempt]:
        """Attempts for the email inside the trailing window, oldest first."""


def check_update_fields(fields: dict) -> None:
    """Reject update_account keys outside the allowed column set."""
    unknown = set(fields) - UPDATABLE_ACCOUNT_FIELDS
    if unknown:
        raise ValueError(f"Cannot update account fields: {sorted(unknown)}")


def _affected_rows(status: str) -> int:
    """Parse an asyncpg command status such as 'DELETE 3'."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


def _row_to_account(row) -> Account:
    return Account(
        id=row["id"],
        email=row["email"],
        username=row["username"],
        password_hash=row["password_hash"],
        display_name=row["display_name"],
        family_id=row["family_id"],
        role=Role(row["role"]),
        email_verified=row["email_verified"],
        password_reset_token=row["password_reset_token"],
        password_reset_expires=row["password_reset_expires"],
        email_verification_token=row["email_verification_token"],
        email_verification_expires=row["email_verification_expires"],
        permissions=Permissions(
            can_view_calendar=row["can_view_calendar"],
            can_view_tasks=row["can_view_tasks"],
            can_view_shopping=row["can_view_shopping"],
            can_view_budget=row["can_view_budget"],
            can_view_places=row["can_view_places"],
            can_modify_items=row["can_modify_items"],
        ),
        created_at=row["created_at"],
    )


def _row_to_session(row) -> Session:
    return Session(
        token=row["token"],
        account_id=row["account_id"],
        family_id=row["family_id"],
        role=Role(row["role"]),
        type=TokenType(row["type"]),
        expires_at=row["expires_at"],
        created_at=row["created_at"],
    )


class PostgresSessionStore(SessionStore):
    """SessionStore backed by the shared asyncpg pool."""

    async def _fetch_account(self, where: str, value: Any) -> Optional[Account]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE {where}",
                value,
            )

        if row is None:
            return None
        return _row_to_account(row)

    async def get_account_by_email(self, email: str) -> Optional[Account]:
        return await self._fetch_account("LOWER(email) = LOWER($1)", email)

    async def get_account_by_id(self, account_id: UUID) -> Optional[Account]:
        return await self._fetch_account("id = $1", account_id)

    async def get_account_by_reset_token(self, token: str) -> Optional[Account]:
        return await self._fetch_account("password_reset_token = $1", token)

    async def get_account_by_verification_token(self, token: str) -> Optional[Account]:
        return await self._fetch_account("email_verification_token = $1", token)

    async def _insert_account(
        self,
        conn: asyncpg.Connection,
        email: str,
        username: str,
        password_hash: str,
        display_name: str,
        family_id: UUID,
        role: Role,
        permissions: Permissions,
        email_verification_token: Optional[str],
        email_verification_expires: Optional[datetime],
    ) -> Account:
        account_id = uuid4()
        now = datetime.now(timezone.utc)
        email = email.lower()

        try:
            await conn.execute(
                """
                INSERT INTO accounts (
                    id, email, username, password_hash, display_name, family_id, role,
                    email_verified, email_verification_token, email_verification_expires,
                    can_view_calendar, can_view_tasks, can_view_shopping, can_view_budget,
                    can_view_places, can_modify_items, created_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, FALSE, $8, $9, $10, $11, $12, $13, $14, $15, $16)
                """,
                account_id,
                email,
                username,
                password_hash,
                display_name,
                family_id,
                Role(role).value,
                email_verification_token,
                email_verification_expires,
                permissions.can_view_calendar,
                permissions.can_view_tasks,
                permissions.can_view_shopping,
                permissions.can_view_budget,
                permissions.can_view_places,
                permissions.can_modify_items,
                now,
            )
        except asyncpg.exceptions.UniqueViolationError as e:
            logger.warning(
                "account_create_conflict",
                constraint=getattr(e, "constraint_name", None),
            )
            raise DuplicateEmailError(email) from e

        return Account(
            id=account_id,
            email=email,
            username=username,
            password_hash=password_hash,
            display_name=display_name,
            family_id=family_id,
            role=Role(role),
            email_verified=False,
            email_verification_token=email_verification_token,
            email_verification_expires=email_verification_expires,
            permissions=permissions,
            created_at=now,
        )

    async def _insert_family(self, conn: asyncpg.Connection, name: str) -> Family:
        family_id = uuid4()
        now = datetime.now(timezone.utc)

        await conn.execute(
            """
            INSERT INTO families (id, name, created_at)
            VALUES ($1, $2, $3)
            """,
            family_id,
            name,
            now,
        )
        return Family(id=family_id, name=name, created_at=now)

    async def create_account(
        self,
        email: str,
        username: str,
        password_hash: str,
        display_name: str,
        family_id: UUID,
        role: Role,
        permissions: Permissions,
        email_verification_token: Optional[str] = None,
        email_verification_expires: Optional[datetime] = None,
    ) -> Account:
        pool = await get_pool()

        async with pool.acquire() as conn:
            account = await self._insert_account(
                conn,
                email,
                username,
                password_hash,
                display_name,
                family_id,
                role,
                permissions,
                email_verification_token,
                email_verification_expires,
            )

        logger.info(
            "account_created",
            account_id=str(account.id),
            family_id=str(family_id),
            role=account.role.value,
        )
        return account

    async def create_family_with_account(
        self,
        family_name: str,
        email: str,
        username: str,
        password_hash: str,
        display_name: str,
        role: Role,
        permissions: Permissions,
        email_verification_token: Optional[str] = None,
        email_verification_expires: Optional[datetime] = None,
    ) -> Tuple[Family, Account]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                family = await self._insert_family(conn, family_name)
                account = await self._insert_account(
                    conn,
                    email,
                    username,
                    password_hash,
                    display_name,
                    family.id,
                    role,
                    permissions,
                    email_verification_token,
                    email_verification_expires,
                )

        logger.info(
            "family_account_created",
            account_id=str(account.id),
            family_id=str(family.id),
            role=account.role.value,
        )
        return family, account

    async def update_account(self, account_id: UUID, **fields: Any) -> None:
        check_update_fields(fields)
        if not fields:
            return

        columns = sorted(fields)
        assignments = ", ".join(
            f"{column} = ${index}" for index, column in enumerate(columns, start=2)
        )

        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                f"UPDATE accounts SET {assignments} WHERE id = $1",
                account_id,
                *(fields[column] for column in columns),
            )

        logger.debug("account_updated", account_id=str(account_id), fields=columns)

    async def create_family(self, name: str) -> Family:
        pool = await get_pool()

        async with pool.acquire() as conn:
            family = await self._insert_family(conn, name)

        logger.info("family_created", family_id=str(family.id))
        return family

    async def create_session(
        self,
        token: str,
        account_id: UUID,
        family_id: UUID,
        role: Role,
        type: TokenType,
        expires_at: datetime,
    ) -> Session:
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO sessions (token, account_id, family_id, role, type, expires_at, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                token,
                account_id,
                family_id,
                Role(role).value,
                TokenType(type).value,
                expires_at,
                now,
            )

        return Session(
            token=token,
            account_id=account_id,
            family_id=family_id,
            role=Role(role),
            type=TokenType(type),
            expires_at=expires_at,
            created_at=now,
        )

    async def get_session(self, token: str) -> Optional[Session]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT token, account_id, family_id, role, type, expires_at, created_at
                FROM sessions
                WHERE token = $1
                """,
                token,
            )

        if row is None:
            return None
        return _row_to_session(row)

    async def delete_session(self, token: str) -> int:
        pool = await get_pool()

        async with pool.acquire() as conn:
            status = await conn.execute("DELETE FROM sessions WHERE token = $1", token)

        return _affected_rows(status)

    async def delete_sessions_by_account(self, account_id: UUID) -> int:
        pool = await get_pool()

        async with pool.acquire() as conn:
            status = await conn.execute(
                "DELETE FROM sessions WHERE account_id = $1", account_id
            )

        removed = _affected_rows(status)
        logger.info("account_sessions_deleted", account_id=str(account_id), removed=removed)
        return removed

    async def delete_expired_sessions(self) -> int:
        pool = await get_pool()

        async with pool.acquire() as conn:
            status = await conn.execute(
                "DELETE FROM sessions WHERE expires_at < $1",
                datetime.now(timezone.utc),
            )

        return _affected_rows(status)

    async def record_login_attempt(
        self, email: str, ip_address: Optional[str], success: bool
    ) -> LoginAttempt:
        now = datetime.now(timezone.utc)
        email = email.lower()

        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO login_attempts (email, ip_address, success, created_at)
                VALUES ($1, $2, $3, $4)
                """,
                email,
                ip_address,
                success,
                now,
            )

        return LoginAttempt(email=email, ip_address=ip_address, success=success, created_at=now)

    async def get_recent_login_attempts(
        self, email: str, window_minutes: int
    ) -> List[LoginAttempt]:
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=window_minutes)

        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT email, ip_address, success, created_at
                FROM login_attempts
                WHERE email = $1 AND created_at > $2
                ORDER BY created_at ASC
                """,
                email.lower(),
                cutoff,
            )

        return [
            LoginAttempt(
                email=row["email"],
                ip_address=row["ip_address"],
                success=row["success"],
                created_at=row["created_at"],
            )
            for row in rows
        ]
