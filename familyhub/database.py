"""Postgres pool lifecycle and schema migrations."""

from pathlib import Path
from typing import Optional, Set

import asyncpg
import structlog

from familyhub.config import get_settings

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"

_LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    filename TEXT PRIMARY KEY,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""

# Process-wide pool, created by init_database() during app startup
_pool: Optional[asyncpg.Pool] = None


async def get_pool() -> asyncpg.Pool:
    """Return the shared pool.

    Raises:
        RuntimeError: If init_database() has not run yet
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_database() first.")
    return _pool


async def init_database() -> asyncpg.Pool:
    """Create the shared pool from settings (no-op if already created)."""
    global _pool

    if _pool is not None:
        return _pool

    settings = get_settings()

    try:
        _pool = await asyncpg.create_pool(
            settings.postgres_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout_seconds,
        )
    except (OSError, asyncpg.PostgresError) as e:
        logger.error("database_pool_creation_failed", error=str(e))
        raise

    logger.info(
        "database_pool_created",
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    return _pool


async def close_database() -> None:
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("database_pool_closed")


async def _applied_migrations(conn: asyncpg.Connection) -> Set[str]:
    await conn.execute(_LEDGER_DDL)
    rows = await conn.fetch("SELECT filename FROM schema_migrations")
    return {row["filename"] for row in rows}


async def run_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> int:
    """Apply pending ``*.sql`` files in filename order.

    Each file runs in its own transaction together with its row in the
    ``schema_migrations`` ledger, so a file is applied at most once and a
    failing file leaves no partial schema behind.

    Args:
        migrations_dir: Directory holding the numbered SQL files

    Returns:
        Number of migrations applied by this call
    """
    if not migrations_dir.exists():
        logger.warning("migrations_directory_not_found", path=str(migrations_dir))
        return 0

    migration_files = sorted(migrations_dir.glob("*.sql"))
    if not migration_files:
        logger.info("no_migrations_found")
        return 0

    pool = await get_pool()
    applied_count = 0

    async with pool.acquire() as conn:
        applied = await _applied_migrations(conn)

        for migration_file in migration_files:
            if migration_file.name in applied:
                continue
            try:
                async with conn.transaction():
                    await conn.execute(migration_file.read_text())
                    await conn.execute(
                        "INSERT INTO schema_migrations (filename) VALUES ($1)",
                        migration_file.name,
                    )
            except asyncpg.PostgresError as e:
                logger.error(
                    "migration_failed",
                    file=migration_file.name,
                    error=str(e),
                )
                raise
            applied_count += 1
            logger.info("migration_applied", file=migration_file.name)

    if applied_count == 0:
        logger.info("schema_up_to_date", known=len(applied))
    return applied_count


async def health_check() -> bool:
    """Return True if the pool exists and answers ``SELECT 1``."""
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return False
