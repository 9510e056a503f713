"""
Database Migration System

Manages versioned schema migrations for local and staging queue stores.
Each migration is applied in a transaction and recorded in schema_migrations.

Migrations are additive (CREATE ... IF NOT EXISTS): running them against the
production store, which already has the tables, changes nothing.
"""
import logging
import re
from pathlib import Path
from typing import List, Set, Tuple

import asyncpg

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

_MIGRATION_NAME = re.compile(r'^(\d+)_(.+)\.sql$')


async def ensure_migrations_table(conn: asyncpg.Connection):
    await conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)


async def get_applied_migrations(conn: asyncpg.Connection) -> Set[str]:
    rows = await conn.fetch("SELECT version FROM schema_migrations")
    return {row["version"] for row in rows}


def get_migration_files(migrations_dir: Path = MIGRATIONS_DIR) -> List[Tuple[str, Path]]:
    """
    Migration files sorted by numeric version.

    Returns:
        List of (version, path)
    """
    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return []

    migrations = []
    for file_path in migrations_dir.glob("*.sql"):
        match = _MIGRATION_NAME.match(file_path.name)
        if match:
            migrations.append((match.group(1), file_path))
        else:
            logger.warning(f"Migration file name doesn't match pattern: {file_path.name}")

    # numeric, not lexicographic
    migrations.sort(key=lambda x: int(x[0]))
    return migrations


async def apply_migration(conn: asyncpg.Connection, version: str, migration_path: Path) -> None:
    """
    Apply one migration. The caller holds the transaction.

    Raises:
        Exception: SQL execution error
    """
    sql_content = migration_path.read_text(encoding='utf-8')

    if not sql_content.strip():
        logger.warning(f"Migration {version} is empty, skipping")
        return

    logger.info(f"Applying migration {version}: {migration_path.name}")
    # asyncpg executes multi-statement SQL natively
    await conn.execute(sql_content)
    await conn.execute(
        "INSERT INTO schema_migrations (version) VALUES ($1) ON CONFLICT (version) DO NOTHING",
        version
    )
    logger.info(f"Migration {version} applied successfully")


async def run_migrations(conn: asyncpg.Connection, migrations_dir: Path = MIGRATIONS_DIR) -> int:
    """
    Apply all pending migrations, each in its own transaction.

    Returns:
        Number of migrations applied

    Raises:
        Exception: first failing migration (already applied ones stay applied)
    """
    await ensure_migrations_table(conn)
    applied = await get_applied_migrations(conn)
    logger.info(f"Applied migrations: {sorted(applied)}")

    count = 0
    for version, migration_path in get_migration_files(migrations_dir):
        if version in applied:
            logger.debug(f"Migration {version} already applied, skipping")
            continue
        try:
            async with conn.transaction():
                await apply_migration(conn, version, migration_path)
        except Exception:
            logger.exception(f"CRITICAL: Migration {version} ({migration_path.name}) FAILED")
            raise
        count += 1

    logger.info(f"Migrations complete, newly applied: {count}")
    return count


async def run_migrations_safe(pool: asyncpg.Pool) -> int:
    async with pool.acquire() as conn:
        return await run_migrations(conn)
