import asyncio
from typing import List

from sqlalchemy import inspect

from app.core.config import settings
from app.db import base  # noqa: F401
from app.db.session import Base, Database


REQUIRED_TABLES: List[str] = [
    "users",
    "auth_tokens",
    "gas_stations",
    "pumps",
    "expected_child_tags",
    "verification_sessions",
    "scanned_child_tags",
    "audit_logs",
]


async def missing_tables(database: Database) -> List[str]:
    """Required tables not present in the connected database."""
    async with database.engine.connect() as conn:
        existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
    return [table for table in REQUIRED_TABLES if table not in existing]


async def ensure_tables(database: Database) -> List[str]:
    """
    Ensure that all required tables exist in the connected database.
    Missing tables are created (existing ones are left untouched); returns what was missing.
    """
    missing = await missing_tables(database)
    if missing:
        async with database.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    return missing


async def main() -> None:
    database = Database(settings.database_url, echo=settings.sql_echo)
    try:
        missing = await ensure_tables(database)
    finally:
        await database.disconnect()

    if missing:
        print("Created missing tables: " + ", ".join(missing))
    else:
        print("All required tables already exist in the database.")


if __name__ == "__main__":
    asyncio.run(main())
