"""Database initialization and connection management."""
import logging
from pathlib import Path
from typing import Optional

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent.parent / "database" / "migrations" / "init.sql"


class Database:
    """Database connection manager."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> aiosqlite.Connection:
        """Establish database connection."""
        if self._conn is None:
            # Ensure data directory exists
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            self._conn = await aiosqlite.connect(self.db_path)
            await self._conn.execute("PRAGMA foreign_keys = ON")
            await self._conn.commit()

        return self._conn

    async def close(self):
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def execute(self, query: str, params: tuple = ()) -> int:
        """Execute a query and commit. Returns the number of affected rows."""
        conn = await self.connect()
        cursor = await conn.execute(query, params)
        await conn.commit()
        return cursor.rowcount

    async def fetchone(self, query: str, params: tuple = ()):
        """Fetch one result."""
        conn = await self.connect()
        async with conn.execute(query, params) as cursor:
            return await cursor.fetchone()

    async def fetchall(self, query: str, params: tuple = ()):
        """Fetch all results."""
        conn = await self.connect()
        async with conn.execute(query, params) as cursor:
            return await cursor.fetchall()


async def init_database(db_path: str = "data/exam_bot.db") -> Database:
    """Open the database and apply the schema from migrations/init.sql."""
    if not SCHEMA_PATH.exists():
        raise FileNotFoundError(f"Migration file not found: {SCHEMA_PATH}")

    schema_sql = SCHEMA_PATH.read_text(encoding="utf-8")

    db = Database(db_path)
    conn = await db.connect()
    await conn.executescript(schema_sql)
    await conn.commit()

    logger.info("Database initialized at %s", db_path)
    return db


# Global database instance (set in bot.py)
db: Optional[Database] = None


def get_db() -> Database:
    """Get global database instance."""
    if db is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return db
