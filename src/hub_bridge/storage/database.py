"""SQLite persistence for bridge records.

One ``aiosqlite`` connection per process, opened in WAL mode so a CLI
``bridge status`` can read while a saga is writing. Rows come back as
plain dicts.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

import aiosqlite


class Database:
    """Async handle on the bridge database.

    Parameters
    ----------
    db_path:
        Database file, created along with its parent directory on
        :meth:`connect`. ``":memory:"`` gives a throwaway database.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._conn: Optional[aiosqlite.Connection] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(str(self.db_path))
        await conn.execute("PRAGMA journal_mode=WAL;")
        conn.row_factory = sqlite3.Row
        self._conn = conn
        await self._migrate()

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError(f"Database {self.db_path} is not open; call connect() first")
        return self._conn

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def execute(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        """Run one write statement and commit it."""
        cursor = await self.conn.execute(sql, params)
        await self.conn.commit()
        return cursor

    async def fetch_one(self, sql: str, params: tuple = ()) -> Optional[dict]:
        async with self.conn.execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return dict(row) if row is not None else None

    async def fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        async with self.conn.execute(sql, params) as cursor:
            return [dict(r) for r in await cursor.fetchall()]

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    async def _migrate(self) -> None:
        await self.conn.executescript(
            """\
            CREATE TABLE IF NOT EXISTS bridge_transfers (
                burn_tx_hash TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                source_chain TEXT NOT NULL,
                destination_chain TEXT NOT NULL,
                recipient TEXT NOT NULL,
                amount TEXT NOT NULL,
                stage TEXT DEFAULT 'burned',
                outcome TEXT DEFAULT 'pending',
                approve_tx_hash TEXT,
                mint_tx_hash TEXT,
                delivery_tx_hash TEXT,
                error TEXT,
                failed_at TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_bridge_transfers_user
                ON bridge_transfers (user_id, created_at);
            """
        )
        await self.conn.commit()


def get_database(root_dir: Path) -> Database:
    """Unopened database at ``root_dir/bridge.db``."""
    return Database(Path(root_dir) / "bridge.db")
