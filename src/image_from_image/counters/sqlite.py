"""Counters kept in a SQLite database, leaving image files untouched."""

import asyncio
import logging
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from ..exceptions import CounterStoreError
from ..models import CounterRecord, Outcome
from .base import CounterStore

logger = logging.getLogger(__name__)


class SqliteCounterStore(CounterStore):
    """Async SQLite store keyed by absolute file path."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create schema if not exists."""
        if self._initialized:
            return

        # Paired sessions share one database file
        async with self._init_lock:
            if self._initialized:
                return

            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute("PRAGMA journal_mode = WAL")
                    await db.execute("PRAGMA busy_timeout = 5000")
                    await db.execute("""
                        CREATE TABLE IF NOT EXISTS counters (
                            file_path TEXT PRIMARY KEY,
                            success_count INTEGER NOT NULL DEFAULT 0,
                            failed_count INTEGER NOT NULL DEFAULT 0,
                            updated_at TEXT NOT NULL
                        )
                    """)
                    await db.commit()
            except (OSError, aiosqlite.Error) as e:
                raise CounterStoreError(f"Cannot open counter database {self.db_path}: {e}") from e

            self._initialized = True

    async def read(self, file_id: str) -> CounterRecord | None:
        await self.initialize()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA busy_timeout = 5000")
                async with db.execute(
                    "SELECT success_count, failed_count FROM counters WHERE file_path = ?",
                    (file_id,),
                ) as cursor:
                    row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise CounterStoreError(f"Cannot read counters for {file_id}: {e}") from e

        if row is None:
            return None
        return CounterRecord(success_count=row[0], failed_count=row[1])

    async def write(self, file_id: str, record: CounterRecord) -> None:
        await self.initialize()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA busy_timeout = 5000")
                await db.execute(
                    """
                    INSERT INTO counters (file_path, success_count, failed_count, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(file_path) DO UPDATE SET
                        success_count = excluded.success_count,
                        failed_count = excluded.failed_count,
                        updated_at = excluded.updated_at
                """,
                    (file_id, record.success_count, record.failed_count, datetime.now(UTC).isoformat()),
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise CounterStoreError(f"Cannot write counters for {file_id}: {e}") from e

    async def increment(self, file_id: str, outcome: Outcome) -> CounterRecord:
        """Atomic upsert of a single counter."""
        if outcome == Outcome.UNDETERMINED:
            raise ValueError(f"Cannot record undetermined outcome: {outcome}")
        await self.initialize()

        column = "success_count" if outcome == Outcome.SUCCESS else "failed_count"
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA busy_timeout = 5000")
                await db.execute(
                    f"""
                    INSERT INTO counters (file_path, {column}, updated_at) VALUES (?, 1, ?)
                    ON CONFLICT(file_path) DO UPDATE SET
                        {column} = {column} + 1,
                        updated_at = excluded.updated_at
                """,
                    (file_id, datetime.now(UTC).isoformat()),
                )
                await db.commit()
                async with db.execute(
                    "SELECT success_count, failed_count FROM counters WHERE file_path = ?",
                    (file_id,),
                ) as cursor:
                    row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise CounterStoreError(f"Cannot update counters for {file_id}: {e}") from e

        return CounterRecord(success_count=row[0], failed_count=row[1])

    async def list_records(self, prefix: str | None = None) -> dict[str, CounterRecord]:
        """All stored records, optionally limited to paths under `prefix`."""
        await self.initialize()
        query = "SELECT file_path, success_count, failed_count FROM counters"
        params: tuple = ()
        if prefix:
            query += " WHERE file_path LIKE ?"
            params = (f"{prefix}%",)
        query += " ORDER BY file_path"
        try:
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute(query, params) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise CounterStoreError(f"Cannot list counters: {e}") from e
        return {row[0]: CounterRecord(success_count=row[1], failed_count=row[2]) for row in rows}
