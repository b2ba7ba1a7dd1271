"""SQLite implementation of the PinLedger protocol."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from ipfs_access.errors import AlreadyPinned
from ipfs_access.models.records import PinRecord

SCHEMA = """
-- One row per pinned CID; the primary key rejects a second pin record
CREATE TABLE IF NOT EXISTS pins (
    cid TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    metadata TEXT
);
CREATE INDEX IF NOT EXISTS idx_pins_owner ON pins(owner);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLitePinLedger:
    """SQLite-backed implementation of the PinLedger protocol.

    Concurrency control is carried by the schema: ``cid`` is the primary key,
    so a racing second insert fails, and owner-gated deletes run as a single
    ``DELETE ... WHERE cid=? AND owner=?`` whose row count tells the caller
    whether it won.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        if self._db is not None:
            return
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Ledger not initialized. Call initialize() first."
        return self._db

    # ── Records ────────────────────────────────────────────

    async def create(
        self,
        cid: str,
        owner: str,
        metadata: dict | None = None,
        timestamp: str | None = None,
    ) -> PinRecord:
        record = PinRecord(
            cid=cid, owner=owner, timestamp=timestamp or _now(), metadata=metadata,
        )
        try:
            await self.db.execute(
                "INSERT INTO pins (cid, owner, timestamp, metadata) VALUES (?, ?, ?, ?)",
                (
                    record.cid, record.owner, record.timestamp,
                    json.dumps(metadata) if metadata is not None else None,
                ),
            )
        except aiosqlite.IntegrityError:
            await self.db.rollback()
            existing = await self.find_by_cid(cid)
            raise AlreadyPinned(cid, existing.owner if existing else "")
        await self.db.commit()
        return record

    async def find_by_cid(self, cid: str) -> PinRecord | None:
        async with self.db.execute("SELECT * FROM pins WHERE cid=?", (cid,)) as cur:
            row = await cur.fetchone()
            return _row_to_record(row) if row else None

    async def delete_by_cid(self, cid: str, owner: str | None = None) -> bool:
        if owner is None:
            cur = await self.db.execute("DELETE FROM pins WHERE cid=?", (cid,))
        else:
            cur = await self.db.execute(
                "DELETE FROM pins WHERE cid=? AND owner=?", (cid, owner),
            )
        deleted = cur.rowcount > 0
        await cur.close()
        await self.db.commit()
        return deleted

    async def list_pins(self, owner: str | None = None) -> list[PinRecord]:
        if owner is None:
            sql, params = "SELECT * FROM pins ORDER BY timestamp", ()
        else:
            sql, params = "SELECT * FROM pins WHERE owner=? ORDER BY timestamp", (owner,)
        async with self.db.execute(sql, params) as cur:
            return [_row_to_record(row) async for row in cur]


# ── Row converters ─────────────────────────────────────────


def _row_to_record(row: aiosqlite.Row) -> PinRecord:
    return PinRecord(
        cid=row["cid"],
        owner=row["owner"],
        timestamp=row["timestamp"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else None,
    )
