"""PinLedger protocol - durable CID -> (owner, timestamp, metadata) mapping."""

from __future__ import annotations

from typing import Protocol

from ipfs_access.models.records import PinRecord


class PinLedger(Protocol):
    """Persists pin records. One record per CID; only the owner may delete it."""

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        ...

    async def close(self) -> None:
        ...

    # ── Records ────────────────────────────────────────────

    async def create(
        self,
        cid: str,
        owner: str,
        metadata: dict | None = None,
        timestamp: str | None = None,
    ) -> PinRecord:
        """Insert a record. Raises AlreadyPinned if the CID has one."""
        ...

    async def find_by_cid(self, cid: str) -> PinRecord | None:
        ...

    async def delete_by_cid(self, cid: str, owner: str | None = None) -> bool:
        """Delete the record; with ``owner`` only if it still matches.

        Returns True if this call removed a row.
        """
        ...

    async def list_pins(self, owner: str | None = None) -> list[PinRecord]:
        ...
