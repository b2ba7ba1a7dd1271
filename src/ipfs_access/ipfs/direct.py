"""Direct source - reads, pins and unpins through the local Kubo node."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from ipfs_access.errors import (
    AlreadyPinned,
    ContentUnavailable,
    InvalidInput,
    NotFound,
    PinFailed,
    Unauthorized,
    Unavailable,
)
from ipfs_access.interfaces.bus import EventBus
from ipfs_access.interfaces.client import ContentStoreClient
from ipfs_access.interfaces.store import PinLedger
from ipfs_access.ipfs.cid import extract_cid
from ipfs_access.ipfs.content import detect_type, parse_content
from ipfs_access.models.events import WRITE_TOPIC, ReplicationMessage
from ipfs_access.models.records import (
    FileMetadata,
    NodeStatus,
    SourceKind,
    TypedContent,
)

log = logging.getLogger(__name__)


class DirectSource:
    """Node-backed resolution source, the only one that can write.

    Pin lifecycle:
    1. pin: add content to the node, then under the CID lock re-assert the
       node pin and write the ledger record
    2. unpin: check the record's owner, drop the node pin, then delete the
       record with a compare-and-delete

    Calls for the same CID are serialized by a per-CID lock; the ledger's
    unique key and compare-and-delete cover other processes.
    """

    kind = SourceKind.DIRECT

    def __init__(
        self,
        client: ContentStoreClient,
        ledger: PinLedger,
        bus: EventBus | None = None,
        fetch_timeout: float = 10.0,
    ) -> None:
        self._client = client
        self._ledger = ledger
        self._bus = bus
        self._fetch_timeout = fetch_timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @property
    def client(self) -> ContentStoreClient:
        return self._client

    @asynccontextmanager
    async def _cid_lock(self, cid: str) -> AsyncIterator[None]:
        lock = self._locks.get(cid)
        if lock is None:
            lock = self._locks[cid] = asyncio.Lock()
        self._lock_users[cid] = self._lock_users.get(cid, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[cid] -= 1
            if not self._lock_users[cid]:
                del self._lock_users[cid]
                del self._locks[cid]

    async def connect(self) -> bool:
        """Probe the node. A dead node leaves the service gateway-only."""
        try:
            version = await self._client.version()
        except Exception as exc:
            log.warning("Failed to connect to IPFS node. Running as resolver service only.")
            log.debug("IPFS node error: %s", exc)
            return False
        log.info("Connected to IPFS node version %s", version.get("Version", "?"))
        return True

    # ── Read path ──────────────────────────────────────────

    async def fetch(self, cid: str) -> bytes:
        if not cid:
            raise InvalidInput("invalid CID")
        try:
            return await asyncio.wait_for(self._collect(cid), timeout=self._fetch_timeout)
        except asyncio.TimeoutError as exc:
            raise ContentUnavailable(
                f"IPFS node timed out after {self._fetch_timeout}s fetching {cid}",
                cid=cid, errors=[exc],
            ) from exc
        except Exception as exc:
            raise ContentUnavailable(
                f"IPFS node could not fetch {cid}: {exc}", cid=cid, errors=[exc],
            ) from exc

    async def _collect(self, cid: str) -> bytes:
        chunks = []
        async for chunk in self._client.cat(cid, timeout=self._fetch_timeout):
            chunks.append(chunk)
        return b"".join(chunks)

    async def fetch_typed(self, url: str) -> TypedContent:
        cid = extract_cid(url)
        if not cid:
            raise InvalidInput("invalid CID")
        data = await self.fetch(cid)
        return TypedContent(data=data, type=detect_type(data))

    async def get(self, cid: str) -> Any:
        return parse_content(await self.fetch(cid))

    async def status(self) -> NodeStatus:
        try:
            identity = await self._client.id()
            peers = await self._client.swarm_peers()
        except Exception as exc:
            raise Unavailable(f"IPFS node unreachable: {exc}") from exc
        return NodeStatus(
            id=identity.get("ID", ""),
            addresses=identity.get("Addresses") or [],
            peers=peers.get("Peers") or [],
        )

    # ── Pin lifecycle ──────────────────────────────────────

    async def pin(self, content: str | bytes, owner: str, broadcast: bool = True) -> str:
        """Add ``content`` to the node and record ``owner`` as its pinner.

        If the ledger write fails the content stays in the node unrecorded;
        there is no rollback.
        """
        if not owner:
            raise InvalidInput("owner required")
        data = content.encode("utf-8") if isinstance(content, str) else content

        try:
            cid = await self._client.add(data, pin=True)
        except Exception as exc:
            log.error("Content injection failed: %s", exc)
            raise PinFailed(f"content injection failed: {exc}") from exc

        created = await self._record_pin(cid, owner)
        if created and broadcast:
            self._broadcast(ReplicationMessage(content=data, owner=owner))
        return cid

    async def pin_stream(
        self,
        chunks: AsyncIterable[bytes],
        owner: str,
        metadata: FileMetadata | None = None,
    ) -> str:
        """Streamed variant of ``pin`` for uploads; never broadcasts."""
        if not owner:
            raise InvalidInput("owner required")
        filename = metadata.filename if metadata else "data"

        last: dict | None = None
        try:
            async for result in self._client.add_stream(chunks, filename=filename, pin=True):
                if "Hash" in result:
                    last = result
                elif "Bytes" in result:
                    log.debug("Upload progress: %s bytes", result["Bytes"])
        except Exception as exc:
            log.error("Streamed upload of %s failed: %s", filename, exc)
            raise PinFailed(f"content injection failed: {exc}") from exc

        if last is None:
            raise PinFailed(f"upload of {filename} finished without a CID")

        cid = last["Hash"]
        await self._record_pin(cid, owner, metadata.to_dict() if metadata else None)
        return cid

    async def _record_pin(self, cid: str, owner: str, metadata: dict | None = None) -> bool:
        """Write the ledger record. False when ``owner`` already holds it."""
        async with self._cid_lock(cid):
            # An unpin may have dropped the node pin since our add
            try:
                await self._client.pin_add(cid)
            except Exception as exc:
                log.error("Node refused to pin %s: %s", cid, exc)
                raise PinFailed(f"content injection failed: {exc}") from exc

            try:
                existing = await self._ledger.find_by_cid(cid)
                if existing is None:
                    await self._ledger.create(cid, owner, metadata)
                    log.info("Pinned %s for %s", cid, owner)
                    return True
                existing_owner = existing.owner
            except AlreadyPinned as exc:
                # Another process inserted between our find and create
                existing_owner = exc.owner
            except Exception as exc:
                log.error(
                    "Ledger write failed for %s, content stays in the node unrecorded: %s",
                    cid, exc,
                )
                raise PinFailed(f"ledger write failed for {cid}") from exc

        if existing_owner != owner:
            raise AlreadyPinned(cid, existing_owner)
        log.info("CID %s already pinned by the same owner, keeping record", cid)
        return False

    def _broadcast(self, message: ReplicationMessage) -> None:
        if self._bus is None:
            return
        try:
            self._bus.emit(WRITE_TOPIC, message)
        except Exception as exc:
            log.warning("Pin broadcast failed: %s", exc)

    async def unpin(self, cid: str, owner: str) -> bool:
        """Drop ``owner``'s pin on ``cid``.

        The node pin goes first; if that fails the ledger record stays, so
        the ledger never claims less than the node holds.
        """
        if not cid:
            raise InvalidInput("invalid CID")

        async with self._cid_lock(cid):
            try:
                record = await self._ledger.find_by_cid(cid)
            except Exception as exc:
                raise Unavailable(f"pin ledger unavailable: {exc}") from exc
            if record is None:
                raise NotFound(f"content not pinned: {cid}")
            if record.owner != owner:
                raise Unauthorized("only the content owner can unpin")

            try:
                await self._client.pin_remove(cid)
            except Exception as exc:
                log.error("Node refused to unpin %s, keeping ledger record: %s", cid, exc)
                raise Unavailable(f"IPFS node could not remove pin for {cid}") from exc

            try:
                deleted = await self._ledger.delete_by_cid(cid, owner=owner)
            except Exception as exc:
                raise Unavailable(f"pin ledger unavailable: {exc}") from exc
            if not deleted:
                raise NotFound(f"pin record for {cid} was removed concurrently")

        log.info("Removed pin %s for %s", cid, owner)
        return True

    # ── Replication ────────────────────────────────────────

    async def handle_replication(self, message: ReplicationMessage) -> bool:
        """Mirror a sibling's pin locally. Failures are logged, never raised."""
        try:
            await self.pin(message.content, message.owner, broadcast=False)
        except Exception as exc:
            log.warning("Replicated pin for %s failed: %s", message.owner, exc)
            return False
        return True
