"""Unified access facade - routes reads, pins and metadata to the right source."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Mapping
from typing import Any, TypeVar

from ipfs_access.errors import ContentUnavailable, InvalidInput, Unavailable
from ipfs_access.interfaces.source import GatewayResolver, NodeSource, ResolutionSource
from ipfs_access.interfaces.store import PinLedger
from ipfs_access.ipfs.direct import DirectSource
from ipfs_access.ipfs.gateway import GatewaySource
from ipfs_access.ipfs.kubo import KuboClient
from ipfs_access.ipfs.resolver import FanOutResolver
from ipfs_access.models.config import AccessConfig
from ipfs_access.models.events import BROADCAST_WRITE_TOPIC
from ipfs_access.models.records import (
    FileMetadata,
    NodeStatus,
    PinRecord,
    SourceKind,
    TypedContent,
)
from ipfs_access.replication.bus import LocalEventBus
from ipfs_access.storage.sqlite import SQLitePinLedger

log = logging.getLogger(__name__)

T = TypeVar("T")

# Read preference per operation. Raw reads go to our own node first; files go
# to gateways first, which are usually faster for binary payloads.
GET_ORDER = (SourceKind.DIRECT, SourceKind.REMOTE)
GET_FILE_ORDER = (SourceKind.REMOTE, SourceKind.DIRECT)

UPLOAD_CHUNK_SIZE = 256 * 1024


class IpfsAccessService:
    """Stateless router over the node source, the gateway source and the ledger.

    Sources are looked up by kind, never by type inspection. Writes and status
    only exist on the node source; metadata and image URLs only on gateways.
    """

    def __init__(
        self,
        sources: Mapping[SourceKind, ResolutionSource],
        ledger: PinLedger,
        bus: LocalEventBus | None = None,
        replication_enabled: bool = True,
    ) -> None:
        self.sources: dict[SourceKind, ResolutionSource] = dict(sources)
        self.ledger = ledger
        self.bus = bus
        self._replication_enabled = replication_enabled

    @classmethod
    def from_config(cls, cfg: AccessConfig) -> IpfsAccessService:
        """Wire the production stack: Kubo + gateways + SQLite + local bus."""
        ledger = SQLitePinLedger(cfg.db_path)
        bus = LocalEventBus(cfg.replication.queue_size)

        sources: dict[SourceKind, ResolutionSource] = {}
        if cfg.node_url:
            sources[SourceKind.DIRECT] = DirectSource(
                KuboClient(cfg.node_url, progress=cfg.progress),
                ledger,
                bus if cfg.replication.broadcast else None,
                fetch_timeout=cfg.fetch_timeout,
            )
        if cfg.gateways_urls:
            sources[SourceKind.REMOTE] = GatewaySource(
                cfg.gateways_urls,
                timeout=cfg.gateway_timeout,
                image_gateway_url=cfg.image_gateway_url,
                image_width=cfg.image_width,
            )
        return cls(sources, ledger, bus, replication_enabled=cfg.replication.enabled)

    # ── Lifecycle ──────────────────────────────────────────

    async def start(self) -> None:
        """Open the ledger, probe the node, start the replication listener."""
        await self.ledger.initialize()

        node = self.sources.get(SourceKind.DIRECT)
        if node is not None:
            await node.connect()
            if self.bus is not None and self._replication_enabled:
                self.bus.subscribe(BROADCAST_WRITE_TOPIC, node.handle_replication)

        if self.bus is not None:
            await self.bus.start()
        log.info(
            "IPFS access layer started (sources: %s)",
            ", ".join(k.value for k in self.sources) or "none",
        )

    async def close(self) -> None:
        if self.bus is not None:
            await self.bus.stop()
        await self.ledger.close()
        log.info("IPFS access layer stopped")

    async def __aenter__(self) -> IpfsAccessService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ── Source lookup ──────────────────────────────────────

    def _node(self) -> NodeSource:
        node = self.sources.get(SourceKind.DIRECT)
        if node is None:
            raise Unavailable("IPFS node is not configured")
        return node  # type: ignore[return-value]

    def _gateway(self) -> GatewayResolver:
        gateway = self.sources.get(SourceKind.REMOTE)
        if gateway is None:
            raise Unavailable("no IPFS gateways configured")
        return gateway  # type: ignore[return-value]

    async def _read(
        self,
        order: tuple[SourceKind, ...],
        target: str,
        op: Callable[[ResolutionSource], Awaitable[T]],
    ) -> T:
        """Try sources in ``order``; the next one only runs if the previous failed."""
        errors: list[BaseException] = []
        for kind in order:
            source = self.sources.get(kind)
            if source is None:
                continue
            try:
                return await op(source)
            except InvalidInput:
                raise
            except Exception as exc:
                log.info("%s read of %s failed, falling back: %s", kind.value, target, exc)
                errors.append(exc)

        if not errors:
            raise ContentUnavailable(f"no sources configured for {target}", cid=target)
        raise ContentUnavailable(
            f"content unavailable from every source: {target}", cid=target, errors=errors,
        ) from errors[-1]

    # ── Reads ──────────────────────────────────────────────

    async def get(self, cid: str) -> Any:
        """Parsed content (JSON or text); node first, gateways as fallback."""
        return await self._read(GET_ORDER, cid, lambda s: s.get(cid))

    async def get_file(self, url: str) -> TypedContent:
        """Bytes plus detected type; gateways first, node as fallback."""
        return await self._read(GET_FILE_ORDER, url, lambda s: s.fetch_typed(url))

    async def get_any(self, cid: str) -> bytes:
        """Race every configured source and return the first bytes to arrive."""
        return await FanOutResolver(list(self.sources.values())).fetch(cid)

    async def get_metadata(self, encoded_url: str) -> dict:
        return await self._gateway().resolve_metadata(encoded_url)

    def get_image_url(self, cid: str) -> str:
        return self._gateway().build_image_url(cid)

    # ── Node-only operations ───────────────────────────────

    async def status(self) -> NodeStatus:
        return await self._node().status()

    async def pin(self, content: str | bytes, owner: str) -> str:
        return await self._node().pin(content, owner)

    async def unpin(self, cid: str, owner: str) -> bool:
        return await self._node().unpin(cid, owner)

    async def upload_and_pin(
        self,
        file: bytes | AsyncIterable[bytes],
        filename: str,
        mimetype: str,
        size: int,
        owner: str,
    ) -> str:
        """Stream a file into the node, pin it and record its file metadata."""
        node = self._node()
        chunks = _chunked(file) if isinstance(file, (bytes, bytearray)) else file
        metadata = FileMetadata(filename=filename, mimetype=mimetype, size=size)
        return await node.pin_stream(chunks, owner, metadata)

    # ── Ledger queries ─────────────────────────────────────

    async def get_pin(self, cid: str) -> PinRecord | None:
        return await self.ledger.find_by_cid(cid)

    async def list_pins(self, owner: str | None = None) -> list[PinRecord]:
        return await self.ledger.list_pins(owner)


async def _chunked(data: bytes, size: int = UPLOAD_CHUNK_SIZE) -> AsyncIterator[bytes]:
    for start in range(0, len(data), size):
        yield bytes(data[start:start + size])
