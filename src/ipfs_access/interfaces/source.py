"""ResolutionSource protocols - read path shared by node and gateway sources."""

from __future__ import annotations

from collections.abc import AsyncIterable
from typing import Any, Protocol

from ipfs_access.models.events import ReplicationMessage
from ipfs_access.models.records import (
    FileMetadata,
    NodeStatus,
    SourceKind,
    TypedContent,
)


class ResolutionSource(Protocol):
    """Anything that can turn a CID into bytes."""

    kind: SourceKind

    async def fetch(self, cid: str) -> bytes:
        """Return the raw bytes behind a CID."""
        ...

    async def fetch_typed(self, url: str) -> TypedContent:
        """Extract the CID from an IPFS URL, fetch it and sniff its format."""
        ...

    async def get(self, cid: str) -> Any:
        """Fetch and parse: JSON value if possible, else text."""
        ...


class NodeSource(ResolutionSource, Protocol):
    """The node-backed source: reads plus pin lifecycle and status."""

    async def connect(self) -> bool:
        ...

    async def status(self) -> NodeStatus:
        ...

    async def pin(self, content: str | bytes, owner: str, broadcast: bool = True) -> str:
        ...

    async def pin_stream(
        self,
        chunks: AsyncIterable[bytes],
        owner: str,
        metadata: FileMetadata | None = None,
    ) -> str:
        ...

    async def unpin(self, cid: str, owner: str) -> bool:
        ...

    async def handle_replication(self, message: ReplicationMessage) -> bool:
        ...


class GatewayResolver(ResolutionSource, Protocol):
    """The gateway-backed source: reads plus metadata/image helpers."""

    async def resolve_metadata(self, encoded_url: str) -> dict:
        ...

    def build_image_url(self, cid: str) -> str:
        ...
