"""ContentStoreClient protocol - the content-addressed node the Direct source wraps."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from typing import Protocol


class ContentStoreClient(Protocol):
    """Minimal slice of the Kubo RPC used by the access layer."""

    async def version(self) -> dict:
        ...

    def cat(self, cid: str, timeout: float = 10.0) -> AsyncIterator[bytes]:
        """Stream the content of a CID in chunks."""
        ...

    async def add(self, data: bytes, pin: bool = True) -> str:
        """Add a single buffer and return its CID."""
        ...

    def add_stream(
        self, chunks: AsyncIterable[bytes], filename: str = "data", pin: bool = True,
    ) -> AsyncIterator[dict]:
        """Stream content in; yields partial results, the last carries ``Hash``."""
        ...

    async def pin_add(self, cid: str) -> None:
        """Pin content the node already holds."""
        ...

    async def pin_remove(self, cid: str) -> None:
        ...

    async def id(self) -> dict:
        ...

    async def swarm_peers(self) -> dict:
        ...
