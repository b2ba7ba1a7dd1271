"""Fan-out resolution: race every source, keep the first success.

All attempts start at once so a dead or slow source never delays an answer
another source can give. Losers are cancelled and awaited before returning,
so their connections are released. Nothing here imposes an aggregate
timeout; each attempt is expected to bound itself.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable, Sequence
from typing import Any, TypeVar

from ipfs_access.errors import ContentUnavailable, InvalidInput
from ipfs_access.interfaces.source import ResolutionSource
from ipfs_access.ipfs.cid import extract_cid
from ipfs_access.models.records import TypedContent

log = logging.getLogger(__name__)

T = TypeVar("T")


async def first_success(
    attempts: Iterable[Awaitable[T]],
    *,
    cid: str | None = None,
    what: str = "sources",
) -> T:
    """Return the result of the first attempt to succeed.

    Raises ContentUnavailable when every attempt fails. Its ``errors`` holds
    every underlying exception in completion order; the last one is chained
    as ``__cause__``.
    """
    tasks = [asyncio.ensure_future(a) for a in attempts]
    if not tasks:
        raise ContentUnavailable(f"no {what} configured for {cid}", cid=cid)

    errors: list[BaseException] = []
    pending = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(
                pending, return_when=asyncio.FIRST_COMPLETED,
            )
            # Deterministic pick when several finish in the same tick
            for task in (t for t in tasks if t in done):
                if task.cancelled():
                    errors.append(asyncio.CancelledError())
                    continue
                exc = task.exception()
                if exc is None:
                    return task.result()
                log.debug("Attempt for %s failed: %s", cid, exc)
                errors.append(exc)
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    raise ContentUnavailable(
        f"all {len(tasks)} {what} failed for {cid}", cid=cid, errors=errors,
    ) from errors[-1]


class FanOutResolver:
    """Applies ``first_success`` across whole resolution sources."""

    def __init__(self, sources: Sequence[ResolutionSource]) -> None:
        self._sources = list(sources)

    @property
    def sources(self) -> list[ResolutionSource]:
        return list(self._sources)

    async def fetch(self, cid: str) -> bytes:
        _require_cid(cid)
        return await first_success(
            (s.fetch(cid) for s in self._sources), cid=cid,
        )

    async def fetch_typed(self, url: str) -> TypedContent:
        _require_cid(extract_cid(url))
        return await first_success(
            (s.fetch_typed(url) for s in self._sources), cid=url,
        )

    async def get(self, cid: str) -> Any:
        _require_cid(cid)
        return await first_success(
            (s.get(cid) for s in self._sources), cid=cid,
        )


def _require_cid(cid: str | None) -> None:
    # Bad input is the caller's fault, not a source failure to race around.
    if not cid:
        raise InvalidInput("invalid CID")
