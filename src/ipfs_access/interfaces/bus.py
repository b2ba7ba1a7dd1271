"""EventBus protocol - fire-and-forget topic messaging for replication."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

Handler = Callable[[Any], Awaitable[Any]]


class EventBus(Protocol):
    def emit(self, topic: str, payload: Any) -> None:
        """Publish without waiting for subscribers."""
        ...

    def subscribe(self, topic: str, handler: Handler) -> None:
        ...
