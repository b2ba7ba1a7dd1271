"""Replication messages exchanged between sibling instances."""

from __future__ import annotations

from dataclasses import dataclass

# Published by a pin with broadcasting enabled.
WRITE_TOPIC = "ipfs:write"

# Consumed by the replication listener; a relay forwards WRITE_TOPIC here.
BROADCAST_WRITE_TOPIC = "ipfs:broadcast:write"


@dataclass(frozen=True)
class ReplicationMessage:
    """A pin performed on one instance, to be mirrored on its siblings."""

    content: bytes
    owner: str
