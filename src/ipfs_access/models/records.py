"""Record and result types shared by sources, the ledger and the facade."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum


class SourceKind(str, Enum):
    """Closed set of resolution source families."""

    DIRECT = "node"  # Kubo node: read + pin/unpin/status
    REMOTE = "gateway"  # HTTP gateways: read only


@dataclass
class PinRecord:
    """Owner X asked for CID Y to be retained."""

    cid: str
    owner: str
    timestamp: str = ""  # ISO 8601, UTC
    metadata: dict | None = None


@dataclass
class FileMetadata:
    """Metadata attached to the pin record of an uploaded file."""

    filename: str
    mimetype: str
    size: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class FileType:
    """Result of content sniffing."""

    mime: str
    extension: str


@dataclass
class TypedContent:
    """Raw bytes plus the detected format (None when unrecognized)."""

    data: bytes
    type: FileType | None = None


@dataclass
class NodeStatus:
    """Identity and swarm info of the backing Kubo node."""

    id: str
    addresses: list[str] = field(default_factory=list)
    peers: list[dict] = field(default_factory=list)
