"""Data models for the ipfs_access layer."""

from ipfs_access.models.config import AccessConfig, ReplicationConfig
from ipfs_access.models.events import (
    BROADCAST_WRITE_TOPIC,
    WRITE_TOPIC,
    ReplicationMessage,
)
from ipfs_access.models.records import (
    FileMetadata,
    FileType,
    NodeStatus,
    PinRecord,
    SourceKind,
    TypedContent,
)

__all__ = [
    "AccessConfig", "ReplicationConfig",
    "BROADCAST_WRITE_TOPIC", "WRITE_TOPIC", "ReplicationMessage",
    "FileMetadata", "FileType", "NodeStatus", "PinRecord", "SourceKind",
    "TypedContent",
]
