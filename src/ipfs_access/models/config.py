"""Configuration models for the access layer."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_GATEWAYS = [
    "https://ipfs.io/ipfs/",
    "https://dweb.link/ipfs/",
    "https://gateway.pinata.cloud/ipfs/",
]


@dataclass
class ReplicationConfig:
    """Broadcast-on-write settings for multi-instance deployments."""

    enabled: bool = True  # run the replication listener
    broadcast: bool = True  # publish our own pins to siblings
    queue_size: int = 1000  # per-subscription backlog before messages are dropped


@dataclass
class AccessConfig:
    """Complete access-layer configuration."""

    # Direct source (Kubo RPC). Empty string disables pin/unpin/status.
    node_url: str = "http://127.0.0.1:5001"
    fetch_timeout: float = 10.0  # seconds, bounds a single cat
    progress: bool = True  # ask Kubo for progress lines on streamed uploads

    # Remote sources, raced concurrently
    gateways_urls: list[str] = field(default_factory=lambda: list(DEFAULT_GATEWAYS))
    gateway_timeout: float = 10.0  # seconds per gateway request
    image_gateway_url: str = "https://gateway.pinata.cloud/ipfs/"
    image_width: int = 300

    # Pin ledger
    db_path: str = "~/.ipfs_access/pins.db"

    log_level: str = "info"

    replication: ReplicationConfig = field(default_factory=ReplicationConfig)
