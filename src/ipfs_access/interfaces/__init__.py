"""Protocol interfaces for all ipfs_access components."""

from ipfs_access.interfaces.bus import EventBus
from ipfs_access.interfaces.client import ContentStoreClient
from ipfs_access.interfaces.source import GatewayResolver, NodeSource, ResolutionSource
from ipfs_access.interfaces.store import PinLedger

__all__ = [
    "EventBus",
    "ContentStoreClient",
    "GatewayResolver", "NodeSource", "ResolutionSource",
    "PinLedger",
]
