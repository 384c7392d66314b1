# Adapters layer - Concrete implementations of ports

from .http_blob_store import HttpBlobStore
from .http_network_monitor import HttpNetworkMonitor, StaticNetworkMonitor
from .memory_blob_store import MemoryBlobStore

__all__ = [
    "HttpBlobStore",
    "HttpNetworkMonitor",
    "MemoryBlobStore",
    "StaticNetworkMonitor",
]
