# Ports layer - Abstract interfaces (Protocols)

from .auth import AuthState, LoginListener
from .blob_store import BlobStore
from .network import NetworkListener, NetworkMonitor

__all__ = [
    "AuthState",
    "BlobStore",
    "LoginListener",
    "NetworkListener",
    "NetworkMonitor",
]
