"""decksync - review scheduling and offline-first deck synchronization."""

__version__ = "0.1.0"
