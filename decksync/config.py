"""Application configuration loaded from environment variables.

Provides type-safe access to configuration with sensible defaults.
"""

import os
from datetime import timedelta
from pathlib import Path

from decksync.infrastructure.retry import RetryPolicy


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def get_data_dir() -> Path:
    """Get the root directory holding local decks.

    Environment variable: DECKSYNC_DATA_DIR
    Default: ~/.decksync/notes
    """
    default = Path.home() / ".decksync" / "notes"
    return Path(os.getenv("DECKSYNC_DATA_DIR", str(default))).expanduser()


def get_backup_dir() -> Path | None:
    """Get the directory holding older deck copies for placeholder recovery.

    Environment variable: DECKSYNC_BACKUP_DIR
    Default: unset (no local fallback)
    """
    value = os.getenv("DECKSYNC_BACKUP_DIR", "").strip()
    return Path(value).expanduser() if value else None


def get_queue_db_path() -> Path:
    """Get the unsynced queue database path.

    Environment variable: UNSYNCED_QUEUE_DB_PATH
    Default: ~/.decksync/unsynced.db
    """
    default = Path.home() / ".decksync" / "unsynced.db"
    return Path(os.getenv("UNSYNCED_QUEUE_DB_PATH", str(default))).expanduser()


def get_blob_store_type() -> str:
    """Get blob store adapter type.

    Options:
        - 'http': Remote REST object store at BLOB_STORE_URL (default)
        - 'memory': In-memory store (local development, nothing persists remotely)
    """
    return os.getenv("BLOB_STORE", "http").lower()


def get_blob_store_url() -> str:
    """Get remote blob store URL.

    Environment variable: BLOB_STORE_URL
    Default: http://localhost:9000/blobs
    """
    return os.getenv("BLOB_STORE_URL", "http://localhost:9000/blobs")


def get_blob_store_token() -> str | None:
    """Get bearer token for the blob store (BLOB_STORE_TOKEN, optional)."""
    return os.getenv("BLOB_STORE_TOKEN") or None


def get_network_probe_url() -> str | None:
    """Get the URL probed for connectivity.

    Environment variable: NETWORK_PROBE_URL
    Default: unset, availability is then only changed through the API
    """
    return os.getenv("NETWORK_PROBE_URL") or None


def get_network_probe_interval() -> float:
    """Seconds between connectivity probes (NETWORK_PROBE_INTERVAL_SECONDS, default 30)."""
    return _get_float("NETWORK_PROBE_INTERVAL_SECONDS", 30.0)


def get_sync_timeout() -> float:
    """Time limit of one deck sync pass in seconds.

    Environment variable: SYNC_TIMEOUT_SECONDS
    Default: 15
    """
    return _get_float("SYNC_TIMEOUT_SECONDS", 15.0)


def get_drain_delay() -> float:
    """Pause between decks while draining the queue (DRAIN_DELAY_SECONDS, default 1)."""
    return _get_float("DRAIN_DELAY_SECONDS", 1.0)


def get_review_scan_interval() -> float:
    """Period of the review reprioritization scan (REVIEW_SCAN_INTERVAL_SECONDS, default 30)."""
    return _get_float("REVIEW_SCAN_INTERVAL_SECONDS", 30.0)


def get_session_timeout_minutes() -> int:
    """Review session inactivity timeout (SESSION_TIMEOUT_MINUTES, default 30)."""
    return _get_int("SESSION_TIMEOUT_MINUTES", 30)


def get_placeholder_min_bytes() -> int:
    """Card files smaller than this are placeholders (PLACEHOLDER_MIN_BYTES, default 10)."""
    return _get_int("PLACEHOLDER_MIN_BYTES", 10)


def get_tombstone_retention() -> timedelta:
    """How long a remotely-confirmed tombstone is kept (TOMBSTONE_RETENTION_DAYS, default 30)."""
    return timedelta(days=_get_float("TOMBSTONE_RETENTION_DAYS", 30.0))


def get_retry_policy() -> RetryPolicy:
    """Backoff for remote calls.

    Environment variables:
        SYNC_RETRY_ATTEMPTS (default 3)
        SYNC_RETRY_INITIAL_WAIT (default 2.0 seconds)
        SYNC_RETRY_MAX_WAIT (default 30.0 seconds)
    """
    return RetryPolicy(
        max_attempts=_get_int("SYNC_RETRY_ATTEMPTS", 3),
        initial_wait=_get_float("SYNC_RETRY_INITIAL_WAIT", 2.0),
        max_wait=_get_float("SYNC_RETRY_MAX_WAIT", 30.0),
    )


def get_initial_user_id() -> str | None:
    """User signed in at startup (DECKSYNC_USER_ID, optional)."""
    return os.getenv("DECKSYNC_USER_ID") or None


def get_log_level() -> str:
    """Logging level (LOG_LEVEL, default INFO)."""
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_cors_origins() -> list[str]:
    """Get allowed CORS origins from environment.

    Environment variable: CORS_ORIGINS (comma-separated)
    Default: empty, CORS middleware is then not installed
    """
    origins_str = os.getenv("CORS_ORIGINS", "")
    return [origin.strip() for origin in origins_str.split(",") if origin.strip()]


# Restricted HTTP methods - only what the API actually uses
CORS_ALLOWED_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
