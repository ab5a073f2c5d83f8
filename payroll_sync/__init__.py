"""
Payroll Sync - real-time shared payroll schedule server

Keeps every connected browser editing the same payroll schedule in step:
- Authoritative in-memory state with a single mutation point
- WebSocket broadcast of snapshots, updates and presence counts
- PostgreSQL or local JSON file persistence with automatic fallback
- Optional scheduled export of snapshots to Google Sheets

Usage:
    from payroll_sync import SyncConfig, create_app

    app = create_app(SyncConfig.from_env())
"""

from payroll_sync.config import ConfigurationError, StorageMode, SyncConfig

__version__ = "1.2.0"


def create_app(config=None):
    """Build the FastAPI application (imported lazily to keep the package light)."""
    from payroll_sync.api.app import create_app as _create_app

    return _create_app(config)


__all__ = [
    "ConfigurationError",
    "StorageMode",
    "SyncConfig",
    "create_app",
    "__version__",
]
