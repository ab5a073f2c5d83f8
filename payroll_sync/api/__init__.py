"""
HTTP and WebSocket surface for Payroll Sync
"""

from .app import create_app, serve_connection
from .sync_hub import EventType, SyncClient, SyncHub, make_message

__all__ = [
    "create_app",
    "serve_connection",
    "EventType",
    "SyncClient",
    "SyncHub",
    "make_message",
]
