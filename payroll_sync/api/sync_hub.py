"""
Live Sync Hub
WebSocket fan-out of payroll state and presence
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Set
import uuid

from fastapi import WebSocket

from payroll_sync.core.models import PayrollState
from payroll_sync.core.state import StateStore

logger = logging.getLogger(__name__)

# Messages a client may have queued before it is treated as stalled
OUTBOX_LIMIT = 256

# Close code sent to a client dropped for not keeping up ("try again later")
CLOSE_TRY_AGAIN_LATER = 1013


# =============================================================================
# EVENT TYPES
# =============================================================================

class EventType(str, Enum):
    # Server -> client
    STATE_SNAPSHOT = "state:snapshot"
    PRESENCE_UPDATE = "presence:update"
    STATE_UPDATED = "state:updated"

    # Client -> server
    STATE_UPDATE = "state:update"


def make_message(event: EventType, data: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": event.value, "data": data}


# =============================================================================
# MODELS
# =============================================================================

@dataclass
class SyncClient:
    """Connected WebSocket client"""
    id: str
    websocket: WebSocket
    outbox: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=OUTBOX_LIMIT))
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    messages_sent: int = 0


# =============================================================================
# SYNC HUB
# =============================================================================

class SyncHub:
    """
    Manages live connections and the state broadcast protocol.

    Each connection has its own outbound queue drained by `pump`. Fan-out
    only enqueues, so a message is placed in every queue in the order it was
    dispatched and one slow socket never holds up the others. Queues are
    bounded; a client whose queue fills up is dropped and its socket closed.
    """

    def __init__(self, store: StateStore, outbox_limit: int = OUTBOX_LIMIT):
        self.store = store
        self.outbox_limit = outbox_limit
        self.clients: Dict[str, SyncClient] = {}

        # Stats
        self.total_connections = 0
        self.total_messages_sent = 0
        self.total_dropped = 0

        self._closing: Set[asyncio.Task] = set()

        store.on_applied(self._on_state_applied)

    @property
    def presence_count(self) -> int:
        return len(self.clients)

    # =========================================================================
    # CLIENT MANAGEMENT
    # =========================================================================

    def register(self, websocket: WebSocket) -> SyncClient:
        """
        Add a connection and queue its initial snapshot.

        The snapshot is taken in the same step as registration, so any update
        not reflected in it is guaranteed to reach this client as a broadcast.
        """
        client = SyncClient(
            id=uuid.uuid4().hex,
            websocket=websocket,
            outbox=asyncio.Queue(maxsize=self.outbox_limit),
        )
        snapshot = self.store.current_snapshot()

        self.clients[client.id] = client
        self.total_connections += 1

        client.outbox.put_nowait(make_message(
            EventType.STATE_SNAPSHOT,
            {"clientId": client.id, "state": snapshot},
        ))
        self._broadcast_presence()

        logger.info(f"Client {client.id} connected ({self.presence_count} online)")
        return client

    def unregister(self, client_id: str) -> None:
        """Remove a connection and tell everyone else the new count."""
        if self.clients.pop(client_id, None) is None:
            return

        logger.info(f"Client {client_id} disconnected ({self.presence_count} online)")
        self._broadcast_presence()

    # =========================================================================
    # MESSAGING
    # =========================================================================

    def send_to_client(self, client_id: str, message: Dict[str, Any]) -> None:
        client = self.clients.get(client_id)
        if client and not self._enqueue(client, message):
            self._drop(client)

    def broadcast(self, message: Dict[str, Any]) -> None:
        """Queue a message for every connection open right now."""
        stalled = []
        for client in list(self.clients.values()):
            if not self._enqueue(client, message):
                stalled.append(client)

        for client in stalled:
            self._drop(client)

    @staticmethod
    def _enqueue(client: SyncClient, message: Dict[str, Any]) -> bool:
        try:
            client.outbox.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def _drop(self, client: SyncClient) -> None:
        """Disconnect a client whose outbox is full."""
        if client.id not in self.clients:
            return

        logger.warning(
            f"Client {client.id} is not reading ({client.outbox.qsize()} messages queued); dropping it"
        )
        self.total_dropped += 1
        self.unregister(client.id)

        task = asyncio.create_task(self._close(client))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close(self, client: SyncClient) -> None:
        try:
            await client.websocket.close(code=CLOSE_TRY_AGAIN_LATER)
        except Exception as e:
            logger.debug(f"Closing client {client.id} failed: {e}")

    def _broadcast_presence(self) -> None:
        self.broadcast(make_message(EventType.PRESENCE_UPDATE, {"count": self.presence_count}))

    def _on_state_applied(self, state: PayrollState, source: Optional[str]) -> None:
        self.broadcast(make_message(
            EventType.STATE_UPDATED,
            {"state": state, "sourceClientId": source},
        ))

    async def pump(self, client: SyncClient) -> None:
        """Drain a client's queue onto its socket until the socket fails."""
        while True:
            message = await client.outbox.get()
            try:
                await client.websocket.send_json(message)
            except Exception as e:
                logger.debug(f"Send to client {client.id} failed: {e}")
                self.unregister(client.id)
                return
            client.messages_sent += 1
            self.total_messages_sent += 1

    # =========================================================================
    # MESSAGE HANDLING
    # =========================================================================

    async def handle_raw(self, client_id: str, raw: str) -> None:
        """Decode one text frame; anything that is not a JSON object is dropped."""
        try:
            message = json.loads(raw)
        except (ValueError, RecursionError):
            logger.debug(f"Dropping non-JSON frame from {client_id}")
            return

        if not isinstance(message, dict):
            logger.debug(f"Dropping non-object frame from {client_id}")
            return

        await self.handle_message(client_id, message)

    async def handle_message(self, client_id: str, message: Dict[str, Any]) -> None:
        """Handle incoming message from client"""
        msg_type = message.get("type")

        if msg_type == EventType.STATE_UPDATE.value:
            await self.handle_update(client_id, message.get("data"))
        else:
            logger.debug(f"Ignoring message type {msg_type!r} from {client_id}")

    async def handle_update(self, client_id: str, payload: Any) -> bool:
        """
        Apply a client's state update.

        The `state:updated` broadcast is issued by the store listener once
        the persistence attempt has finished.

        Returns:
            True if the update was accepted
        """
        applied = await self.store.apply_update(payload, source=client_id)
        return applied is not None

    # =========================================================================
    # HELPERS
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_connections": self.total_connections,
            "active_connections": self.presence_count,
            "total_messages_sent": self.total_messages_sent,
            "total_dropped": self.total_dropped,
        }
