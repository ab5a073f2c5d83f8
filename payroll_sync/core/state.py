"""
Authoritative payroll state.

One StateStore exists per process. Every mutation goes through
`apply_update`, which runs under a single asyncio lock: the in-memory state
is replaced first, then persisted, then listeners are told. Listeners
therefore observe updates in exactly the order they were applied, and
persistence calls complete in that same order.

A failed save is logged and counted but does not roll back the in-memory
state: the live session keeps working even when durability does not.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

from payroll_sync.core.models import Invalid, PayrollState, empty_state, validate_state
from payroll_sync.core.storage.base import StorageBackend, StorageError

logger = logging.getLogger(__name__)

StateListener = Callable[[PayrollState, Optional[str]], Union[None, Awaitable[None]]]


class StateStore:
    """Holds the payroll state and funnels all changes through one entry point."""

    def __init__(self, backend: StorageBackend, initial_state: Optional[PayrollState] = None):
        self._backend = backend
        self._state: PayrollState = initial_state if initial_state is not None else empty_state()
        self._lock = asyncio.Lock()
        self._listeners: List[StateListener] = []

        # Stats
        self.updates_applied = 0
        self.updates_rejected = 0
        self.persist_failures = 0

    @property
    def backend_name(self) -> str:
        """Identifier of the active backend ("file" or "postgres")."""
        return self._backend.name

    def current_snapshot(self) -> PayrollState:
        """
        Current state for clients and exporters.

        The top-level dict and `weeks` list are fresh; the week records are
        shared and must be treated as read-only. The store never mutates a
        state in place, it only swaps in a newly validated one.
        """
        return {"weeks": list(self._state["weeks"])}

    def on_applied(self, listener: StateListener) -> None:
        """Register a listener called with (state, source) after each accepted update."""
        self._listeners.append(listener)

    async def apply_update(self, candidate: Any, source: Optional[str] = None) -> Optional[PayrollState]:
        """
        Replace the state with a client-submitted candidate.

        Invalid candidates are discarded without touching state, storage or
        listeners.

        Args:
            candidate: Decoded payload, expected to look like {"weeks": [...]}
            source: Id of the submitting connection, passed on to listeners

        Returns:
            The applied state, or None if the candidate was rejected
        """
        result = validate_state(candidate)
        if isinstance(result, Invalid):
            self.updates_rejected += 1
            logger.debug(f"Ignoring update from {source}: {result.reason}")
            return None

        async with self._lock:
            self._state = result.state
            self.updates_applied += 1

            try:
                await self._backend.save(self._state)
            except StorageError as e:
                self.persist_failures += 1
                logger.error(f"Failed to persist state update: {e}")

            applied = self.current_snapshot()
            await self._notify(applied, source)

        return applied

    async def _notify(self, state: PayrollState, source: Optional[str]) -> None:
        for listener in self._listeners:
            outcome = listener(state, source)
            if asyncio.iscoroutine(outcome):
                await outcome

    def get_stats(self) -> dict:
        return {
            "storage": self.backend_name,
            "weeks": len(self._state.get("weeks", [])),
            "updates_applied": self.updates_applied,
            "updates_rejected": self.updates_rejected,
            "persist_failures": self.persist_failures,
        }
