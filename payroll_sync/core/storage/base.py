"""
Storage backend contract for the payroll state.

A backend persists exactly one JSON document, the payroll state, and can
load it back. Two implementations exist: a local JSON file and a single-row
PostgreSQL table. The selector decides which one is active at startup.
"""

from abc import ABC, abstractmethod

from payroll_sync.core.models import PayrollState


class StorageError(Exception):
    """Base class for storage failures."""
    pass


class StorageUnavailableError(StorageError):
    """Raised when a backend cannot be initialized."""
    pass


class StorageConfigurationError(StorageUnavailableError):
    """Raised when a backend is missing required configuration."""
    pass


class StorageReadError(StorageError):
    """Raised when the backing store cannot be read at all."""
    pass


class StorageWriteError(StorageError):
    """Raised when a save does not reach the backing store."""
    pass


class StorageBackend(ABC):
    """Abstract persistence backend for the payroll state."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier reported as the active backend ("file" or "postgres")."""

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backing store, creating the default state if absent.

        Must be idempotent.

        Raises:
            StorageUnavailableError: If the store cannot be prepared.
        """

    @abstractmethod
    async def load(self) -> PayrollState:
        """Load the persisted state.

        Returns:
            The stored state, or the empty state if what is stored is
            unparseable or not a valid payroll state.
        """

    @abstractmethod
    async def save(self, state: PayrollState) -> None:
        """Overwrite the persisted state.

        Raises:
            StorageWriteError: If the write did not complete.
        """

    async def close(self) -> None:
        """Release any held resources."""
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
