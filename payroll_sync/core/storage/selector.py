"""
Backend selection policy, evaluated once at startup.

    postgres  -> PostgreSQL or nothing (startup fails)
    file      -> local JSON file
    auto      -> PostgreSQL when DATABASE_URL is set, falling back to the file
"""

import logging
from dataclasses import dataclass

from payroll_sync.config import StorageMode, SyncConfig
from payroll_sync.core.models import PayrollState
from payroll_sync.core.storage.base import StorageBackend, StorageError, StorageUnavailableError
from payroll_sync.core.storage.file_backend import FileBackend
from payroll_sync.core.storage.postgres_backend import PostgresBackend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackendSelection:
    """The backend chosen for this process and the state it loaded."""
    backend: StorageBackend
    initial_state: PayrollState

    @property
    def active(self) -> str:
        return self.backend.name


def wants_postgres(config: SyncConfig) -> bool:
    if config.storage_mode is StorageMode.POSTGRES:
        return True
    return config.storage_mode is StorageMode.AUTO and bool(config.database_url)


async def select_backend(config: SyncConfig) -> BackendSelection:
    """
    Pick, initialize and load the active storage backend.

    Raises:
        StorageUnavailableError: STORAGE_MODE=postgres and the database is unusable
        StorageError: The file backend itself cannot be prepared or read
    """
    if wants_postgres(config):
        backend = PostgresBackend.from_config(config)
        try:
            await backend.initialize()
            state = await backend.load()
        except StorageError as e:
            await backend.close()
            if config.storage_mode is StorageMode.POSTGRES:
                logger.error(f"Postgres required but unavailable: {e}")
                if isinstance(e, StorageUnavailableError):
                    raise
                raise StorageUnavailableError(str(e)) from e
            logger.warning(f"Postgres unavailable; falling back to file storage: {e}")
        else:
            logger.info("State storage: postgres")
            return BackendSelection(backend=backend, initial_state=state)

    backend = FileBackend(config.state_file)
    await backend.initialize()
    state = await backend.load()
    logger.info("State storage: file")
    return BackendSelection(backend=backend, initial_state=state)
