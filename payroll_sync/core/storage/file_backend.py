"""
File Backend - payroll state kept in a single JSON file.

Features:
- File locking so two processes never interleave a write
- Atomic writes (write to temp, fsync, then replace)
- Corrupt or malformed files load as the empty state instead of failing
- Blocking disk I/O runs in a worker thread, off the event loop

Usage:
    backend = FileBackend(Path("data/payroll-state.json"))
    await backend.initialize()
    state = await backend.load()
    await backend.save({"weeks": [...]})
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Union

from filelock import FileLock, Timeout as FileLockTimeout

from payroll_sync.core.models import Invalid, PayrollState, empty_state, validate_state
from payroll_sync.core.storage.base import (
    StorageBackend,
    StorageReadError,
    StorageUnavailableError,
    StorageWriteError,
)

logger = logging.getLogger(__name__)


class FileBackend(StorageBackend):
    """Stores the payroll state as pretty-printed JSON on local disk."""

    def __init__(self, state_file: Union[str, Path], lock_timeout: float = 10.0):
        """
        Args:
            state_file: Path to the JSON state file
            lock_timeout: Seconds to wait for the file lock
        """
        self.state_file = Path(state_file)
        self.lock_path = self.state_file.with_suffix(self.state_file.suffix + ".lock")
        self.temp_path = self.state_file.with_suffix(self.state_file.suffix + ".tmp")
        self.lock_timeout = lock_timeout
        self._lock = FileLock(str(self.lock_path), timeout=lock_timeout)

    @property
    def name(self) -> str:
        return "file"

    async def initialize(self) -> None:
        try:
            await asyncio.to_thread(self._ensure_storage_locked)
        except (OSError, FileLockTimeout) as e:
            raise StorageUnavailableError(f"Cannot prepare {self.state_file}: {e}") from e
        logger.info(f"File storage ready at {self.state_file}")

    async def load(self) -> PayrollState:
        return await asyncio.to_thread(self._load_sync)

    async def save(self, state: PayrollState) -> None:
        await asyncio.to_thread(self._save_sync, state)

    # =========================================================================
    # SYNCHRONOUS HELPERS (run in worker threads)
    # =========================================================================

    def _ensure_storage_locked(self) -> None:
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            self._ensure_storage()

    def _ensure_storage(self) -> None:
        """Create the data directory and an empty state file if absent. Lock must be held."""
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        if not self.state_file.exists():
            self._write_atomic(empty_state())
            logger.info(f"Created empty state file {self.state_file}")

    def _load_sync(self) -> PayrollState:
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            with self._lock:
                self._ensure_storage()
                raw = self.state_file.read_bytes()
        except (OSError, FileLockTimeout) as e:
            raise StorageReadError(f"Could not read {self.state_file}: {e}") from e

        try:
            parsed = json.loads(raw.decode("utf-8"))
        except (ValueError, RecursionError) as e:
            # JSONDecodeError and UnicodeDecodeError are both ValueErrors
            logger.error(f"Failed to read file state; using empty default. ({e})")
            return empty_state()

        result = validate_state(parsed)
        if isinstance(result, Invalid):
            logger.error(f"Stored file state is invalid ({result.reason}); using empty default.")
            return empty_state()

        return result.state

    def _save_sync(self, state: PayrollState) -> None:
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            with self._lock:
                self._write_atomic(state)
        except (OSError, FileLockTimeout, TypeError, ValueError) as e:
            logger.error(f"Failed to write {self.state_file}: {e}")
            raise StorageWriteError(f"Could not write {self.state_file}: {e}") from e

    def _write_atomic(self, state: PayrollState) -> None:
        payload = json.dumps(state, indent=2, ensure_ascii=False)

        with open(self.temp_path, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())

        os.replace(self.temp_path, self.state_file)
