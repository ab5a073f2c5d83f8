"""
Persistence backends for the payroll state.
"""

from .base import (
    StorageBackend,
    StorageConfigurationError,
    StorageError,
    StorageReadError,
    StorageUnavailableError,
    StorageWriteError,
)
from .file_backend import FileBackend
from .postgres_backend import PostgresBackend
from .selector import BackendSelection, select_backend

__all__ = [
    "StorageBackend",
    "StorageError",
    "StorageUnavailableError",
    "StorageConfigurationError",
    "StorageReadError",
    "StorageWriteError",
    "FileBackend",
    "PostgresBackend",
    "BackendSelection",
    "select_backend",
]
