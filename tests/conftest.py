"""
Payroll Sync Test Configuration

Shared fixtures: temporary data directories, configs, and in-memory stand-ins
for the storage backend, the asyncpg pool and client websockets.
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add project root to path FIRST
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from payroll_sync.config import ExportConfig, StorageMode, SyncConfig
from payroll_sync.core.storage.base import StorageBackend, StorageWriteError


# =============================================================================
# Storage doubles
# =============================================================================

class MemoryBackend(StorageBackend):
    """In-memory backend that records saves and can fail or stall on demand."""

    def __init__(self, name: str = "file", initial: Optional[Dict[str, Any]] = None):
        self._name = name
        self.stored = initial if initial is not None else {"weeks": []}
        self.saves: List[Dict[str, Any]] = []
        self.fail_saves = False
        self.gates: List[asyncio.Event] = []
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    async def initialize(self) -> None:
        return None

    async def load(self) -> Dict[str, Any]:
        return json.loads(json.dumps(self.stored))

    async def save(self, state: Dict[str, Any]) -> None:
        if self.gates:
            await self.gates.pop(0).wait()
        if self.fail_saves:
            raise StorageWriteError("disk on fire")
        self.saves.append(json.loads(json.dumps(state)))
        self.stored = self.saves[-1]

    async def close(self) -> None:
        self.closed = True


class FakePool:
    """
    Minimal stand-in for an asyncpg pool holding the payroll_state table.

    Understands exactly the statements PostgresBackend issues; jsonb values
    are stored and returned as text, like asyncpg without a codec.
    """

    def __init__(self):
        self.table_created = 0
        self.rows: Dict[int, str] = {}
        self.updated_at: Dict[int, int] = {}
        self.statements: List[str] = []
        self.closed = False
        self.fail_with: Optional[BaseException] = None

    async def execute(self, query: str, *args):
        self.statements.append(query.strip())
        if self.fail_with is not None:
            raise self.fail_with
        sql = " ".join(query.split()).upper()
        if sql.startswith("CREATE TABLE IF NOT EXISTS PAYROLL_STATE"):
            self.table_created += 1
            return "CREATE TABLE"
        if sql.startswith("INSERT INTO PAYROLL_STATE"):
            row_id = args[0]
            if row_id in self.rows:
                return "INSERT 0 0"
            self.rows[row_id] = '{"weeks":[]}'
            return "INSERT 0 1"
        if sql.startswith("UPDATE PAYROLL_STATE"):
            payload, row_id = args
            if row_id not in self.rows:
                return "UPDATE 0"
            self.rows[row_id] = payload
            self.updated_at[row_id] = self.updated_at.get(row_id, 0) + 1
            return "UPDATE 1"
        raise AssertionError(f"unexpected statement: {query}")

    async def fetchrow(self, query: str, *args):
        self.statements.append(query.strip())
        if self.fail_with is not None:
            raise self.fail_with
        row_id = args[0]
        if row_id not in self.rows:
            return None
        return {"state": self.rows[row_id]}

    async def close(self):
        self.closed = True


class FakeWebSocket:
    """Records what the hub sends and how it was closed; optionally fails every send."""

    def __init__(self, fail: bool = False):
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail
        self.close_code: Optional[int] = None

    async def send_json(self, message: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)

    async def close(self, code: int = 1000) -> None:
        self.close_code = code


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def memory_backend():
    return MemoryBackend()


@pytest.fixture
def fake_pool():
    return FakePool()


@pytest.fixture
def make_websocket():
    def factory(fail: bool = False) -> FakeWebSocket:
        return FakeWebSocket(fail=fail)
    return factory


@pytest.fixture
def make_config(tmp_path):
    """Factory for SyncConfig rooted in a temporary data directory."""
    def factory(**overrides) -> SyncConfig:
        values = {
            "data_dir": tmp_path / "data",
            "storage_mode": StorageMode.FILE,
            "pg_connect_retries": 1,
            "pg_retry_delay": 0.0,
            "export": ExportConfig(),
        }
        values.update(overrides)
        return SyncConfig(**values)
    return factory


@pytest.fixture
def sample_weeks():
    return [
        {"id": 1, "label": "Week of Jan 6", "rows": [{"driver": "A. Diaz", "hours": 41.5}]},
        {"id": 2, "label": "Week of Jan 13", "rows": []},
    ]


def nest(depth: int) -> List[Any]:
    """A list nested `depth` levels deep, e.g. nest(3) == [[[]]]."""
    value: List[Any] = []
    for _ in range(depth - 1):
        value = [value]
    return value


@pytest.fixture
def make_nested():
    return nest


def drain(queue: asyncio.Queue) -> List[Dict[str, Any]]:
    """Pop everything currently queued, in order."""
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


@pytest.fixture
def drain_queue():
    return drain
