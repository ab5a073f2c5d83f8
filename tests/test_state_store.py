"""
Tests for payroll_sync/core/state.py and payroll_sync/core/models.py

Tests cover:
- Candidate validation
- Apply order: replace, persist, notify
- Rejected updates leave everything untouched
- Persistence failures keep the live state and still notify
"""

import asyncio

import pytest

from payroll_sync.core.models import (
    MAX_NESTING_DEPTH,
    Invalid,
    Valid,
    empty_state,
    validate_state,
)
from payroll_sync.core.state import StateStore


INVALID_CANDIDATES = [
    None,
    42,
    "weeks",
    ["weeks"],
    {},
    {"week": []},
    {"weeks": None},
    {"weeks": {}},
    {"weeks": "[]"},
    {"weeks": 3},
]


class TestValidation:

    def test_valid_state(self):
        result = validate_state({"weeks": [{"id": 1}]})
        assert result == Valid({"weeks": [{"id": 1}]})

    def test_empty_weeks_are_valid(self):
        assert isinstance(validate_state({"weeks": []}), Valid)

    def test_extra_keys_dropped(self):
        result = validate_state({"weeks": [], "draft": True})
        assert result.state == {"weeks": []}

    @pytest.mark.parametrize("candidate", INVALID_CANDIDATES)
    def test_invalid(self, candidate):
        result = validate_state(candidate)
        assert isinstance(result, Invalid)
        assert result.reason

    def test_nesting_at_limit_is_valid(self, make_nested):
        assert isinstance(validate_state({"weeks": make_nested(MAX_NESTING_DEPTH)}), Valid)

    @pytest.mark.parametrize("depth", [MAX_NESTING_DEPTH + 1, 600, 5000])
    def test_nesting_past_limit_is_invalid(self, make_nested, depth):
        result = validate_state({"weeks": make_nested(depth)})
        assert isinstance(result, Invalid)
        assert "nested deeper" in result.reason

    def test_deep_object_nesting_is_invalid(self):
        record = {}
        for _ in range(MAX_NESTING_DEPTH + 5):
            record = {"child": record}
        assert isinstance(validate_state({"weeks": [record]}), Invalid)

    def test_wide_records_are_valid(self):
        weeks = [{"id": i, "rows": [{"hours": h} for h in range(50)]} for i in range(200)]
        assert isinstance(validate_state({"weeks": weeks}), Valid)

    def test_empty_state_is_fresh(self):
        first = empty_state()
        first["weeks"].append({"id": 1})
        assert empty_state() == {"weeks": []}


class TestApplyUpdate:

    @pytest.mark.asyncio
    async def test_accepted_update(self, memory_backend, sample_weeks):
        store = StateStore(memory_backend)
        seen = []
        store.on_applied(lambda state, source: seen.append((state, source)))

        applied = await store.apply_update({"weeks": sample_weeks}, source="abc")

        assert applied == {"weeks": sample_weeks}
        assert store.current_snapshot() == {"weeks": sample_weeks}
        assert memory_backend.saves == [{"weeks": sample_weeks}]
        assert seen == [({"weeks": sample_weeks}, "abc")]
        assert store.updates_applied == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("candidate", INVALID_CANDIDATES)
    async def test_rejected_update(self, memory_backend, sample_weeks, candidate):
        store = StateStore(memory_backend, {"weeks": sample_weeks})
        seen = []
        store.on_applied(lambda state, source: seen.append(state))

        assert await store.apply_update(candidate, source="abc") is None

        assert store.current_snapshot() == {"weeks": sample_weeks}
        assert memory_backend.saves == []
        assert seen == []
        assert store.updates_rejected == 1

    @pytest.mark.asyncio
    async def test_persist_failure_keeps_state_and_notifies(self, memory_backend, sample_weeks):
        memory_backend.fail_saves = True
        store = StateStore(memory_backend)
        seen = []
        store.on_applied(lambda state, source: seen.append(state))

        applied = await store.apply_update({"weeks": sample_weeks}, source="abc")

        assert applied == {"weeks": sample_weeks}
        assert store.current_snapshot() == {"weeks": sample_weeks}
        assert seen == [{"weeks": sample_weeks}]
        assert store.persist_failures == 1

    @pytest.mark.asyncio
    async def test_notify_after_save(self, memory_backend):
        store = StateStore(memory_backend)
        saves_at_notify = []
        store.on_applied(lambda state, source: saves_at_notify.append(len(memory_backend.saves)))

        await store.apply_update({"weeks": [1]})

        assert saves_at_notify == [1]

    @pytest.mark.asyncio
    async def test_async_listener_awaited(self, memory_backend):
        store = StateStore(memory_backend)
        seen = []

        async def listener(state, source):
            await asyncio.sleep(0)
            seen.append(source)

        store.on_applied(listener)
        await store.apply_update({"weeks": []}, source="x")

        assert seen == ["x"]

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_serialized(self, memory_backend):
        """A slow first save must not let the second update overtake it."""
        gate = asyncio.Event()
        memory_backend.gates.append(gate)
        store = StateStore(memory_backend)
        order = []
        store.on_applied(lambda state, source: order.append(source))

        first = asyncio.create_task(store.apply_update({"weeks": ["u1"]}, source="u1"))
        await asyncio.sleep(0)
        second = asyncio.create_task(store.apply_update({"weeks": ["u2"]}, source="u2"))
        await asyncio.sleep(0)

        assert order == []
        gate.set()
        await asyncio.gather(first, second)

        assert order == ["u1", "u2"]
        assert memory_backend.saves == [{"weeks": ["u1"]}, {"weeks": ["u2"]}]
        assert store.current_snapshot() == {"weeks": ["u2"]}

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, memory_backend):
        store = StateStore(memory_backend, {"weeks": [{"id": 1}]})
        snapshot = store.current_snapshot()
        snapshot["weeks"].append({"id": 2})
        assert store.current_snapshot() == {"weeks": [{"id": 1}]}

    @pytest.mark.asyncio
    async def test_deeply_nested_update_rejected(self, memory_backend, sample_weeks, make_nested):
        store = StateStore(memory_backend, {"weeks": sample_weeks})
        seen = []
        store.on_applied(lambda state, source: seen.append(state))

        assert await store.apply_update({"weeks": [make_nested(600)]}, source="abc") is None

        assert memory_backend.saves == []
        assert seen == []
        assert store.current_snapshot() == {"weeks": sample_weeks}

        # The store keeps accepting ordinary updates afterwards
        assert await store.apply_update({"weeks": ["next"]}, source="abc") == {"weeks": ["next"]}

    @pytest.mark.asyncio
    async def test_snapshot_of_nested_state_at_limit(self, memory_backend, make_nested):
        store = StateStore(memory_backend)
        weeks = [make_nested(MAX_NESTING_DEPTH - 1)]

        assert await store.apply_update({"weeks": weeks}) is not None
        assert store.current_snapshot() == {"weeks": weeks}

    def test_stats(self, memory_backend):
        store = StateStore(memory_backend, {"weeks": [1, 2]})
        stats = store.get_stats()
        assert stats["storage"] == "file"
        assert stats["weeks"] == 2
        assert stats["updates_applied"] == 0
