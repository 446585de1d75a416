"""Tests for StatusEngine — transitions, last-seen, debounce, events."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.core.config import StatusConfig
from src.core.types import (
    ProbeClassification,
    ProbeOutcome,
    Server,
    ServerState,
    StatusEvent,
    StatusEventType,
)
from src.status.engine import StatusEngine, next_state
from src.store.exceptions import StoreUnavailableError
from src.store.memory import InMemoryRecordStore


# ── Helpers ─────────────────────────────────────────────────────


def _outcome(
    classification: ProbeClassification,
    server_id: str = "s1",
    observed_at: float = 1000.0,
) -> ProbeOutcome:
    return ProbeOutcome(
        server_id=server_id,
        classification=classification,
        error=None if classification == ProbeClassification.HEALTHY else "boom",
        observed_at=observed_at,
    )


async def _store_with(
    state: ServerState = ServerState.UNKNOWN,
    last_seen: float | None = None,
) -> InMemoryRecordStore:
    store = InMemoryRecordStore()
    await store.add_server(Server(
        id="s1", address="10.0.0.1", port=8080, state=state, last_seen=last_seen,
    ))
    return store


# ── Pure transition ─────────────────────────────────────────────


class TestNextState:
    @pytest.mark.parametrize("current", [
        ServerState.UNKNOWN, ServerState.ONLINE, ServerState.OFFLINE,
    ])
    def test_healthy_goes_online(self, current: ServerState) -> None:
        assert next_state(current, ProbeClassification.HEALTHY) == ServerState.ONLINE

    @pytest.mark.parametrize("classification", [
        ProbeClassification.UNHEALTHY,
        ProbeClassification.TIMEOUT,
        ProbeClassification.ERROR,
    ])
    def test_failure_goes_offline(self, classification: ProbeClassification) -> None:
        assert next_state(ServerState.ONLINE, classification) == ServerState.OFFLINE

    def test_maintenance_is_sticky(self) -> None:
        for classification in ProbeClassification:
            assert next_state(ServerState.MAINTENANCE, classification) == ServerState.MAINTENANCE


# ── Applying outcomes ───────────────────────────────────────────


class TestApply:
    async def test_healthy_sets_online_and_last_seen(self) -> None:
        store = await _store_with(ServerState.UNKNOWN)
        engine = StatusEngine(store)

        transition = await engine.apply(_outcome(ProbeClassification.HEALTHY, observed_at=1500.0))

        assert transition.previous == ServerState.UNKNOWN
        assert transition.current == ServerState.ONLINE
        assert transition.changed
        server = await store.get_server("s1")
        assert server.state == ServerState.ONLINE
        assert server.last_seen == 1500.0

    async def test_failure_goes_offline_and_keeps_last_seen(self) -> None:
        store = await _store_with(ServerState.ONLINE, last_seen=900.0)
        engine = StatusEngine(store)

        transition = await engine.apply(_outcome(ProbeClassification.TIMEOUT, observed_at=1500.0))

        assert transition.current == ServerState.OFFLINE
        server = await store.get_server("s1")
        assert server.state == ServerState.OFFLINE
        assert server.last_seen == 900.0

    async def test_unchanged_state_not_reported_as_change(self) -> None:
        store = await _store_with(ServerState.ONLINE, last_seen=900.0)
        engine = StatusEngine(store)

        transition = await engine.apply(_outcome(ProbeClassification.HEALTHY, observed_at=1500.0))

        assert not transition.changed
        assert (await store.get_server("s1")).last_seen == 1500.0

    async def test_maintenance_untouched(self) -> None:
        store = await _store_with(ServerState.MAINTENANCE, last_seen=900.0)
        engine = StatusEngine(store)

        transition = await engine.apply(_outcome(ProbeClassification.HEALTHY, observed_at=1500.0))

        assert transition.current == ServerState.MAINTENANCE
        server = await store.get_server("s1")
        assert server.state == ServerState.MAINTENANCE
        assert server.last_seen == 900.0

    async def test_store_error_propagates(self) -> None:
        store = await _store_with()
        store.update_server_status = AsyncMock(  # type: ignore[method-assign]
            side_effect=StoreUnavailableError("down"),
        )
        engine = StatusEngine(store)
        with pytest.raises(StoreUnavailableError):
            await engine.apply(_outcome(ProbeClassification.HEALTHY))


# ── Failure threshold ───────────────────────────────────────────


class TestFailureThreshold:
    async def test_holds_state_until_threshold(self) -> None:
        store = await _store_with(ServerState.ONLINE)
        engine = StatusEngine(store, StatusConfig(failure_threshold=3))

        for _ in range(2):
            transition = await engine.apply(_outcome(ProbeClassification.ERROR))
            assert transition.current == ServerState.ONLINE
        assert engine.consecutive_failures("s1") == 2

        transition = await engine.apply(_outcome(ProbeClassification.ERROR))
        assert transition.current == ServerState.OFFLINE

    async def test_healthy_resets_counter(self) -> None:
        store = await _store_with(ServerState.ONLINE)
        engine = StatusEngine(store, StatusConfig(failure_threshold=2))

        await engine.apply(_outcome(ProbeClassification.ERROR))
        await engine.apply(_outcome(ProbeClassification.HEALTHY))
        assert engine.consecutive_failures("s1") == 0

        transition = await engine.apply(_outcome(ProbeClassification.ERROR))
        assert transition.current == ServerState.ONLINE

    async def test_default_flips_on_first_failure(self) -> None:
        store = await _store_with(ServerState.ONLINE)
        engine = StatusEngine(store)
        assert engine.failure_threshold == 1
        transition = await engine.apply(_outcome(ProbeClassification.UNHEALTHY))
        assert transition.current == ServerState.OFFLINE


# ── Events ──────────────────────────────────────────────────────


class TestEvents:
    async def test_events_emitted_on_change_only(self) -> None:
        store = await _store_with(ServerState.UNKNOWN)
        engine = StatusEngine(store)
        events: list[StatusEvent] = []
        engine.on_event(events.append)

        await engine.apply(_outcome(ProbeClassification.HEALTHY))
        await engine.apply(_outcome(ProbeClassification.HEALTHY))
        await engine.apply(_outcome(ProbeClassification.ERROR))

        assert [e.event_type for e in events] == [
            StatusEventType.SERVER_ONLINE,
            StatusEventType.SERVER_OFFLINE,
        ]

    async def test_async_callback_awaited(self) -> None:
        store = await _store_with()
        engine = StatusEngine(store)
        callback = AsyncMock()
        engine.on_event(callback)

        await engine.apply(_outcome(ProbeClassification.HEALTHY))
        callback.assert_awaited_once()

    async def test_callback_error_does_not_propagate(self) -> None:
        store = await _store_with()
        engine = StatusEngine(store)

        def bad_callback(event: StatusEvent) -> None:
            raise RuntimeError("callback boom")

        engine.on_event(bad_callback)
        transition = await engine.apply(_outcome(ProbeClassification.HEALTHY))
        assert transition.current == ServerState.ONLINE
