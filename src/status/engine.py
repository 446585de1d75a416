"""StatusEngine — derives server availability from probe outcomes."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

from src.core.config import StatusConfig
from src.core.types import (
    ProbeClassification,
    ProbeOutcome,
    ServerState,
    StatusEvent,
    StatusEventType,
    StatusTransition,
)
from src.store.base import RecordStore

logger = structlog.stdlib.get_logger()

StatusEventCallback = Callable[[StatusEvent], Awaitable[None] | None]


def next_state(current: ServerState, classification: ProbeClassification) -> ServerState:
    """Pure transition function.

    HEALTHY → ONLINE, any failure → OFFLINE. MAINTENANCE is sticky: only an
    operator action moves a server in or out of it.
    """
    if current == ServerState.MAINTENANCE:
        return current
    if classification == ProbeClassification.HEALTHY:
        return ServerState.ONLINE
    return ServerState.OFFLINE


class StatusEngine:
    """Applies probe outcomes to server records in the store.

    With the default ``failure_threshold`` of 1 a single failed probe flips a
    server OFFLINE. A higher threshold holds the previous state until that
    many consecutive failures have been observed.

    Usage::

        engine = StatusEngine(store)
        engine.on_event(dispatcher.on_status_event)
        transition = await engine.apply(outcome)
    """

    def __init__(
        self,
        store: RecordStore,
        config: StatusConfig | None = None,
    ) -> None:
        self._store = store
        self._config = config or StatusConfig()
        self._consecutive_failures: dict[str, int] = {}
        self._callbacks: list[StatusEventCallback] = []

    @property
    def failure_threshold(self) -> int:
        return self._config.failure_threshold

    def consecutive_failures(self, server_id: str) -> int:
        return self._consecutive_failures.get(server_id, 0)

    def on_event(self, callback: StatusEventCallback) -> None:
        """Register a callback for server state changes."""
        self._callbacks.append(callback)

    async def _emit(self, event: StatusEvent) -> None:
        for cb in self._callbacks:
            try:
                result = cb(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception(
                    "status_event_callback_error",
                    server_id=event.transition.server_id,
                    event_type=event.event_type,
                )

    async def apply(self, outcome: ProbeOutcome) -> StatusTransition:
        """Transition the outcome's server and persist the new state.

        Store errors propagate to the caller, which isolates them per server.
        """
        server = await self._store.get_server(outcome.server_id)
        previous = server.state

        if previous == ServerState.MAINTENANCE:
            # Entered maintenance after the directory was read; leave it alone.
            self._consecutive_failures.pop(outcome.server_id, None)
            logger.debug("status_skip_maintenance", server_id=outcome.server_id)
            return StatusTransition(
                server_id=outcome.server_id,
                previous=previous,
                current=previous,
                outcome=outcome,
                last_seen=server.last_seen,
            )

        if outcome.healthy:
            self._consecutive_failures.pop(outcome.server_id, None)
            current = next_state(previous, outcome.classification)
            last_seen: float | None = outcome.observed_at
        else:
            failures = self._consecutive_failures.get(outcome.server_id, 0) + 1
            self._consecutive_failures[outcome.server_id] = failures
            if failures >= self._config.failure_threshold:
                current = next_state(previous, outcome.classification)
            else:
                current = previous
            last_seen = None

        updated = await self._store.update_server_status(
            outcome.server_id, current, last_seen=last_seen,
        )
        transition = StatusTransition(
            server_id=outcome.server_id,
            previous=previous,
            current=updated.state,
            outcome=outcome,
            last_seen=updated.last_seen,
        )

        if transition.changed:
            logger.info(
                "server_status_changed",
                server_id=outcome.server_id,
                previous=previous,
                current=transition.current,
                classification=outcome.classification,
                error=outcome.error,
            )
            event_type = (
                StatusEventType.SERVER_ONLINE
                if transition.current == ServerState.ONLINE
                else StatusEventType.SERVER_OFFLINE
            )
            await self._emit(StatusEvent(
                event_type=event_type,
                transition=transition,
                timestamp=time.time(),
            ))

        return transition
