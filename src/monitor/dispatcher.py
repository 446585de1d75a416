"""Central notification dispatcher — routes events to sinks with throttling."""

from __future__ import annotations

import time

import structlog

from src.core.types import AlertEvent, StatusEvent
from src.monitor.formatters import format_alert_event, format_status_event
from src.monitor.sinks import NotificationSink
from src.monitor.types import NotificationMessage, Severity

# Dedicated structured logger for decision records.
decision_logger = structlog.get_logger("decision_log")

logger = structlog.get_logger(__name__)


class AlertDispatcher:
    """Routes alert and status events to notification sinks.

    - Every event is logged via *decision_logger* (full model dump).
    - DEBUG events are log-only — never sent to sinks.
    - INFO/WARNING events are dispatched subject to per-key throttling.
    - CRITICAL events bypass the throttle and are dispatched immediately.
    """

    def __init__(
        self,
        sinks: list[NotificationSink] | None = None,
        throttle_secs: float = 0.0,
        notify_status_changes: bool = True,
    ) -> None:
        self._sinks: list[NotificationSink] = sinks or []
        self._throttle_secs = throttle_secs
        self._notify_status_changes = notify_status_changes
        # Tracks the last dispatch time per dedupe key.
        self._last_sent: dict[str, float] = {}

    @property
    def sinks(self) -> list[NotificationSink]:
        return list(self._sinks)

    # ── Callback entry points ───────────────────────────────────

    async def on_alert_event(self, event: AlertEvent) -> None:
        msg = format_alert_event(event)
        await self._handle(msg)

    async def on_status_event(self, event: StatusEvent) -> None:
        if not self._notify_status_changes:
            return
        msg = format_status_event(event)
        await self._handle(msg)

    # ── Direct send ─────────────────────────────────────────────

    async def send(self, msg: NotificationMessage) -> None:
        """Dispatch a NotificationMessage directly (bypasses throttle)."""
        self._log_decision(msg)
        await self._dispatch_to_sinks(msg)

    # ── Internal routing ────────────────────────────────────────

    async def _handle(self, msg: NotificationMessage) -> None:
        self._log_decision(msg)

        if msg.severity == Severity.DEBUG:
            return

        key = msg.dedupe_key or msg.source_event_type

        if msg.severity == Severity.CRITICAL:
            self._last_sent[key] = time.monotonic()
            await self._dispatch_to_sinks(msg)
            return

        now = time.monotonic()
        last = self._last_sent.get(key, -float("inf"))
        if now - last < self._throttle_secs:
            logger.debug("notification_throttled", key=key, title=msg.title)
            return

        self._last_sent[key] = now
        await self._dispatch_to_sinks(msg)

    def _log_decision(self, msg: NotificationMessage) -> None:
        decision_logger.info(
            "decision",
            severity=msg.severity.name,
            title=msg.title,
            body=msg.body,
            source_event_type=msg.source_event_type,
            fields=msg.fields,
            raw=msg.raw,
        )

    async def _dispatch_to_sinks(self, msg: NotificationMessage) -> None:
        for sink in self._sinks:
            try:
                await sink.send(msg)
            except Exception:
                logger.exception(
                    "sink_dispatch_error",
                    sink=type(sink).__name__,
                    title=msg.title,
                )

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        for sink in self._sinks:
            try:
                await sink.close()
            except Exception:
                logger.exception("sink_close_error", sink=type(sink).__name__)
