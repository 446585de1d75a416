"""AlertManager — reconciles rule violations with persisted alert state.

For every sample the manager walks the candidate rules (enabled, same metric
kind) and, per (server, rule) pair:

- violated and no ACTIVE alert → create an ACTIVE alert, emit ALERT_TRIGGERED
- violated and an ACTIVE alert → refresh value/description/last-observed
- not violated                 → mark every ACTIVE or ACKNOWLEDGED alert
                                 RESOLVED, emit ALERT_RESOLVED for each

An ACKNOWLEDGED alert does not suppress a new ACTIVE one.

The check-then-write for a pair runs under a per-pair ``asyncio.Lock`` so
concurrent evaluations can never open two ACTIVE alerts for the same pair.
"""

from __future__ import annotations

import asyncio
import contextlib
import math
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping
from typing import Any

import structlog

from src.alerts.evaluator import candidate_rules, evaluate, parse_sample
from src.alerts.exceptions import AlertNotFoundError, InvalidAlertTransitionError
from src.core.config import AlertsConfig
from src.core.types import (
    Alert,
    AlertEvent,
    AlertEventType,
    AlertRule,
    AlertStatus,
    Comparison,
    MetricKind,
    MetricSample,
    alert_type_for,
)
from src.store.base import RecordStore
from src.store.exceptions import DuplicateActiveAlertError, RecordNotFoundError

logger = structlog.stdlib.get_logger()

AlertEventCallback = Callable[[AlertEvent], Awaitable[None] | None]

_DEFAULT_UNITS: dict[MetricKind, str] = {
    MetricKind.CPU_USAGE: "%",
    MetricKind.MEMORY_USAGE: "%",
    MetricKind.DISK_USAGE: "%",
}

_BREACH_PHRASE: dict[Comparison, str] = {
    Comparison.GREATER_THAN: "exceeding",
    Comparison.LESS_THAN: "below",
    Comparison.EQUALS: "matching",
}


def describe_violation(rule: AlertRule, value: float, unit: str = "") -> str:
    """Human description, e.g. ``High CPU: cpu usage is 95.00%, exceeding threshold of 90%``."""
    unit = unit or _DEFAULT_UNITS.get(rule.metric_kind, "")
    words = rule.metric_kind.value.lower().replace("_", " ")
    phrase = _BREACH_PHRASE.get(rule.comparison, "against")
    return (
        f"{rule.name}: {words} is {value:.2f}{unit}, "
        f"{phrase} threshold of {rule.threshold:g}{unit}"
    )


def _new_alert_id() -> str:
    return uuid.uuid4().hex


class AlertManager:
    """Opens, refreshes, and resolves alerts from metric samples.

    Usage::

        manager = AlertManager(store, config)
        manager.on_event(dispatcher.on_alert_event)

        events = await manager.process_sample(sample)
        await manager.acknowledge(alert_id)
    """

    def __init__(
        self,
        store: RecordStore,
        config: AlertsConfig | None = None,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = _new_alert_id,
    ) -> None:
        self._store = store
        self._config = config or AlertsConfig()
        self._clock = clock
        self._id_factory = id_factory
        self._callbacks: list[AlertEventCallback] = []
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._lock_users: dict[tuple[str, str], int] = {}
        self._global_lock = asyncio.Lock()

    # ── Events ──────────────────────────────────────────────────

    def on_event(self, callback: AlertEventCallback) -> None:
        """Register a callback for alert lifecycle events."""
        self._callbacks.append(callback)

    async def _emit(self, event: AlertEvent) -> None:
        for cb in self._callbacks:
            try:
                result = cb(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception(
                    "alert_event_callback_error",
                    alert_id=event.alert.id,
                    event_type=event.event_type,
                )

    # ── Locking ─────────────────────────────────────────────────

    @contextlib.asynccontextmanager
    async def _pair_lock(self, server_id: str, rule_id: str) -> AsyncIterator[None]:
        """Hold the lock for one (server, rule) pair.

        The lock is dropped once no coroutine holds or waits on it, so the
        map only tracks pairs with work in flight.
        """
        key = (server_id, rule_id)
        async with self._global_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = asyncio.Lock()
            self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users[key] - 1
            if remaining:
                self._lock_users[key] = remaining
            else:
                del self._lock_users[key]
                del self._locks[key]

    # ── Sample entry points ─────────────────────────────────────

    async def ingest(self, raw: Mapping[str, Any]) -> list[AlertEvent]:
        """Validate a raw ingestion payload and process it."""
        sample = parse_sample(raw)
        if sample is None:
            return []
        return await self.process_sample(sample)

    async def process_sample(self, sample: MetricSample) -> list[AlertEvent]:
        """Evaluate a sample against the store's enabled rules."""
        rules = await self._store.list_enabled_rules()
        return await self.reconcile(sample, rules)

    async def reconcile(
        self, sample: MetricSample, rules: Iterable[AlertRule]
    ) -> list[AlertEvent]:
        """Apply one sample to the given rules; returns emitted events."""
        if sample.metric_kind not in self._config.enabled_metric_kinds:
            logger.debug(
                "sample_skipped_kind_disabled",
                server_id=sample.server_id,
                metric_kind=sample.metric_kind,
            )
            return []
        if not math.isfinite(sample.value):
            logger.warning(
                "sample_skipped_non_finite_value",
                server_id=sample.server_id,
                metric_kind=sample.metric_kind,
            )
            return []

        candidates = [
            r for r in candidate_rules(sample, rules)
            if r.severity in self._config.severities
        ]
        violated = {
            r.id for r in evaluate(sample, candidates, self._config.equals_epsilon)
        }

        events: list[AlertEvent] = []
        for rule in candidates:
            try:
                if rule.id in violated:
                    event = await self._open_or_refresh(sample, rule)
                    rule_events = [event] if event is not None else []
                else:
                    rule_events = await self._resolve_open(sample, rule)
            except Exception:
                logger.exception(
                    "alert_reconcile_failed",
                    server_id=sample.server_id,
                    rule_id=rule.id,
                )
                continue
            for event in rule_events:
                events.append(event)
                await self._emit(event)
        return events

    async def _open_or_refresh(
        self, sample: MetricSample, rule: AlertRule
    ) -> AlertEvent | None:
        async with self._pair_lock(sample.server_id, rule.id):
            now = self._clock()
            description = describe_violation(rule, sample.value, sample.unit)
            existing = await self._store.find_active_alert(sample.server_id, rule.id)
            if existing is not None:
                await self._store.update_alert(existing.model_copy(update={
                    "current_value": sample.value,
                    "description": description,
                    "last_observed_at": now,
                }))
                logger.debug(
                    "alert_refreshed",
                    alert_id=existing.id,
                    server_id=sample.server_id,
                    rule_id=rule.id,
                    value=sample.value,
                )
                return None

            alert = Alert(
                id=self._id_factory(),
                server_id=sample.server_id,
                rule_id=rule.id,
                alert_type=alert_type_for(rule.metric_kind),
                severity=rule.severity,
                status=AlertStatus.ACTIVE,
                description=description,
                threshold=rule.threshold,
                current_value=sample.value,
                created_at=now,
                last_observed_at=now,
            )
            try:
                stored = await self._store.insert_alert(alert)
            except DuplicateActiveAlertError:
                # Another writer sharing the store opened it first.
                logger.info(
                    "alert_insert_conflict",
                    server_id=sample.server_id,
                    rule_id=rule.id,
                )
                return None

        logger.warning(
            "alert_opened",
            alert_id=stored.id,
            server_id=stored.server_id,
            rule_id=rule.id,
            metric_kind=rule.metric_kind,
            severity=stored.severity,
            value=sample.value,
            threshold=rule.threshold,
        )
        return AlertEvent(
            event_type=AlertEventType.ALERT_TRIGGERED,
            alert=stored,
            timestamp=now,
        )

    async def _resolve_open(
        self, sample: MetricSample, rule: AlertRule
    ) -> list[AlertEvent]:
        """Resolve every ACTIVE or ACKNOWLEDGED alert for the pair."""
        resolved: list[Alert] = []
        async with self._pair_lock(sample.server_id, rule.id):
            existing = await self._store.list_open_alerts(sample.server_id, rule.id)
            now = self._clock()
            for alert in existing:
                resolved.append(await self._store.update_alert(alert.model_copy(update={
                    "status": AlertStatus.RESOLVED,
                    "resolved_at": now,
                    "current_value": sample.value,
                    "last_observed_at": now,
                })))

        for alert in resolved:
            logger.info(
                "alert_resolved",
                alert_id=alert.id,
                server_id=alert.server_id,
                rule_id=rule.id,
                value=sample.value,
            )
        return [
            AlertEvent(event_type=AlertEventType.ALERT_RESOLVED, alert=alert, timestamp=now)
            for alert in resolved
        ]

    # ── Operator actions ────────────────────────────────────────

    async def _load(self, alert_id: str) -> Alert:
        try:
            return await self._store.get_alert(alert_id)
        except RecordNotFoundError as exc:
            raise AlertNotFoundError(f"alert {alert_id} not found") from exc

    async def acknowledge(self, alert_id: str) -> Alert:
        """Mark an open alert ACKNOWLEDGED. Idempotent for acknowledged alerts."""
        alert = await self._load(alert_id)
        async with self._pair_lock(alert.server_id, alert.rule_id):
            alert = await self._load(alert_id)
            if alert.status == AlertStatus.RESOLVED:
                raise InvalidAlertTransitionError(
                    f"alert {alert_id} is resolved and cannot be acknowledged"
                )
            if alert.status == AlertStatus.ACKNOWLEDGED:
                return alert
            now = self._clock()
            updated = await self._store.update_alert(alert.model_copy(update={
                "status": AlertStatus.ACKNOWLEDGED,
                "acknowledged_at": now,
            }))

        logger.info("alert_acknowledged", alert_id=alert_id, server_id=updated.server_id)
        await self._emit(AlertEvent(
            event_type=AlertEventType.ALERT_ACKNOWLEDGED,
            alert=updated,
            timestamp=now,
        ))
        return updated

    async def resolve(self, alert_id: str) -> Alert:
        """Manually resolve an alert. Idempotent for resolved alerts."""
        alert = await self._load(alert_id)
        async with self._pair_lock(alert.server_id, alert.rule_id):
            alert = await self._load(alert_id)
            if alert.status == AlertStatus.RESOLVED:
                return alert
            now = self._clock()
            updated = await self._store.update_alert(alert.model_copy(update={
                "status": AlertStatus.RESOLVED,
                "resolved_at": now,
            }))

        logger.info("alert_resolved_manually", alert_id=alert_id, server_id=updated.server_id)
        await self._emit(AlertEvent(
            event_type=AlertEventType.ALERT_RESOLVED,
            alert=updated,
            timestamp=now,
        ))
        return updated
