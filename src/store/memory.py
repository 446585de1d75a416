"""In-process RecordStore / ServerDirectory used by scripts and tests."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque

import structlog

from src.core.types import (
    Alert,
    AlertRule,
    AlertStatus,
    ProbeOutcome,
    Server,
    ServerState,
    ServerTarget,
)
from src.store.base import RecordStore, ServerDirectory
from src.store.exceptions import DuplicateActiveAlertError, RecordNotFoundError

logger = structlog.stdlib.get_logger()


class InMemoryRecordStore(RecordStore, ServerDirectory):
    """Dict-backed store with the ACTIVE-alert uniqueness constraint.

    All reads return copies so callers can never mutate stored records.

    Usage::

        store = InMemoryRecordStore(history_limit=500)
        await store.add_server(Server(id="s1", address="10.0.0.5", port=8080))
        await store.add_rule(rule)
        targets = await store.list_monitorable()
    """

    def __init__(self, history_limit: int = 1000) -> None:
        self._servers: dict[str, Server] = {}
        self._rules: dict[str, AlertRule] = {}
        self._alerts: dict[str, Alert] = {}
        self._history: dict[str, deque[ProbeOutcome]] = defaultdict(
            lambda: deque(maxlen=history_limit),
        )
        self._lock = asyncio.Lock()

    # ── Seeding / operator actions ──────────────────────────────

    async def add_server(self, server: Server) -> None:
        async with self._lock:
            self._servers[server.id] = server.model_copy()

    async def remove_server(self, server_id: str) -> None:
        async with self._lock:
            self._servers.pop(server_id, None)

    async def add_rule(self, rule: AlertRule) -> None:
        async with self._lock:
            self._rules[rule.id] = rule.model_copy()

    async def remove_rule(self, rule_id: str) -> None:
        async with self._lock:
            self._rules.pop(rule_id, None)

    async def set_maintenance(self, server_id: str, enabled: bool) -> Server:
        """Enter or leave MAINTENANCE (leaving resets to UNKNOWN)."""
        async with self._lock:
            server = self._require_server(server_id)
            state = ServerState.MAINTENANCE if enabled else ServerState.UNKNOWN
            updated = server.model_copy(update={"state": state})
            self._servers[server_id] = updated
            logger.info("server_maintenance_set", server_id=server_id, enabled=enabled)
            return updated.model_copy()

    # ── ServerDirectory ─────────────────────────────────────────

    async def list_monitorable(self) -> list[ServerTarget]:
        async with self._lock:
            return [
                ServerTarget(
                    id=s.id,
                    address=s.address,
                    port=s.port,
                    name=s.name,
                    state=s.state,
                )
                for s in self._servers.values()
                if s.state != ServerState.MAINTENANCE
            ]

    # ── Servers ─────────────────────────────────────────────────

    async def get_server(self, server_id: str) -> Server:
        async with self._lock:
            return self._require_server(server_id).model_copy()

    async def update_server_status(
        self,
        server_id: str,
        state: ServerState,
        last_seen: float | None = None,
    ) -> Server:
        async with self._lock:
            server = self._require_server(server_id)
            changes: dict[str, object] = {"state": state}
            if last_seen is not None:
                changes["last_seen"] = last_seen
            updated = server.model_copy(update=changes)
            self._servers[server_id] = updated
            return updated.model_copy()

    def _require_server(self, server_id: str) -> Server:
        server = self._servers.get(server_id)
        if server is None:
            raise RecordNotFoundError(f"unknown server {server_id}")
        return server

    # ── Probe history ───────────────────────────────────────────

    async def record_probe_outcome(self, outcome: ProbeOutcome) -> None:
        async with self._lock:
            self._history[outcome.server_id].append(outcome)

    async def probe_history(self, server_id: str, limit: int = 100) -> list[ProbeOutcome]:
        async with self._lock:
            entries = list(self._history.get(server_id, ()))
        entries.reverse()
        return entries[:limit]

    # ── Rules ───────────────────────────────────────────────────

    async def list_enabled_rules(self) -> list[AlertRule]:
        async with self._lock:
            return [r.model_copy() for r in self._rules.values() if r.enabled]

    # ── Alerts ──────────────────────────────────────────────────

    async def find_active_alert(self, server_id: str, rule_id: str) -> Alert | None:
        async with self._lock:
            for alert in self._alerts.values():
                if (
                    alert.server_id == server_id
                    and alert.rule_id == rule_id
                    and alert.status == AlertStatus.ACTIVE
                ):
                    return alert.model_copy()
        return None

    async def list_open_alerts(self, server_id: str, rule_id: str) -> list[Alert]:
        async with self._lock:
            alerts = [
                a.model_copy()
                for a in self._alerts.values()
                if a.server_id == server_id and a.rule_id == rule_id and a.is_open
            ]
        alerts.sort(key=lambda a: a.created_at)
        return alerts

    async def insert_alert(self, alert: Alert) -> Alert:
        async with self._lock:
            if alert.status == AlertStatus.ACTIVE:
                for existing in self._alerts.values():
                    if (
                        existing.server_id == alert.server_id
                        and existing.rule_id == alert.rule_id
                        and existing.status == AlertStatus.ACTIVE
                    ):
                        raise DuplicateActiveAlertError(alert.server_id, alert.rule_id)
            self._alerts[alert.id] = alert.model_copy()
            return alert.model_copy()

    async def update_alert(self, alert: Alert) -> Alert:
        async with self._lock:
            if alert.id not in self._alerts:
                raise RecordNotFoundError(f"unknown alert {alert.id}")
            self._alerts[alert.id] = alert.model_copy()
            return alert.model_copy()

    async def get_alert(self, alert_id: str) -> Alert:
        async with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                raise RecordNotFoundError(f"unknown alert {alert_id}")
            return alert.model_copy()

    async def list_alerts(
        self,
        server_id: str | None = None,
        status: AlertStatus | None = None,
    ) -> list[Alert]:
        async with self._lock:
            alerts = [
                a.model_copy()
                for a in self._alerts.values()
                if (server_id is None or a.server_id == server_id)
                and (status is None or a.status == status)
            ]
        alerts.sort(key=lambda a: a.created_at)
        return alerts
