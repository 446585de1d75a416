"""Contracts for the external server directory and record store.

The monitoring core never owns persistence; it talks to these interfaces and
any backing implementation (relational, document, in-memory) plugs in behind
them.
"""

from __future__ import annotations

import abc

from src.core.types import (
    Alert,
    AlertRule,
    AlertStatus,
    ProbeOutcome,
    Server,
    ServerState,
    ServerTarget,
)


class ServerDirectory(abc.ABC):
    """Source of the servers a monitoring cycle should probe."""

    @abc.abstractmethod
    async def list_monitorable(self) -> list[ServerTarget]:
        """Return every server that is not in MAINTENANCE.

        May raise; the scheduler treats any failure as a retryable cycle abort.
        """


class RecordStore(abc.ABC):
    """Transactional key/record service used by the control loop."""

    # ── Servers ─────────────────────────────────────────────────

    @abc.abstractmethod
    async def get_server(self, server_id: str) -> Server:
        """Return a server record. Raises RecordNotFoundError if unknown."""

    @abc.abstractmethod
    async def update_server_status(
        self,
        server_id: str,
        state: ServerState,
        last_seen: float | None = None,
    ) -> Server:
        """Write ``state`` (and ``last_seen`` when given) for a server."""

    # ── Probe history ───────────────────────────────────────────

    @abc.abstractmethod
    async def record_probe_outcome(self, outcome: ProbeOutcome) -> None:
        """Append an immutable probe history record."""

    @abc.abstractmethod
    async def probe_history(self, server_id: str, limit: int = 100) -> list[ProbeOutcome]:
        """Most recent probe outcomes for a server, newest first."""

    # ── Rules ───────────────────────────────────────────────────

    @abc.abstractmethod
    async def list_enabled_rules(self) -> list[AlertRule]:
        """Return all rules with ``enabled=True``."""

    # ── Alerts ──────────────────────────────────────────────────

    @abc.abstractmethod
    async def find_active_alert(self, server_id: str, rule_id: str) -> Alert | None:
        """Return the ACTIVE alert for a (server, rule) pair, if any."""

    @abc.abstractmethod
    async def list_open_alerts(self, server_id: str, rule_id: str) -> list[Alert]:
        """Return every unresolved (ACTIVE or ACKNOWLEDGED) alert for a pair."""

    @abc.abstractmethod
    async def insert_alert(self, alert: Alert) -> Alert:
        """Insert a new alert.

        Must raise DuplicateActiveAlertError if an ACTIVE alert already exists
        for the same (server, rule) pair.
        """

    @abc.abstractmethod
    async def update_alert(self, alert: Alert) -> Alert:
        """Replace an existing alert record."""

    @abc.abstractmethod
    async def get_alert(self, alert_id: str) -> Alert:
        """Return an alert. Raises RecordNotFoundError if unknown."""

    @abc.abstractmethod
    async def list_alerts(
        self,
        server_id: str | None = None,
        status: AlertStatus | None = None,
    ) -> list[Alert]:
        """List alerts, optionally filtered, oldest first."""
