"""Domain types for the monitoring control loop — servers, probes, rules, alerts."""

from __future__ import annotations

import math
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ── Servers ─────────────────────────────────────────────────────


class ServerState(StrEnum):
    """Availability state of a monitored server."""

    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"
    UNKNOWN = "UNKNOWN"
    MAINTENANCE = "MAINTENANCE"


class Server(BaseModel):
    """A monitored server as held by the record store."""

    id: str
    name: str = ""
    address: str
    port: int = Field(default=80, ge=1, le=65535)
    state: ServerState = ServerState.UNKNOWN
    last_seen: float | None = None


class ServerTarget(BaseModel):
    """Directory entry for one probe-able server."""

    id: str
    address: str
    port: int = Field(ge=1, le=65535)
    name: str = ""
    state: ServerState = ServerState.UNKNOWN


# ── Probes ──────────────────────────────────────────────────────


class ProbeClassification(StrEnum):
    """Classified result of a single health probe."""

    HEALTHY = "HEALTHY"
    UNHEALTHY = "UNHEALTHY"
    TIMEOUT = "TIMEOUT"
    ERROR = "ERROR"


class ProbeOutcome(BaseModel):
    """Immutable result of one probe execution."""

    model_config = ConfigDict(frozen=True)

    server_id: str
    classification: ProbeClassification
    latency_secs: float = 0.0
    error: str | None = None
    response: Any = None
    status_code: int | None = None
    observed_at: float = 0.0

    @property
    def healthy(self) -> bool:
        return self.classification == ProbeClassification.HEALTHY


class StatusTransition(BaseModel):
    """Before/after view of a server state change driven by one outcome."""

    server_id: str
    previous: ServerState
    current: ServerState
    outcome: ProbeOutcome
    last_seen: float | None = None

    @property
    def changed(self) -> bool:
        return self.previous != self.current


class StatusEventType(StrEnum):
    """Type of server status event."""

    SERVER_ONLINE = "SERVER_ONLINE"
    SERVER_OFFLINE = "SERVER_OFFLINE"


class StatusEvent(BaseModel):
    """Emitted by the status engine when a server changes state."""

    event_type: StatusEventType
    transition: StatusTransition
    timestamp: float = 0.0


# ── Metrics & Rules ─────────────────────────────────────────────


class MetricKind(StrEnum):
    """Metric kinds a rule can target."""

    CPU_USAGE = "CPU_USAGE"
    MEMORY_USAGE = "MEMORY_USAGE"
    DISK_USAGE = "DISK_USAGE"
    NETWORK_IN = "NETWORK_IN"
    NETWORK_OUT = "NETWORK_OUT"
    LOAD_AVERAGE = "LOAD_AVERAGE"
    UPTIME = "UPTIME"


class Comparison(StrEnum):
    """Comparison operator applied as ``value <op> threshold``."""

    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EQUALS = "equals"


class AlertSeverity(StrEnum):
    """Alert severity levels."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class MetricSample(BaseModel):
    """One metric observation delivered by an ingestion path."""

    server_id: str
    metric_kind: MetricKind
    value: float
    timestamp: float = 0.0
    unit: str = ""


class AlertRule(BaseModel):
    """Threshold rule evaluated against incoming samples."""

    id: str
    name: str
    metric_kind: MetricKind
    comparison: Comparison
    threshold: float
    severity: AlertSeverity = AlertSeverity.MEDIUM
    enabled: bool = True

    @field_validator("threshold")
    @classmethod
    def _finite_threshold(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("threshold must be a finite number")
        return v


# ── Alerts ──────────────────────────────────────────────────────


class AlertStatus(StrEnum):
    """Lifecycle status of an alert."""

    ACTIVE = "ACTIVE"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"


class AlertType(StrEnum):
    """Coarse alert category derived from the rule's metric kind."""

    HIGH_CPU = "HIGH_CPU"
    HIGH_MEMORY = "HIGH_MEMORY"
    HIGH_DISK = "HIGH_DISK"
    HIGH_LOAD = "HIGH_LOAD"
    SERVER_DOWN = "SERVER_DOWN"
    CUSTOM = "CUSTOM"


_ALERT_TYPE_BY_KIND: dict[MetricKind, AlertType] = {
    MetricKind.CPU_USAGE: AlertType.HIGH_CPU,
    MetricKind.MEMORY_USAGE: AlertType.HIGH_MEMORY,
    MetricKind.DISK_USAGE: AlertType.HIGH_DISK,
    MetricKind.LOAD_AVERAGE: AlertType.HIGH_LOAD,
}


def alert_type_for(kind: MetricKind) -> AlertType:
    """Map a metric kind to its alert type (CUSTOM when unmapped)."""
    return _ALERT_TYPE_BY_KIND.get(kind, AlertType.CUSTOM)


class Alert(BaseModel):
    """Persisted alert for a (server, rule) violation."""

    id: str
    server_id: str
    rule_id: str
    alert_type: AlertType = AlertType.CUSTOM
    severity: AlertSeverity
    status: AlertStatus = AlertStatus.ACTIVE
    description: str = ""
    threshold: float | None = None
    current_value: float | None = None
    created_at: float = 0.0
    last_observed_at: float = 0.0
    resolved_at: float | None = None
    acknowledged_at: float | None = None

    @property
    def is_open(self) -> bool:
        """ACTIVE or ACKNOWLEDGED — the violation has not cleared yet."""
        return self.status != AlertStatus.RESOLVED


class AlertEventType(StrEnum):
    """Alert lifecycle events handed to notification dispatch."""

    ALERT_TRIGGERED = "ALERT_TRIGGERED"
    ALERT_RESOLVED = "ALERT_RESOLVED"
    ALERT_ACKNOWLEDGED = "ALERT_ACKNOWLEDGED"


class AlertEvent(BaseModel):
    """Emitted by the lifecycle manager on alert creation/resolution."""

    event_type: AlertEventType
    alert: Alert
    timestamp: float = 0.0


# ── Scheduler ───────────────────────────────────────────────────


class SchedulerState(StrEnum):
    """Run state of the monitoring scheduler."""

    STOPPED = "STOPPED"
    RUNNING = "RUNNING"


class CycleReport(BaseModel):
    """Summary of one monitoring cycle."""

    cycle_index: int
    started_at: float
    finished_at: float = 0.0
    aborted: bool = False
    error: str | None = None
    dispatched: int = 0
    outcomes: list[ProbeOutcome] = Field(default_factory=list)
    transitions: list[StatusTransition] = Field(default_factory=list)
    failures: list[str] = Field(default_factory=list)

    @property
    def duration_secs(self) -> float:
        if self.finished_at <= 0.0:
            return 0.0
        return self.finished_at - self.started_at
