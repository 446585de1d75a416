"""Core module — config, types, logging."""

from src.core.config import Settings, get_settings, load_settings, reset_settings
from src.core.logging import setup_logging
from src.core.types import (
    Alert,
    AlertEvent,
    AlertEventType,
    AlertRule,
    AlertSeverity,
    AlertStatus,
    AlertType,
    Comparison,
    CycleReport,
    MetricKind,
    MetricSample,
    ProbeClassification,
    ProbeOutcome,
    SchedulerState,
    Server,
    ServerState,
    ServerTarget,
    StatusEvent,
    StatusEventType,
    StatusTransition,
)

__all__ = [
    "Alert",
    "AlertEvent",
    "AlertEventType",
    "AlertRule",
    "AlertSeverity",
    "AlertStatus",
    "AlertType",
    "Comparison",
    "CycleReport",
    "MetricKind",
    "MetricSample",
    "ProbeClassification",
    "ProbeOutcome",
    "SchedulerState",
    "Server",
    "ServerState",
    "ServerTarget",
    "Settings",
    "StatusEvent",
    "StatusEventType",
    "StatusTransition",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
