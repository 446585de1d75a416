"""Pure functions that convert control-loop events into NotificationMessages."""

from __future__ import annotations

from src.core.types import (
    AlertEvent,
    AlertEventType,
    AlertSeverity,
    StatusEvent,
    StatusEventType,
)
from src.monitor.types import NotificationMessage, Severity

# ── Severity mappings ───────────────────────────────────────────

_TRIGGERED_SEVERITY: dict[AlertSeverity, Severity] = {
    AlertSeverity.LOW: Severity.INFO,
    AlertSeverity.MEDIUM: Severity.WARNING,
    AlertSeverity.HIGH: Severity.WARNING,
    AlertSeverity.CRITICAL: Severity.CRITICAL,
}

_STATUS_SEVERITY: dict[StatusEventType, Severity] = {
    StatusEventType.SERVER_ONLINE: Severity.INFO,
    StatusEventType.SERVER_OFFLINE: Severity.WARNING,
}


def _fmt_number(value: float | None) -> str:
    if value is None:
        return ""
    return f"{value:g}"


# ── Formatters ──────────────────────────────────────────────────


def format_alert_event(event: AlertEvent) -> NotificationMessage:
    """Convert an AlertEvent to a NotificationMessage."""
    alert = event.alert
    if event.event_type == AlertEventType.ALERT_TRIGGERED:
        severity = _TRIGGERED_SEVERITY.get(alert.severity, Severity.WARNING)
    elif event.event_type == AlertEventType.ALERT_RESOLVED:
        severity = Severity.INFO
    else:
        severity = Severity.DEBUG

    fields: dict[str, str] = {
        "alert_id": alert.id,
        "server_id": alert.server_id,
        "rule_id": alert.rule_id,
        "alert_type": alert.alert_type.value,
        "severity": alert.severity.value,
        "status": alert.status.value,
    }
    if alert.current_value is not None:
        fields["value"] = _fmt_number(alert.current_value)
    if alert.threshold is not None:
        fields["threshold"] = _fmt_number(alert.threshold)

    return NotificationMessage(
        severity=severity,
        title=f"{event.event_type.value} {alert.alert_type.value} on {alert.server_id}",
        body=alert.description,
        fields=fields,
        source_event_type=event.event_type.value,
        dedupe_key=f"{event.event_type.value}:{alert.server_id}:{alert.rule_id}",
        timestamp=event.timestamp,
        raw=event.model_dump(mode="json"),
    )


def format_status_event(event: StatusEvent) -> NotificationMessage:
    """Convert a StatusEvent to a NotificationMessage."""
    transition = event.transition
    outcome = transition.outcome
    severity = _STATUS_SEVERITY.get(event.event_type, Severity.INFO)

    fields: dict[str, str] = {
        "server_id": transition.server_id,
        "previous": transition.previous.value,
        "current": transition.current.value,
        "classification": outcome.classification.value,
    }
    if outcome.status_code is not None:
        fields["status_code"] = str(outcome.status_code)

    return NotificationMessage(
        severity=severity,
        title=f"{event.event_type.value} {transition.server_id}",
        body=outcome.error or "",
        fields=fields,
        source_event_type=event.event_type.value,
        dedupe_key=f"{event.event_type.value}:{transition.server_id}",
        timestamp=event.timestamp,
        raw=event.model_dump(mode="json"),
    )
