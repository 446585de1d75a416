"""Notification hand-off, operational metrics, and stack wiring."""

from src.monitor.dispatcher import AlertDispatcher
from src.monitor.factory import ControlLoop, build_control_loop, create_monitor_stack
from src.monitor.formatters import format_alert_event, format_status_event
from src.monitor.metrics import MonitorMetrics
from src.monitor.sinks import LogSink, NotificationSink
from src.monitor.types import NotificationMessage, Severity

__all__ = [
    "AlertDispatcher",
    "ControlLoop",
    "LogSink",
    "MonitorMetrics",
    "NotificationMessage",
    "NotificationSink",
    "Severity",
    "build_control_loop",
    "create_monitor_stack",
    "format_alert_event",
    "format_status_event",
]
