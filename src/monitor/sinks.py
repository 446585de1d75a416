"""Notification sinks — where dispatched messages end up."""

from __future__ import annotations

import abc

import structlog

from src.monitor.types import NotificationMessage, Severity

logger = structlog.get_logger(__name__)

_LOG_LEVELS: dict[Severity, str] = {
    Severity.DEBUG: "debug",
    Severity.INFO: "info",
    Severity.WARNING: "warning",
    Severity.CRITICAL: "critical",
}


class NotificationSink(abc.ABC):
    """Base class for notification delivery targets."""

    @abc.abstractmethod
    async def send(self, msg: NotificationMessage) -> bool:
        """Deliver a message. Returns True on success."""

    async def close(self) -> None:
        """Release resources. No-op by default."""


class LogSink(NotificationSink):
    """Writes each notification as a structured log record."""

    def __init__(self, logger_name: str = "notifications") -> None:
        self._logger = structlog.get_logger(logger_name)
        self.sent = 0

    async def send(self, msg: NotificationMessage) -> bool:
        method = getattr(self._logger, _LOG_LEVELS.get(msg.severity, "info"))
        method(
            "notification",
            severity=msg.severity.name,
            title=msg.title,
            body=msg.body,
            fields=msg.fields,
        )
        self.sent += 1
        return True
