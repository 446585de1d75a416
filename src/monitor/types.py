"""Domain types for the notification hand-off."""

from __future__ import annotations

import time
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field


class Severity(IntEnum):
    """Notification severity — ordered so comparisons work naturally."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    CRITICAL = 3


class NotificationMessage(BaseModel):
    """Normalised notification ready for hand-off to sinks."""

    severity: Severity
    title: str
    body: str = ""
    fields: dict[str, str] = Field(default_factory=dict)
    source_event_type: str = ""
    # Throttle key; messages sharing a key are rate-limited together.
    dedupe_key: str = ""
    timestamp: float = Field(default_factory=time.time)
    raw: dict[str, Any] = Field(default_factory=dict)
