"""Alert lifecycle exceptions."""

from __future__ import annotations


class AlertError(Exception):
    """Base exception for alert lifecycle errors."""


class AlertNotFoundError(AlertError):
    """The referenced alert does not exist."""


class InvalidAlertTransitionError(AlertError):
    """The requested status change is not allowed from the alert's current status."""
