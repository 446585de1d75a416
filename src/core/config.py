"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from src.core.types import AlertRule, AlertSeverity, MetricKind, Server

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class SchedulerConfig(BaseModel):
    """Monitoring cycle cadence."""

    probe_interval_secs: float = Field(default=300.0, gt=0)
    run_on_start: bool = True


class ProbeConfig(BaseModel):
    """Health probe execution settings."""

    timeout_secs: float = Field(default=5.0, gt=0)
    scheme: str = "http"
    health_path: str = "/health"
    max_connections: int = Field(default=100, ge=1)
    verify_tls: bool = True


class StatusConfig(BaseModel):
    """Status transition tuning.

    ``failure_threshold`` is the number of consecutive failed probes needed
    to flip a server OFFLINE. The default of 1 flips on the first failure.
    """

    failure_threshold: int = Field(default=1, ge=1)


class AlertsConfig(BaseModel):
    """Rule evaluation and alert hand-off configuration."""

    enabled_metric_kinds: list[MetricKind] = Field(
        default_factory=lambda: list(MetricKind),
    )
    severities: list[AlertSeverity] = Field(
        default_factory=lambda: list(AlertSeverity),
    )
    # None keeps bit-exact float comparison for ``equals`` rules.
    equals_epsilon: float | None = Field(default=None, ge=0)
    throttle_secs: float = Field(default=0.0, ge=0)
    notify_status_changes: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class Settings(BaseModel):
    """Root settings container."""

    scheduler: SchedulerConfig = SchedulerConfig()
    probe: ProbeConfig = ProbeConfig()
    status: StatusConfig = StatusConfig()
    alerts: AlertsConfig = AlertsConfig()
    logging: LoggingConfig = LoggingConfig()
    # Seed data for the in-memory store used by scripts/.
    servers: list[Server] = Field(default_factory=list)
    rules: list[AlertRule] = Field(default_factory=list)


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
