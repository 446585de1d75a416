"""Tests for src/core/config.py — YAML loading, defaults, validation."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from src.core.config import (
    AlertsConfig,
    LoggingConfig,
    ProbeConfig,
    SchedulerConfig,
    Settings,
    StatusConfig,
    get_settings,
    load_settings,
    reset_settings,
)
from src.core.types import AlertSeverity, Comparison, MetricKind, ServerState


@pytest.fixture(autouse=True)
def _clean_settings() -> None:
    """Reset the global settings cache before each test."""
    reset_settings()


class TestDefaults:
    """Settings should have sensible defaults when no YAML is provided."""

    def test_default_scheduler_config(self) -> None:
        cfg = SchedulerConfig()
        assert cfg.probe_interval_secs == 300.0
        assert cfg.run_on_start is True

    def test_default_probe_config(self) -> None:
        cfg = ProbeConfig()
        assert cfg.timeout_secs == 5.0
        assert cfg.scheme == "http"
        assert cfg.health_path == "/health"

    def test_default_status_config(self) -> None:
        assert StatusConfig().failure_threshold == 1

    def test_default_alerts_config(self) -> None:
        cfg = AlertsConfig()
        assert set(cfg.enabled_metric_kinds) == set(MetricKind)
        assert set(cfg.severities) == set(AlertSeverity)
        assert cfg.equals_epsilon is None
        assert cfg.throttle_secs == 0.0

    def test_default_logging_config(self) -> None:
        cfg = LoggingConfig()
        assert cfg.level == "INFO"
        assert cfg.format == "json"

    def test_default_settings(self) -> None:
        s = Settings()
        assert s.scheduler.probe_interval_secs == 300.0
        assert s.probe.timeout_secs == 5.0
        assert s.servers == []
        assert s.rules == []


class TestValidation:
    def test_zero_interval_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SchedulerConfig(probe_interval_secs=0)

    def test_negative_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ProbeConfig(timeout_secs=-1)

    def test_failure_threshold_below_one_rejected(self) -> None:
        with pytest.raises(ValidationError):
            StatusConfig(failure_threshold=0)

    def test_unknown_metric_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AlertsConfig(enabled_metric_kinds=["GPU_USAGE"])  # type: ignore[list-item]


class TestYamlLoading:
    """Settings should load correctly from YAML files."""

    def test_load_from_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "scheduler": {"probe_interval_secs": 60, "run_on_start": False},
            "probe": {"timeout_secs": 2.5, "health_path": "/healthz"},
            "alerts": {
                "enabled_metric_kinds": ["CPU_USAGE"],
                "severities": ["HIGH", "CRITICAL"],
            },
            "logging": {"level": "DEBUG", "format": "console"},
            "servers": [
                {"id": "web-1", "address": "10.0.0.5", "port": 8080},
            ],
            "rules": [
                {
                    "id": "cpu-high",
                    "name": "High CPU",
                    "metric_kind": "CPU_USAGE",
                    "comparison": "greater_than",
                    "threshold": 90,
                },
            ],
        }
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump(config_data))

        settings = load_settings(config_file)

        assert settings.scheduler.probe_interval_secs == 60
        assert settings.scheduler.run_on_start is False
        assert settings.probe.timeout_secs == 2.5
        assert settings.probe.health_path == "/healthz"
        assert settings.alerts.enabled_metric_kinds == [MetricKind.CPU_USAGE]
        assert settings.alerts.severities == [AlertSeverity.HIGH, AlertSeverity.CRITICAL]
        assert settings.logging.level == "DEBUG"
        assert settings.servers[0].id == "web-1"
        assert settings.servers[0].state == ServerState.UNKNOWN
        assert settings.rules[0].comparison == Comparison.GREATER_THAN
        assert settings.rules[0].severity == AlertSeverity.MEDIUM

    def test_load_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "nonexistent.yaml")
        assert settings.scheduler.probe_interval_secs == 300.0
        assert settings.probe.timeout_secs == 5.0

    def test_load_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        settings = load_settings(config_file)
        assert settings.probe.timeout_secs == 5.0

    def test_partial_yaml_merges_with_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"probe": {"timeout_secs": 1}}))

        settings = load_settings(config_file)
        assert settings.probe.timeout_secs == 1
        # Other defaults still intact
        assert settings.probe.health_path == "/health"
        assert settings.scheduler.probe_interval_secs == 300.0

    def test_invalid_rule_in_yaml_raises(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({
            "rules": [{"id": "r", "name": "r", "metric_kind": "CPU_USAGE",
                       "comparison": "between", "threshold": 1}],
        }))
        with pytest.raises(ValidationError):
            load_settings(config_file)


class TestCaching:
    def test_get_settings_returns_loaded_instance(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"status": {"failure_threshold": 3}}))
        loaded = load_settings(config_file)
        assert get_settings() is loaded
        assert get_settings().status.failure_threshold == 3

    def test_reset_clears_cache(self, tmp_path: Path) -> None:
        loaded = load_settings(tmp_path / "nonexistent.yaml")
        reset_settings()
        assert get_settings() is not loaded
