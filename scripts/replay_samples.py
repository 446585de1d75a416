#!/usr/bin/env python3
"""Replay CLI — feed recorded metric samples through the alert lifecycle.

Usage:
    python -m scripts.replay_samples samples.jsonl
    python -m scripts.replay_samples samples.jsonl --config config/settings.yaml

Each line of the input is one JSON metric sample::

    {"server_id": "web-1", "metric_kind": "CPU_USAGE", "value": 95.0, "timestamp": 1700000000.0}

Alert rules come from the ``rules`` list in the settings file. Malformed
lines are logged and skipped.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

import structlog

from src.alerts.lifecycle import AlertManager
from src.core.config import load_settings
from src.core.logging import setup_logging
from src.core.types import AlertEvent
from src.monitor.metrics import MonitorMetrics
from src.store.memory import InMemoryRecordStore

logger = structlog.get_logger(__name__)


def load_samples(path: str) -> list[dict[str, Any]]:
    """Read JSON-lines samples, skipping blank and unparsable lines."""
    samples: list[dict[str, Any]] = []
    with open(path) as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("replay_line_unparsable", line=lineno)
                continue
            if isinstance(data, dict):
                samples.append(data)
            else:
                logger.warning("replay_line_not_object", line=lineno)
    return samples


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Replay recorded metric samples through the alert rules.",
    )
    parser.add_argument(
        "samples",
        help="Path to JSON-lines sample file",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level (default: WARNING)",
    )
    return parser.parse_args(argv)


async def run_replay(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    if not settings.rules:
        print("No alert rules configured; nothing to evaluate.", file=sys.stderr)
        return 1

    store = InMemoryRecordStore()
    for rule in settings.rules:
        await store.add_rule(rule)

    metrics = MonitorMetrics()
    manager = AlertManager(store, settings.alerts)
    manager.on_event(metrics.on_alert_event)

    def _print_event(event: AlertEvent) -> None:
        print(f"  {event.event_type.value:<20} {event.alert.description}")

    manager.on_event(_print_event)

    samples = load_samples(args.samples)
    print(f"Replaying {len(samples)} samples against {len(settings.rules)} rules")
    print()

    for raw in samples:
        await manager.ingest(raw)

    open_alerts = [
        a for a in await store.list_alerts() if a.is_open
    ]
    summary = metrics.summary()

    print()
    print(
        f"Replay complete: {summary['alerts_opened']} opened,"
        f" {summary['alerts_resolved']} resolved,"
        f" {len(open_alerts)} still open"
    )
    for alert in open_alerts:
        print(f"  [{alert.severity.value}] {alert.server_id} {alert.description}")
    return 0


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    sys.exit(asyncio.run(run_replay(args)))


if __name__ == "__main__":
    main()
