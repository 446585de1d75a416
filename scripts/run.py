#!/usr/bin/env python3
"""Main entrypoint — wires the control loop and probes the fleet on an interval.

Servers and alert rules are seeded from the ``servers`` and ``rules`` lists
in the settings file into an in-memory store.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # One cycle, print the summary, exit
    python scripts/run.py --once --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys

import structlog

from src.core.config import Settings, load_settings
from src.core.logging import setup_logging
from src.monitor.factory import build_control_loop
from src.store.memory import InMemoryRecordStore

logger = structlog.get_logger(__name__)


async def seed_store(settings: Settings) -> InMemoryRecordStore:
    store = InMemoryRecordStore()
    for server in settings.servers:
        await store.add_server(server)
    for rule in settings.rules:
        await store.add_rule(rule)
    return store


async def run(args: argparse.Namespace) -> int:
    """Start the control loop and run until interrupted."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    if not settings.servers:
        logger.error("no_servers_configured")
        print(
            "No servers configured. Add at least one entry under `servers:` "
            "in config/settings.yaml.",
            file=sys.stderr,
        )
        return 1

    store = await seed_store(settings)
    control = build_control_loop(settings, store, store)

    logger.info(
        "monitor_starting",
        servers=len(settings.servers),
        rules=len(settings.rules),
        interval_secs=settings.scheduler.probe_interval_secs,
        timeout_secs=settings.probe.timeout_secs,
    )

    if args.once:
        await control.executor.connect()
        try:
            await control.scheduler.run_cycle()
        finally:
            await control.executor.close()
            await control.dispatcher.close()
        print(json.dumps(control.metrics.summary(), indent=2, default=str))
        return 0

    await control.start()

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("monitor_shutting_down")
    await control.close()

    summary = control.metrics.summary()
    logger.info(
        "monitor_stopped",
        cycles_completed=summary["cycles_completed"],
        cycles_aborted=summary["cycles_aborted"],
        probes=summary["probes"],
        alerts_opened=summary["alerts_opened"],
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the server health monitoring loop.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle, print the metrics summary, and exit",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
