"""Convenience factories for wiring the monitoring stack."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from src.alerts.lifecycle import AlertManager
from src.core.config import AlertsConfig, Settings
from src.monitor.dispatcher import AlertDispatcher
from src.monitor.metrics import MonitorMetrics
from src.monitor.sinks import LogSink, NotificationSink
from src.probes.executor import ProbeExecutor
from src.scheduler.scheduler import MonitorScheduler
from src.status.engine import StatusEngine
from src.store.base import RecordStore, ServerDirectory


def create_monitor_stack(
    config: AlertsConfig,
    sinks: list[NotificationSink] | None = None,
) -> tuple[AlertDispatcher, MonitorMetrics]:
    """Build a dispatcher + metrics collector from config.

    Without explicit sinks a single LogSink is used.

    Returns:
        (dispatcher, metrics)
    """
    dispatcher = AlertDispatcher(
        sinks=sinks if sinks is not None else [LogSink()],
        throttle_secs=config.throttle_secs,
        notify_status_changes=config.notify_status_changes,
    )
    return dispatcher, MonitorMetrics()


@dataclass
class ControlLoop:
    """All wired control-loop components."""

    executor: ProbeExecutor
    engine: StatusEngine
    scheduler: MonitorScheduler
    manager: AlertManager
    dispatcher: AlertDispatcher
    metrics: MonitorMetrics

    async def start(self) -> None:
        await self.executor.connect()
        await self.scheduler.start()

    async def close(self) -> None:
        """Stop the scheduler (letting an in-flight cycle finish) and release resources."""
        await self.scheduler.stop()
        await self.executor.close()
        await self.dispatcher.close()


def build_control_loop(
    settings: Settings,
    directory: ServerDirectory,
    store: RecordStore,
    client: httpx.AsyncClient | None = None,
    sinks: list[NotificationSink] | None = None,
) -> ControlLoop:
    """Wire executor, status engine, scheduler, alert manager and hand-off."""
    dispatcher, metrics = create_monitor_stack(settings.alerts, sinks)

    executor = ProbeExecutor(settings.probe, client=client)
    engine = StatusEngine(store, settings.status)
    engine.on_event(dispatcher.on_status_event)

    scheduler = MonitorScheduler(
        directory,
        store,
        executor,
        engine,
        settings.scheduler,
        probe_timeout_secs=settings.probe.timeout_secs,
    )
    scheduler.on_cycle(metrics.on_cycle_report)

    manager = AlertManager(store, settings.alerts)
    manager.on_event(dispatcher.on_alert_event)
    manager.on_event(metrics.on_alert_event)

    return ControlLoop(
        executor=executor,
        engine=engine,
        scheduler=scheduler,
        manager=manager,
        dispatcher=dispatcher,
        metrics=metrics,
    )
