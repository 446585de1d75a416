"""MonitorScheduler — periodic fan-out of health probes across the fleet.

One ticker task owns the cadence. Each tick runs a full cycle:

1. read the server directory (MAINTENANCE servers dropped)
2. probe every server concurrently and wait for all of them to settle
3. persist each outcome and apply it to the status engine

Cycles never overlap. A cycle that overruns the interval delays the next
tick (it starts right after) rather than skipping or doubling it.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable

import structlog

from src.core.config import SchedulerConfig
from src.core.types import (
    CycleReport,
    ProbeOutcome,
    SchedulerState,
    ServerState,
    ServerTarget,
    StatusTransition,
)
from src.probes.executor import ProbeExecutor
from src.status.engine import StatusEngine
from src.store.base import RecordStore, ServerDirectory

logger = structlog.stdlib.get_logger()

CycleCallback = Callable[[CycleReport], Awaitable[None] | None]

# (outcome, transition or None when the status step failed, persist_failed)
_ProbeResult = tuple[ProbeOutcome, StatusTransition | None, bool]


class MonitorScheduler:
    """Drives monitoring cycles on a fixed interval.

    ``start()``/``stop()`` are coroutines for use on the event loop;
    ``request_stop()`` may be called from any thread.

    Usage::

        scheduler = MonitorScheduler(store, store, executor, engine, config)
        scheduler.on_cycle(metrics.on_cycle_report)
        await scheduler.start()
        ...
        await scheduler.stop()   # lets an in-flight cycle finish
    """

    def __init__(
        self,
        directory: ServerDirectory,
        store: RecordStore,
        executor: ProbeExecutor,
        engine: StatusEngine,
        config: SchedulerConfig | None = None,
        probe_timeout_secs: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._directory = directory
        self._store = store
        self._executor = executor
        self._engine = engine
        self._config = config or SchedulerConfig()
        self._probe_timeout_secs = probe_timeout_secs
        self._clock = clock

        self._state = SchedulerState.STOPPED
        self._state_lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None
        self._cycle_lock = asyncio.Lock()

        self._callbacks: list[CycleCallback] = []
        self._cycle_count = 0
        self._last_report: CycleReport | None = None

    # ── Properties ───────────────────────────────────────────────

    @property
    def state(self) -> SchedulerState:
        with self._state_lock:
            return self._state

    @property
    def running(self) -> bool:
        return self.state == SchedulerState.RUNNING

    @property
    def interval_secs(self) -> float:
        return self._config.probe_interval_secs

    @property
    def cycle_count(self) -> int:
        """Number of cycles started (including aborted ones)."""
        return self._cycle_count

    @property
    def last_report(self) -> CycleReport | None:
        return self._last_report

    def on_cycle(self, callback: CycleCallback) -> None:
        """Register a callback invoked with every finished CycleReport."""
        self._callbacks.append(callback)

    async def _emit(self, report: CycleReport) -> None:
        for cb in self._callbacks:
            try:
                result = cb(report)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("cycle_callback_error", cycle=report.cycle_index)

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the ticker. No-op when already running.

        A ticker left over from a ``request_stop()`` is joined first, so
        its in-flight cycle finishes before the new cadence begins.
        """
        with self._state_lock:
            if self._state == SchedulerState.RUNNING:
                return
            self._state = SchedulerState.RUNNING
            self._loop = asyncio.get_running_loop()
            self._stop_event = asyncio.Event()
            stop_event = self._stop_event
            previous = self._task
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        self._task = asyncio.create_task(self._tick_loop(stop_event))
        logger.info(
            "scheduler_started",
            interval_secs=self._config.probe_interval_secs,
            run_on_start=self._config.run_on_start,
        )

    def request_stop(self) -> None:
        """Stop scheduling new cycles. Thread-safe; does not wait."""
        with self._state_lock:
            if self._state == SchedulerState.STOPPED:
                return
            self._state = SchedulerState.STOPPED
            loop, stop_event = self._loop, self._stop_event

        if loop is None or stop_event is None:
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is loop:
            stop_event.set()
        elif not loop.is_closed():
            loop.call_soon_threadsafe(stop_event.set)

    async def stop(self) -> None:
        """Stop the ticker and wait for any in-flight cycle to finish."""
        self.request_stop()
        task = self._task
        if task is not None:
            await task
            if self._task is task:
                self._task = None
        logger.info("scheduler_stopped", cycles=self._cycle_count)

    async def _tick_loop(self, stop_event: asyncio.Event) -> None:
        interval = self._config.probe_interval_secs
        next_tick = time.monotonic()
        if not self._config.run_on_start:
            next_tick += interval

        while not stop_event.is_set():
            delay = next_tick - time.monotonic()
            if delay > 0:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=delay)
                except TimeoutError:
                    pass
                else:
                    break

            async with self._cycle_lock:
                if stop_event.is_set():
                    break
                tick_started = time.monotonic()
                try:
                    await self._run_cycle_locked()
                except Exception:
                    logger.exception("cycle_failed", cycle=self._cycle_count)
            next_tick = tick_started + interval

    # ── Cycle ────────────────────────────────────────────────────

    async def run_cycle(self) -> CycleReport:
        """Run one full monitoring cycle and return its report."""
        async with self._cycle_lock:
            return await self._run_cycle_locked()

    async def _run_cycle_locked(self) -> CycleReport:
        self._cycle_count += 1
        report = CycleReport(cycle_index=self._cycle_count, started_at=self._clock())

        try:
            listed = await self._directory.list_monitorable()
        except Exception as exc:
            report.aborted = True
            report.error = str(exc) or type(exc).__name__
            logger.error(
                "cycle_aborted_directory_unavailable",
                cycle=report.cycle_index,
                error=report.error,
                exc_info=True,
            )
            return await self._finish(report)

        targets = _monitorable(listed)
        report.dispatched = len(targets)
        results = await asyncio.gather(
            *(self._probe_and_apply(t) for t in targets),
            return_exceptions=True,
        )

        for target, result in zip(targets, results):
            if isinstance(result, BaseException):
                report.failures.append(target.id)
                logger.error(
                    "probe_task_failed",
                    cycle=report.cycle_index,
                    server_id=target.id,
                    error=repr(result),
                )
                continue
            outcome, transition, persist_failed = result
            report.outcomes.append(outcome)
            if transition is not None:
                report.transitions.append(transition)
            if transition is None or persist_failed:
                report.failures.append(target.id)

        return await self._finish(report)

    async def _finish(self, report: CycleReport) -> CycleReport:
        report.finished_at = self._clock()
        self._last_report = report
        logger.info(
            "cycle_completed",
            cycle=report.cycle_index,
            aborted=report.aborted,
            dispatched=report.dispatched,
            outcomes=len(report.outcomes),
            failures=len(report.failures),
            duration_secs=round(report.duration_secs, 3),
        )
        await self._emit(report)
        return report

    async def _probe_and_apply(self, target: ServerTarget) -> _ProbeResult:
        """Probe one server, persist the outcome, and update its state.

        Store failures are logged and reported, never raised, so one server's
        trouble cannot affect the others in the cycle.
        """
        outcome = await self._executor.probe_target(target, timeout=self._probe_timeout_secs)

        persist_failed = False
        try:
            await self._store.record_probe_outcome(outcome)
        except Exception:
            persist_failed = True
            logger.exception("probe_outcome_persist_failed", server_id=target.id)

        transition: StatusTransition | None = None
        try:
            transition = await self._engine.apply(outcome)
        except Exception:
            logger.exception("status_update_failed", server_id=target.id)

        return outcome, transition, persist_failed


def _monitorable(targets: list[ServerTarget]) -> list[ServerTarget]:
    """Drop MAINTENANCE entries and duplicate ids, keeping first occurrence."""
    seen: set[str] = set()
    result: list[ServerTarget] = []
    for target in targets:
        if target.state == ServerState.MAINTENANCE or target.id in seen:
            continue
        seen.add(target.id)
        result.append(target)
    return result
