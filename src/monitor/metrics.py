"""MonitorMetrics — running operational statistics for the control loop.

Subscribes to ``MonitorScheduler.on_cycle()`` and ``AlertManager.on_event()``
and aggregates:
- Cycle counts (completed and aborted), durations and per-server failures
- Probe outcomes by classification, per server
- Probe latency samples
- Alert lifecycle counters
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from src.core.types import (
    AlertEvent,
    AlertEventType,
    CycleReport,
    ProbeClassification,
)


@dataclass
class ServerProbeStats:
    """Aggregated probe statistics for a single server."""

    server_id: str
    probes: int = 0
    healthy: int = 0
    last_classification: ProbeClassification | None = None
    last_error: str | None = None

    @property
    def availability(self) -> float:
        if self.probes == 0:
            return 0.0
        return self.healthy / self.probes


@dataclass
class CycleSample:
    """Timing record for a single cycle."""

    cycle_index: int
    duration_secs: float
    dispatched: int
    failures: int
    aborted: bool = False
    classifications: dict[str, int] = field(default_factory=dict)


class MonitorMetrics:
    """Collects control-loop metrics from cycle reports and alert events.

    Usage::

        metrics = MonitorMetrics()
        scheduler.on_cycle(metrics.on_cycle_report)
        manager.on_event(metrics.on_alert_event)

        summary = metrics.summary()
    """

    def __init__(self, max_samples: int = 10_000) -> None:
        self._max_samples = max_samples
        self._cycles: list[CycleSample] = []
        self._latency_samples: list[float] = []
        self._server_stats: dict[str, ServerProbeStats] = {}
        self._classifications: Counter[ProbeClassification] = Counter()

        self._cycles_completed = 0
        self._cycles_aborted = 0
        self._server_failures = 0

        self._alerts_opened = 0
        self._alerts_resolved = 0
        self._alerts_acknowledged = 0

    # ── Callback entry points ───────────────────────────────────

    def on_cycle_report(self, report: CycleReport) -> None:
        """Callback for ``MonitorScheduler.on_cycle()``."""
        if report.aborted:
            self._cycles_aborted += 1
        else:
            self._cycles_completed += 1
        self._server_failures += len(report.failures)

        per_cycle: Counter[str] = Counter()
        for outcome in report.outcomes:
            self._classifications[outcome.classification] += 1
            per_cycle[outcome.classification.value] += 1
            self._latency_samples.append(outcome.latency_secs)

            stats = self._server_stats.get(outcome.server_id)
            if stats is None:
                stats = ServerProbeStats(server_id=outcome.server_id)
                self._server_stats[outcome.server_id] = stats
            stats.probes += 1
            if outcome.healthy:
                stats.healthy += 1
            stats.last_classification = outcome.classification
            stats.last_error = outcome.error

        self._cycles.append(CycleSample(
            cycle_index=report.cycle_index,
            duration_secs=report.duration_secs,
            dispatched=report.dispatched,
            failures=len(report.failures),
            aborted=report.aborted,
            classifications=dict(per_cycle),
        ))
        if len(self._cycles) > self._max_samples:
            self._cycles = self._cycles[-self._max_samples:]
        if len(self._latency_samples) > self._max_samples:
            self._latency_samples = self._latency_samples[-self._max_samples:]

    def on_alert_event(self, event: AlertEvent) -> None:
        """Callback for ``AlertManager.on_event()``."""
        etype = event.event_type
        if etype == AlertEventType.ALERT_TRIGGERED:
            self._alerts_opened += 1
        elif etype == AlertEventType.ALERT_RESOLVED:
            self._alerts_resolved += 1
        elif etype == AlertEventType.ALERT_ACKNOWLEDGED:
            self._alerts_acknowledged += 1

    # ── Query methods ───────────────────────────────────────────

    @property
    def cycles(self) -> list[CycleSample]:
        return list(self._cycles)

    def server_stats(self) -> dict[str, ServerProbeStats]:
        """Return per-server probe stats."""
        return dict(self._server_stats)

    def latency_percentiles(self) -> dict[str, float]:
        """Return probe latency percentiles (p50, p90, p99) in seconds."""
        if not self._latency_samples:
            return {"p50": 0.0, "p90": 0.0, "p99": 0.0, "min": 0.0, "max": 0.0}

        values = sorted(self._latency_samples)
        n = len(values)
        return {
            "p50": values[int(n * 0.50)],
            "p90": values[min(int(n * 0.90), n - 1)],
            "p99": values[min(int(n * 0.99), n - 1)],
            "min": values[0],
            "max": values[-1],
        }

    def summary(self) -> dict[str, object]:
        """Return a summary of all metrics."""
        probes = sum(self._classifications.values())
        healthy = self._classifications[ProbeClassification.HEALTHY]
        return {
            "cycles_completed": self._cycles_completed,
            "cycles_aborted": self._cycles_aborted,
            "probes": probes,
            "probes_by_classification": {
                c.value: self._classifications[c] for c in ProbeClassification
            },
            "availability": round(healthy / probes, 4) if probes else 0.0,
            "server_failures": self._server_failures,
            "alerts_opened": self._alerts_opened,
            "alerts_resolved": self._alerts_resolved,
            "alerts_acknowledged": self._alerts_acknowledged,
            "latency": self.latency_percentiles(),
        }
