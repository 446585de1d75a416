"""Health probes — bounded-time HTTP checks and outcome classification."""

from src.probes.executor import TIMEOUT_ERROR, ProbeExecutor, classify_response

__all__ = [
    "TIMEOUT_ERROR",
    "ProbeExecutor",
    "classify_response",
]
