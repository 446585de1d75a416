"""Server availability state machine."""

from src.status.engine import StatusEngine, StatusEventCallback, next_state

__all__ = [
    "StatusEngine",
    "StatusEventCallback",
    "next_state",
]
