"""Record store and server directory — external collaborator contracts."""

from src.store.base import RecordStore, ServerDirectory
from src.store.exceptions import (
    DuplicateActiveAlertError,
    RecordNotFoundError,
    StoreError,
    StoreUnavailableError,
)
from src.store.memory import InMemoryRecordStore

__all__ = [
    "DuplicateActiveAlertError",
    "InMemoryRecordStore",
    "RecordNotFoundError",
    "RecordStore",
    "ServerDirectory",
    "StoreError",
    "StoreUnavailableError",
]
