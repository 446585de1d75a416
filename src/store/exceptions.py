"""Record store exceptions."""

from __future__ import annotations


class StoreError(Exception):
    """Base exception for record store failures."""


class StoreUnavailableError(StoreError):
    """The backing store could not be reached."""


class RecordNotFoundError(StoreError):
    """A referenced server, rule, or alert does not exist."""


class DuplicateActiveAlertError(StoreError):
    """An ACTIVE alert already exists for the (server, rule) pair."""

    def __init__(self, server_id: str, rule_id: str) -> None:
        super().__init__(f"active alert already exists for server={server_id} rule={rule_id}")
        self.server_id = server_id
        self.rule_id = rule_id
