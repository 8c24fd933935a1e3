"""Exceptions raised by crate-sync.

Provider and precondition failures are kept apart so callers can tell a run
that never started from one that stopped early.
"""

from __future__ import annotations


class CrateSyncError(Exception):
    """Base class for all crate-sync errors."""


class ProviderError(CrateSyncError):
    """Remote catalog request failed (transport error or non-success status)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PreconditionError(CrateSyncError):
    """A run cannot start at all."""


class OwnerNotFoundError(PreconditionError):
    def __init__(self, owner_id: int):
        super().__init__(f"Owner {owner_id} not found")
        self.owner_id = owner_id


class NotLinkedError(PreconditionError):
    def __init__(self, owner_id: int):
        super().__init__(f"Discogs account not connected for owner {owner_id}")
        self.owner_id = owner_id


class CollectionNotFoundError(CrateSyncError):
    def __init__(self, collection_id: int):
        super().__init__(f"Collection {collection_id} not found")
        self.collection_id = collection_id
