"""
Collection sync: mirror a Discogs collection into the local catalog.

Pages are pulled in order under the reader's pacing. Each entry is resolved
against the local catalog and either merged into an unlinked match, skipped
(already linked) or created in the owner's default collection. A failure on
one entry is recorded and the run moves on; a failed page fetch ends
pagination but the partial summary is still returned.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from crate_sync.config import SyncConfig
from crate_sync.discogs import DiscogsCollectionReader, RemoteEntry
from crate_sync.errors import NotLinkedError, OwnerNotFoundError, ProviderError
from crate_sync.matching import IdentityResolver
from crate_sync.merge import changed_fields, merge_record, patch_from_remote, record_from_remote
from crate_sync.records_db import Owner, RecordsDB

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class SyncAction(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ItemOutcome:
    """Result of processing one remote entry."""

    external_id: int
    title: str
    action: SyncAction
    record_id: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class SyncSummary:
    """
    Accumulated result of one sync run.

    Immutable: ``record`` and ``with_error`` return a new summary, so the
    sync loop is a fold over item outcomes.
    """

    created: int = 0
    updated: int = 0
    skipped: int = 0
    pages_fetched: int = 0
    errors: tuple[str, ...] = ()
    max_reported_errors: int = 10

    @property
    def synced(self) -> int:
        return self.created + self.updated

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def record(self, outcome: ItemOutcome) -> SyncSummary:
        if outcome.action is SyncAction.CREATED:
            return replace(self, created=self.created + 1)
        if outcome.action is SyncAction.UPDATED:
            return replace(self, updated=self.updated + 1)
        if outcome.action is SyncAction.SKIPPED:
            return replace(self, skipped=self.skipped + 1)
        return self.with_error(f'Failed to sync release "{outcome.title}": {outcome.error}')

    def with_error(self, message: str) -> SyncSummary:
        return replace(self, errors=(*self.errors, message))

    def page_done(self) -> SyncSummary:
        return replace(self, pages_fetched=self.pages_fetched + 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": "Collection sync completed",
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "synced_count": self.synced,
            "pages_fetched": self.pages_fetched,
            "error_count": self.error_count,
            "errors": list(self.errors[: self.max_reported_errors]),
        }


class CollectionSync:
    """Drives one owner's collection sync."""

    def __init__(
        self,
        db: RecordsDB,
        reader: DiscogsCollectionReader,
        config: SyncConfig | None = None,
        resolver: IdentityResolver | None = None,
    ):
        self.db = db
        self.reader = reader
        self.config = config or SyncConfig()
        self.resolver = resolver or IdentityResolver(db)

    def _require_linked_owner(self, owner_id: int) -> Owner:
        owner = self.db.get_owner(owner_id)
        if owner is None:
            raise OwnerNotFoundError(owner_id)
        if not owner.is_linked:
            raise NotLinkedError(owner_id)
        return owner

    def process_entry(self, entry: RemoteEntry, owner_id: int, collection_id: int) -> ItemOutcome:
        """
        Resolve and apply one remote entry.

        Exceptions propagate; ``sync_collection`` isolates them per entry.
        """
        detail = self.reader.fetch_detail(entry.external_id) if self.config.fetch_details else None

        existing = self.resolver.resolve(entry, owner_id)
        if existing is not None:
            if existing.external_id is not None:
                return ItemOutcome(entry.external_id, entry.title, SyncAction.SKIPPED, existing.id)

            merged = merge_record(existing, patch_from_remote(entry, detail))
            self.db.update_record(merged, changed_fields(existing, merged))
            logger.info(f"Linked record {existing.id} to release {entry.external_id}")
            return ItemOutcome(entry.external_id, entry.title, SyncAction.UPDATED, existing.id)

        created = self.db.create_record(record_from_remote(entry, detail, owner_id, collection_id))
        logger.info(f"Created record {created.id} for release {entry.external_id}")
        return ItemOutcome(entry.external_id, entry.title, SyncAction.CREATED, created.id)

    def step(
        self, summary: SyncSummary, entry: RemoteEntry, owner_id: int, collection_id: int
    ) -> SyncSummary:
        """Process one entry and fold its outcome into the summary."""
        try:
            outcome = self.process_entry(entry, owner_id, collection_id)
        except Exception as exc:
            logger.exception(f"Error processing release {entry.external_id}")
            outcome = ItemOutcome(entry.external_id, entry.title, SyncAction.FAILED, error=str(exc))
        return summary.record(outcome)

    def sync_collection(
        self, owner_id: int, progress: ProgressCallback | None = None
    ) -> SyncSummary:
        """
        Mirror the owner's remote collection into the local catalog.

        Args:
            owner_id: Local owner to sync
            progress: Optional callback receiving (page, total_pages)

        Returns:
            SyncSummary with counts and error messages

        Raises:
            OwnerNotFoundError: Unknown owner
            NotLinkedError: Owner has no linked Discogs account
        """
        self._require_linked_owner(owner_id)
        collection, created = self.db.ensure_default_collection(
            owner_id,
            title=self.config.default_collection_title,
            description=self.config.default_collection_description,
        )
        if created:
            logger.info(f"Created default collection {collection.id} for owner {owner_id}")

        summary = SyncSummary(max_reported_errors=self.config.max_reported_errors)
        next_page = 1
        try:
            for page in self.reader.iter_pages():
                for entry in page.items:
                    summary = self.step(summary, entry, owner_id, collection.id)
                summary = summary.page_done()
                next_page = page.page + 1
                if progress:
                    progress(page.page, page.total_pages)
        except ProviderError as exc:
            logger.error(f"Error fetching page {next_page}: {exc}")
            summary = summary.with_error(f"Failed to fetch page {next_page}: {exc}")

        logger.info(
            f"Sync finished for owner {owner_id}: created={summary.created} "
            f"updated={summary.updated} skipped={summary.skipped} errors={summary.error_count}"
        )
        return summary


## Tests


def test_summary_fold():
    summary = SyncSummary()
    summary = summary.record(ItemOutcome(1, "A", SyncAction.CREATED))
    summary = summary.record(ItemOutcome(2, "B", SyncAction.UPDATED))
    summary = summary.record(ItemOutcome(3, "C", SyncAction.SKIPPED))
    summary = summary.record(ItemOutcome(4, "D", SyncAction.FAILED, error="boom"))

    assert (summary.created, summary.updated, summary.skipped) == (1, 1, 1)
    assert summary.synced == 2
    assert summary.errors == ('Failed to sync release "D": boom',)


def test_summary_caps_reported_errors():
    summary = SyncSummary(max_reported_errors=10)
    for i in range(15):
        summary = summary.with_error(f"error {i}")

    data = summary.to_dict()
    assert data["error_count"] == 15
    assert len(data["errors"]) == 10
    assert data["errors"][0] == "error 0"
