"""Detect and clear personal notes that were filled with Discogs release notes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from crate_sync.records_db import RecordsDB

logger = logging.getLogger(__name__)

RELEASE_NOTE_MARKERS = (
    "[url=",
    "[r12",
    "[r13",
    "Made in the EU",
    "Anniversary box set",
    "Not to be confused with",
    "Pressed on",
    "℗ 20",
    "© 20",
    "lacquers from",
    "Sony Interactive Entertainment",
)

MAX_PERSONAL_NOTE_LENGTH = 1000


def looks_like_release_notes(text: str) -> bool:
    """Whether a note reads like provider release notes rather than a personal note."""
    if len(text) > MAX_PERSONAL_NOTE_LENGTH:
        return True
    return any(marker in text for marker in RELEASE_NOTE_MARKERS)


@dataclass
class NoteCleanupReport:
    checked: int = 0
    contaminated_ids: list[int] = field(default_factory=list)
    cleaned: int = 0
    dry_run: bool = False

    @property
    def clean_remaining(self) -> int:
        return self.checked - len(self.contaminated_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "contaminated": len(self.contaminated_ids),
            "cleaned": self.cleaned,
            "clean_remaining": self.clean_remaining,
            "dry_run": self.dry_run,
        }


class NoteCleaner:
    def __init__(self, db: RecordsDB):
        self.db = db

    def clean(self, owner_id: int | None = None, dry_run: bool = False) -> NoteCleanupReport:
        """
        Clear contaminated personal notes.

        Args:
            owner_id: Restrict to one owner (default: all owners)
            dry_run: Only report, do not modify records
        """
        report = NoteCleanupReport(dry_run=dry_run)
        for record in self.db.list_records_with_notes(owner_id):
            report.checked += 1
            if not looks_like_release_notes(record.description_note or ""):
                continue

            assert record.id is not None
            report.contaminated_ids.append(record.id)
            logger.info(
                f"Contaminated note on record {record.id} "
                f"({len(record.description_note or '')} chars)"
            )
            if not dry_run:
                record.description_note = None
                self.db.update_record(record, ["description_note"])
                report.cleaned += 1
        return report


## Tests


def test_looks_like_release_notes():
    assert looks_like_release_notes("Pressed on 180g vinyl at Optimal")
    assert looks_like_release_notes("x" * 1001)
    assert not looks_like_release_notes("Bought at a flea market in Utrecht")
