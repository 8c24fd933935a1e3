"""
Duplicate consolidation for the local catalog.

Groups an owner's records by normalized artist and title, keeps one
canonical record per group, fills its empty fields from the siblings and
deletes the siblings. Grouping ignores year and format, so distinct
pressings that share artist and title are merged too.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from crate_sync.matching import group_key
from crate_sync.merge import changed_fields, is_empty, merge_record, patch_from_record
from crate_sync.records_db import LocalRecord, RecordsDB

logger = logging.getLogger(__name__)

GroupKeyFunc = Callable[[LocalRecord], str]


@dataclass
class DuplicateGroup:
    key: str
    records: list[LocalRecord] = field(default_factory=list)

    @property
    def is_duplicate(self) -> bool:
        return len(self.records) > 1


@dataclass
class ConsolidationSummary:
    merged_groups: int = 0
    removed_records: int = 0
    errors: list[str] = field(default_factory=list)
    max_reported_errors: int = 10

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": "Duplicate cleanup completed",
            "merged_groups": self.merged_groups,
            "removed_records": self.removed_records,
            "error_count": len(self.errors),
            "errors": self.errors[: self.max_reported_errors],
        }


def populated_field_count(record: LocalRecord) -> int:
    """Number of attributes holding a non-null, non-empty value."""
    count = 0
    for f in dataclasses.fields(LocalRecord):
        value = getattr(record, f.name)
        if value is None or value == "" or value == []:
            continue
        count += 1
    return count


def pick_canonical(records: list[LocalRecord]) -> LocalRecord:
    """
    Choose the record a duplicate group is consolidated into.

    Prefers a linked record (non-null external id), then strictly more
    populated fields. Ties keep the earlier record in ``records``, which
    callers pass oldest first.
    """
    best = records[0]
    for current in records[1:]:
        best_linked = best.external_id is not None
        current_linked = current.external_id is not None
        if current_linked != best_linked:
            if current_linked:
                best = current
            continue
        if populated_field_count(current) > populated_field_count(best):
            best = current
    return best


def group_records(
    records: list[LocalRecord], key_func: GroupKeyFunc = group_key
) -> list[DuplicateGroup]:
    """Group records by key, preserving first-seen order of groups and members."""
    groups: dict[str, DuplicateGroup] = {}
    for record in records:
        key = key_func(record)
        groups.setdefault(key, DuplicateGroup(key)).records.append(record)
    return list(groups.values())


def consolidate_group(group: DuplicateGroup) -> tuple[LocalRecord, LocalRecord, list[LocalRecord]]:
    """
    Merge a group in memory.

    Returns:
        Tuple of (original canonical, merged canonical, siblings to delete)
    """
    canonical = pick_canonical(group.records)
    siblings = [r for r in group.records if r.id != canonical.id]

    merged = canonical
    for sibling in siblings:
        merged = merge_record(merged, patch_from_record(sibling))
        if is_empty("genres", merged.genres) and not is_empty("genres", sibling.genres):
            merged = dataclasses.replace(merged, genres=list(sibling.genres))
    return canonical, merged, siblings


class DuplicateConsolidator:
    """Batch job collapsing an owner's duplicate records."""

    def __init__(
        self,
        db: RecordsDB,
        key_func: GroupKeyFunc = group_key,
        max_reported_errors: int = 10,
    ):
        self.db = db
        self.key_func = key_func
        self.max_reported_errors = max_reported_errors

    def find_duplicate_groups(self, owner_id: int) -> list[DuplicateGroup]:
        """Duplicate groups for the owner without changing anything."""
        records = self.db.list_records(owner_id)
        return [g for g in group_records(records, self.key_func) if g.is_duplicate]

    def consolidate_duplicates(self, owner_id: int) -> ConsolidationSummary:
        """
        Collapse every duplicate group of the owner into its canonical record.

        A failure in one group is recorded and does not stop the others.
        """
        summary = ConsolidationSummary(max_reported_errors=self.max_reported_errors)

        for group in self.find_duplicate_groups(owner_id):
            try:
                canonical, merged, siblings = consolidate_group(group)
                self.db.update_record(merged, changed_fields(canonical, merged))
                removed = self.db.delete_records(owner_id, [s.id for s in siblings if s.id is not None])
            except Exception as exc:
                logger.exception(f"Error processing duplicate group {group.key!r}")
                summary.errors.append(f'Failed to merge duplicates for "{group.key}": {exc}')
                continue

            summary.merged_groups += 1
            summary.removed_records += removed
            logger.info(
                f"Merged {len(siblings)} duplicate(s) into record {canonical.id} ({group.key})"
            )

        return summary


## Tests


def _rec(id: int, **kwargs: Any) -> LocalRecord:
    base: dict[str, Any] = {"id": id, "owner_id": 1, "artist": "A", "title": "T"}
    base.update(kwargs)
    return LocalRecord(**base)


def test_pick_canonical_prefers_linked():
    records = [_rec(1, label="L", year=1990), _rec(2), _rec(3, external_id=42)]
    assert pick_canonical(records).id == 3


def test_pick_canonical_prefers_more_fields_then_oldest():
    assert pick_canonical([_rec(1), _rec(2, label="L")]).id == 2
    assert pick_canonical([_rec(1, label="L"), _rec(2, year=1990)]).id == 1


def test_consolidate_group_adopts_sibling_genres():
    group = DuplicateGroup("a::t", [_rec(1, external_id=5), _rec(2, genres=["Rock"])])
    _, merged, siblings = consolidate_group(group)
    assert merged.genres == ["Rock"]
    assert [s.id for s in siblings] == [2]
