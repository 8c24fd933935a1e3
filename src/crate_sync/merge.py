"""Fill-empty field merge for local records.

A merge only ever moves a field from empty to filled. Populated fields are
never overwritten and ``description_note`` is never touched, so merging is
idempotent and two records merged into each other converge.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import Any

from crate_sync.discogs import RemoteDetail, RemoteEntry
from crate_sync.records_db import LocalRecord

# Identity and bookkeeping columns are never merged.
NON_MERGEABLE_FIELDS = frozenset(
    {"id", "owner_id", "collection_id", "artist", "title", "created_at", "updated_at"}
)

# User-authored; never filled from a remote entry or a duplicate sibling.
PROTECTED_FIELDS = frozenset({"description_note"})

MERGEABLE_FIELDS: tuple[str, ...] = tuple(
    f.name
    for f in dataclasses.fields(LocalRecord)
    if f.name not in NON_MERGEABLE_FIELDS and f.name not in PROTECTED_FIELDS
)

# Zero means "unset" for these, as in the remote API where an unrated item has rating 0.
_ZERO_IS_EMPTY = frozenset({"year", "rating"})


def is_empty(field_name: str, value: Any) -> bool:
    """Whether a field value counts as unset for merging purposes."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    if field_name in _ZERO_IS_EMPTY and value == 0:
        return True
    return False


def merge_record(target: LocalRecord, source: Mapping[str, Any]) -> LocalRecord:
    """
    Fill the target's empty fields from ``source``.

    Args:
        target: Record to fill
        source: Partial record (field name -> value); unknown and
            non-mergeable keys are ignored

    Returns:
        New LocalRecord; ``target`` is not modified
    """
    updates: dict[str, Any] = {}
    for name in MERGEABLE_FIELDS:
        if name not in source:
            continue
        value = source[name]
        if is_empty(name, value):
            continue
        if is_empty(name, getattr(target, name)):
            updates[name] = list(value) if isinstance(value, list) else value

    if not updates:
        return dataclasses.replace(target)
    return dataclasses.replace(target, **updates)


def changed_fields(before: LocalRecord, after: LocalRecord) -> list[str]:
    """Names of fields whose value differs between two versions of a record."""
    return [
        f.name
        for f in dataclasses.fields(LocalRecord)
        if getattr(before, f.name) != getattr(after, f.name)
    ]


def patch_from_remote(entry: RemoteEntry, detail: RemoteDetail | None = None) -> dict[str, Any]:
    """
    Build a partial record from a remote entry and its optional detail.

    Entry data wins where both carry a value; the detail only supplies what
    the collection listing lacks. Release notes are deliberately not mapped.
    """
    first_label = entry.labels[0] if entry.labels else None
    first_format = entry.formats[0] if entry.formats else None

    patch: dict[str, Any] = {
        "external_id": entry.external_id,
        "year": entry.year,
        "image_url": entry.image_url,
        "genres": list(entry.genres),
        "label": first_label.name if first_label else None,
        "catalog_number": first_label.catalog_number if first_label else None,
        "format_name": first_format.name if first_format else None,
        "rating": entry.rating,
    }
    if detail is not None:
        patch["country"] = detail.country
        patch["track_list"] = detail.track_list
        if not patch["image_url"]:
            patch["image_url"] = detail.primary_image_url
    return patch


def patch_from_record(record: LocalRecord) -> dict[str, Any]:
    """Partial record made of a sibling's mergeable fields."""
    return {name: getattr(record, name) for name in MERGEABLE_FIELDS}


def record_from_remote(
    entry: RemoteEntry,
    detail: RemoteDetail | None,
    owner_id: int,
    collection_id: int | None,
) -> LocalRecord:
    """New local record populated from a remote entry and its detail."""
    blank = LocalRecord(
        id=None,
        owner_id=owner_id,
        artist=entry.artist,
        title=entry.title,
        collection_id=collection_id,
    )
    return merge_record(blank, patch_from_remote(entry, detail))


## Tests


def _record(**kwargs: Any) -> LocalRecord:
    base: dict[str, Any] = {"id": 1, "owner_id": 1, "artist": "Artist", "title": "Title"}
    base.update(kwargs)
    return LocalRecord(**base)


def test_merge_fills_only_empty():
    target = _record(year=None, label="Blue Note", genres=[])
    merged = merge_record(target, {"year": 1959, "label": "Columbia", "genres": ["Jazz"]})

    assert merged.year == 1959
    assert merged.label == "Blue Note"
    assert merged.genres == ["Jazz"]
    assert target.year is None  # input untouched


def test_merge_never_touches_description_note():
    target = _record(description_note=None)
    merged = merge_record(target, {"description_note": "Pressed on 180g vinyl"})
    assert merged.description_note is None


def test_merge_ignores_identity_fields():
    target = _record()
    merged = merge_record(target, {"id": 99, "artist": "Other", "owner_id": 7})
    assert (merged.id, merged.artist, merged.owner_id) == (1, "Artist", 1)


def test_merge_zero_rating_is_empty():
    merged = merge_record(_record(rating=0), {"rating": 5})
    assert merged.rating == 5
    assert merge_record(_record(rating=None), {"rating": 0}).rating is None
