"""Property tests for the fill-empty merge."""

from __future__ import annotations

import dataclasses
from typing import Any

from hypothesis import given
from hypothesis import strategies as st

from crate_sync.merge import MERGEABLE_FIELDS, is_empty, merge_record, patch_from_record
from crate_sync.records_db import LocalRecord

maybe_text = st.one_of(st.none(), st.just(""), st.text(max_size=12))
maybe_int = st.one_of(st.none(), st.just(0), st.integers(min_value=1, max_value=3000))
genres = st.lists(st.sampled_from(["Rock", "Jazz", "Electronic", "Pop"]), max_size=3)


@st.composite
def records(draw: Any) -> LocalRecord:
    return LocalRecord(
        id=draw(st.integers(min_value=1, max_value=1000)),
        owner_id=1,
        artist=draw(st.text(min_size=1, max_size=10)),
        title=draw(st.text(min_size=1, max_size=10)),
        external_id=draw(st.one_of(st.none(), st.integers(min_value=1, max_value=10**7))),
        year=draw(maybe_int),
        image_url=draw(maybe_text),
        genres=draw(genres),
        label=draw(maybe_text),
        format_name=draw(maybe_text),
        catalog_number=draw(maybe_text),
        country=draw(maybe_text),
        description_note=draw(maybe_text),
        rating=draw(st.one_of(st.none(), st.integers(min_value=0, max_value=5))),
        condition=draw(maybe_text),
        purchase_price=draw(
            st.one_of(st.none(), st.floats(min_value=0, max_value=1000, allow_nan=False))
        ),
        purchase_location=draw(maybe_text),
    )


@given(records(), records())
def test_merge_is_idempotent(target: LocalRecord, source: LocalRecord):
    patch = patch_from_record(source)
    once = merge_record(target, patch)
    twice = merge_record(once, patch)
    assert twice == once


@given(records(), records())
def test_merge_never_overwrites_populated_fields(target: LocalRecord, source: LocalRecord):
    merged = merge_record(target, patch_from_record(source))

    for name in MERGEABLE_FIELDS:
        before = getattr(target, name)
        if not is_empty(name, before):
            assert getattr(merged, name) == before


@given(records(), records())
def test_merge_only_fills_from_source(target: LocalRecord, source: LocalRecord):
    merged = merge_record(target, patch_from_record(source))

    for name in MERGEABLE_FIELDS:
        if getattr(merged, name) != getattr(target, name):
            assert is_empty(name, getattr(target, name))
            assert getattr(merged, name) == getattr(source, name)


@given(records(), records())
def test_merge_keeps_identity_and_personal_note(target: LocalRecord, source: LocalRecord):
    patch = dataclasses.asdict(source)
    merged = merge_record(target, patch)

    assert merged.id == target.id
    assert merged.owner_id == target.owner_id
    assert merged.artist == target.artist
    assert merged.title == target.title
    assert merged.description_note == target.description_note
