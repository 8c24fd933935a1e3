"""Tests for the records database."""

from __future__ import annotations

import pytest

from crate_sync.errors import CollectionNotFoundError
from crate_sync.records_db import LocalRecord, RecordsDB


def test_owner_link(db):
    owner = db.create_owner("bob")
    assert not owner.is_linked

    db.link_discogs(owner.id, "bob_dg", "tok")
    linked = db.get_owner_by_username("bob")

    assert linked is not None
    assert linked.is_linked
    assert linked.discogs_username == "bob_dg"
    assert db.get_owner(owner.id) == linked
    assert db.get_owner(999) is None


def test_ensure_default_collection_is_idempotent(db, owner):
    first, created = db.ensure_default_collection(owner.id)
    second, created_again = db.ensure_default_collection(owner.id)

    assert created is True
    assert created_again is False
    assert first.id == second.id
    assert first.is_default and not first.is_public
    assert first.title == "Discogs Collection"
    assert first.description == "Synced from Discogs"


def test_ensure_default_collection_adopts_orphans_only(db, owner, add_record):
    other = db.create_collection(owner.id, "Shelf B")
    orphan = add_record("Can", "Tago Mago")
    shelved = add_record("Can", "Future Days", collection_id=other.id)

    default, _ = db.ensure_default_collection(owner.id, title="Main")

    assert db.get_record(orphan.id).collection_id == default.id
    assert db.get_record(shelved.id).collection_id == other.id


def test_set_default_collection_moves_flag(db, owner):
    original, _ = db.ensure_default_collection(owner.id)
    shelf = db.create_collection(owner.id, "Shelf B")

    db.set_default_collection(owner.id, shelf.id)

    defaults = [c for c in db.list_collections(owner.id) if c.is_default]
    assert [c.id for c in defaults] == [shelf.id]
    assert db.get_default_collection(owner.id).id == shelf.id
    assert db.get_collection(original.id).is_default is False


def test_set_default_collection_rejects_foreign_collection(db, owner):
    bob = db.create_owner("bob")
    bobs = db.create_collection(bob.id, "Bob's shelf")

    with pytest.raises(CollectionNotFoundError):
        db.set_default_collection(owner.id, bobs.id)
    with pytest.raises(CollectionNotFoundError):
        db.set_default_collection(owner.id, 12345)


def test_update_record_writes_selected_columns(db, owner, add_record):
    record = add_record("Can", "Tago Mago", label="United Artists")
    record.label = "Spoon"
    record.year = 1971

    db.update_record(record, ["year"])
    stored = db.get_record(record.id)

    assert stored.year == 1971
    assert stored.label == "United Artists"
    assert stored.updated_at >= stored.created_at


def test_update_record_with_no_columns_is_a_no_op(db, owner, add_record):
    record = add_record("Can", "Tago Mago")
    before = db.get_record(record.id)

    db.update_record(record, [])

    assert db.get_record(record.id).updated_at == before.updated_at


def test_update_missing_record_raises(db, owner):
    ghost = LocalRecord(id=777, owner_id=owner.id, artist="A", title="B")
    with pytest.raises(LookupError):
        db.update_record(ghost)


def test_find_unlinked_containing(db, owner, add_record):
    add_record("Miles Davis", "Kind of Blue", external_id=1)
    older = add_record("The Miles Davis Quintet", "Kind of Blue (mono)")
    newer = add_record("miles davis", "KIND OF BLUE")

    found = db.find_unlinked_containing(owner.id, "Miles Davis", "Kind of Blue")
    assert [r.id for r in found] == [older.id, newer.id]


def test_find_by_external_id_all_includes_collection(db, owner, add_record):
    default, _ = db.ensure_default_collection(owner.id)
    in_default = add_record("Can", "Tago Mago", external_id=42, collection_id=default.id)
    loose = add_record("Can", "Tago Mago", external_id=42)

    matches = db.find_by_external_id_all(owner.id, 42)

    assert [(r.id, c.id if c else None) for r, c in matches] == [
        (in_default.id, default.id),
        (loose.id, None),
    ]
    assert db.find_by_external_id(owner.id, 42).id == in_default.id
    assert db.find_by_external_id(owner.id, 43) is None


def test_delete_records_is_scoped_to_owner(db, owner, add_record):
    bob = db.create_owner("bob")
    mine = add_record("Can", "Tago Mago")
    bobs = add_record("Can", "Tago Mago", owner_id=bob.id)

    assert db.delete_records(owner.id, [mine.id, bobs.id]) == 1
    assert db.get_record(bobs.id) is not None
    assert db.delete_records(owner.id, []) == 0


def test_list_records_with_notes(db, owner, add_record):
    bob = db.create_owner("bob")
    noted = add_record("Can", "Tago Mago", description_note="first pressing")
    add_record("Can", "Future Days")
    bobs = add_record("Slint", "Spiderland", owner_id=bob.id, description_note="gift")

    assert [r.id for r in db.list_records_with_notes(owner.id)] == [noted.id]
    assert [r.id for r in db.list_records_with_notes()] == [noted.id, bobs.id]


def test_schema_survives_reopen(tmp_path):
    path = tmp_path / "nested" / "crate.sqlite"
    db = RecordsDB(path)
    owner = db.create_owner("alice")
    db.create_record(LocalRecord(id=None, owner_id=owner.id, artist="Can", title="Tago Mago"))

    reopened = RecordsDB(path)
    assert reopened.count_records(owner.id) == 1


def test_find_unlinked_containing_folds_unicode_case(db, owner, add_record):
    motorhead = add_record("MOTÖRHEAD", "ACE OF SPADES")
    add_record("Sigur Rós", "Ágætis byrjun")

    found = db.find_unlinked_containing(owner.id, "Motörhead", "Ace of Spades")
    assert [r.id for r in found] == [motorhead.id]

    found = db.find_unlinked_containing(owner.id, "SIGUR RÓS", "ÁGÆTIS")
    assert len(found) == 1
