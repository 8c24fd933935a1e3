"""CLI tests using Typer's CliRunner with a mocked Discogs reader."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from crate_sync.cli import app

runner = CliRunner()


@pytest.fixture
def base_args(db):
    return ["--db", str(db.db_path), "--no-details"]


@pytest.fixture
def patched_reader(monkeypatch, reader):
    monkeypatch.setattr("crate_sync.cli._make_reader", lambda owner: reader)
    return reader


def test_owner_add_and_link(db, base_args, monkeypatch):
    monkeypatch.delenv("DISCOGS_USERNAME", raising=False)
    monkeypatch.delenv("DISCOGS_TOKEN", raising=False)
    result = runner.invoke(app, [*base_args, "-o", "json", "owner", "add", "carol"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == {"id": 1, "username": "carol", "linked": False}

    result = runner.invoke(
        app, [*base_args, "owner", "link", "carol", "--discogs-username", "carol_dg", "--token", "tok"]
    )
    assert result.exit_code == 0, result.output
    assert db.get_owner_by_username("carol").is_linked


def test_owner_add_duplicate_fails(db, owner, base_args):
    result = runner.invoke(app, [*base_args, "owner", "add", owner.username])
    assert result.exit_code == 1
    assert "already exists" in result.output


def test_link_without_token_fails(db, base_args, monkeypatch):
    monkeypatch.delenv("DISCOGS_TOKEN", raising=False)
    monkeypatch.delenv("DISCOGS_USERNAME", raising=False)
    db.create_owner("carol")

    result = runner.invoke(app, [*base_args, "owner", "link", "carol", "--discogs-username", "c"])

    assert result.exit_code == 1
    assert "No Discogs token" in result.output


def test_owner_add_links_from_environment(db, base_args, monkeypatch):
    monkeypatch.setenv("DISCOGS_USERNAME", "dana_dg")
    monkeypatch.setenv("DISCOGS_TOKEN", "env-token")

    result = runner.invoke(app, [*base_args, "owner", "add", "dana"])

    assert result.exit_code == 0, result.output
    dana = db.get_owner_by_username("dana")
    assert dana.discogs_username == "dana_dg"
    assert dana.discogs_token == "env-token"
    assert dana.is_linked


def test_owner_link_uses_configured_username(db, base_args, monkeypatch):
    monkeypatch.setenv("DISCOGS_USERNAME", "dana_dg")
    db.create_owner("dana")

    result = runner.invoke(app, [*base_args, "owner", "link", "dana", "--token", "tok"])

    assert result.exit_code == 0, result.output
    assert db.get_owner_by_username("dana").discogs_username == "dana_dg"


def test_owner_link_without_username_fails(db, base_args, monkeypatch):
    monkeypatch.delenv("DISCOGS_USERNAME", raising=False)
    db.create_owner("dana")

    result = runner.invoke(app, [*base_args, "owner", "link", "dana", "--token", "tok"])

    assert result.exit_code == 1
    assert "No Discogs username" in result.output
    assert not db.get_owner_by_username("dana").is_linked


def test_sync_json_summary(db, owner, fake_discogs, release_item, patched_reader, base_args):
    fake_discogs.add_page(
        release_item(1, "Kind of Blue", "Miles Davis"),
        release_item(2, "Blue Train", "John Coltrane"),
    )

    result = runner.invoke(app, [*base_args, "-o", "json", "sync", owner.username])

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["message"] == "Collection sync completed"
    assert data["created"] == 2
    assert data["synced_count"] == 2
    assert data["error_count"] == 0
    assert db.count_records(owner.id) == 2


def test_sync_text_output(db, owner, fake_discogs, release_item, patched_reader, base_args):
    fake_discogs.add_page(release_item(1, "Kind of Blue", "Miles Davis"))

    result = runner.invoke(app, [*base_args, "sync", owner.username])

    assert result.exit_code == 0, result.output
    assert "Collection sync completed" in result.output
    assert "Created" in result.output


def test_sync_unknown_owner(base_args):
    result = runner.invoke(app, [*base_args, "sync", "nobody"])
    assert result.exit_code == 1
    assert "Unknown owner" in result.output


def test_sync_unlinked_owner(db, base_args):
    db.create_owner("carol")

    result = runner.invoke(app, [*base_args, "sync", "carol"])

    assert result.exit_code == 1
    assert "Discogs account not connected" in result.output


def test_dedupe_dry_run_and_apply(db, owner, add_record, base_args):
    add_record("Can", "Tago Mago")
    add_record("can", "tago mago")
    add_record("Slint", "Spiderland")

    result = runner.invoke(app, [*base_args, "-o", "json", "dedupe", owner.username, "--dry-run"])
    assert result.exit_code == 0, result.output
    groups = json.loads(result.stdout)
    assert [g["key"] for g in groups] == ["can::tago mago"]
    assert db.count_records(owner.id) == 3

    result = runner.invoke(app, [*base_args, "-o", "json", "dedupe", owner.username])
    assert result.exit_code == 0, result.output
    summary = json.loads(result.stdout)
    assert summary["merged_groups"] == 1
    assert summary["removed_records"] == 1
    assert db.count_records(owner.id) == 2


def test_dedupe_dry_run_without_duplicates(owner, add_record, base_args):
    add_record("Slint", "Spiderland")

    result = runner.invoke(app, [*base_args, "dedupe", owner.username, "--dry-run"])

    assert result.exit_code == 2
    assert "No duplicates found" in result.output


def test_check_release(db, owner, add_record, base_args):
    default, _ = db.ensure_default_collection(owner.id)
    add_record("Can", "Tago Mago", external_id=42, collection_id=default.id)

    found = runner.invoke(app, [*base_args, "-o", "json", "check", owner.username, "42"])
    assert found.exit_code == 0, found.output
    matches = json.loads(found.stdout)
    assert matches[0]["collection"] == {"id": default.id, "title": default.title, "is_default": True}

    missing = runner.invoke(app, [*base_args, "check", owner.username, "43"])
    assert missing.exit_code == 2
    assert "not in the catalog" in missing.output


def test_stats_json(owner, fake_discogs, release_item, patched_reader, base_args):
    fake_discogs.add_page(release_item(1, "Kind of Blue", "Miles Davis", year=1959))

    result = runner.invoke(app, [*base_args, "-o", "json", "stats", owner.username, "--sample", "5"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["total_items"] == 1
    assert data["sample"][0]["title"] == "Kind of Blue"


def test_clean_notes(db, owner, add_record, base_args):
    record = add_record("Can", "Tago Mago", description_note="Pressed on 180g vinyl")

    result = runner.invoke(app, [*base_args, "-o", "json", "clean-notes", owner.username, "--dry-run"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["contaminated"] == 1
    assert db.get_record(record.id).description_note is not None

    result = runner.invoke(app, [*base_args, "-o", "json", "clean-notes"])
    assert json.loads(result.stdout)["cleaned"] == 1
    assert db.get_record(record.id).description_note is None


def test_collections_list_and_set_default(db, owner, base_args):
    default, _ = db.ensure_default_collection(owner.id)
    shelf = db.create_collection(owner.id, "Shelf B")

    result = runner.invoke(app, [*base_args, "collections", "set-default", owner.username, str(shelf.id)])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, [*base_args, "-o", "json", "collections", "list", owner.username])
    assert result.exit_code == 0, result.output
    listed = json.loads(result.stdout)
    assert listed[0] == {"id": shelf.id, "title": "Shelf B", "is_default": True}
    assert {"id": default.id, "title": default.title, "is_default": False} in listed


def test_collections_set_default_unknown(owner, base_args):
    result = runner.invoke(app, [*base_args, "collections", "set-default", owner.username, "999"])
    assert result.exit_code == 1
    assert "Collection 999 not found" in result.output
