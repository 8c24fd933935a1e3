"""Pytest configuration and shared fixtures for crate-sync tests."""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from crate_sync.config import DiscogsConfig
from crate_sync.discogs import DiscogsCollectionReader
from crate_sync.pacing import FakeClock, Pacer
from crate_sync.records_db import LocalRecord, Owner, RecordsDB

DISCOGS_USER = "alice_on_discogs"

# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db(tmp_path: Path) -> RecordsDB:
    """Provide an empty records database."""
    return RecordsDB(tmp_path / "crate.sqlite")


@pytest.fixture
def owner(db: RecordsDB) -> Owner:
    """Provide an owner linked to a Discogs account."""
    return db.create_owner("alice", DISCOGS_USER, "test-token")


@pytest.fixture
def add_record(db: RecordsDB, owner: Owner) -> Callable[..., LocalRecord]:
    """Insert a hand-entered record; ``created_at`` increases per call."""
    counter = {"t": 1_000_000.0}

    def _add(artist: str, title: str, **fields: Any) -> LocalRecord:
        counter["t"] += 1
        fields.setdefault("created_at", counter["t"])
        return db.create_record(
            LocalRecord(id=None, owner_id=fields.pop("owner_id", owner.id), artist=artist, title=title, **fields)
        )

    return _add


# =============================================================================
# Discogs Fixtures
# =============================================================================


def _release_item(
    release_id: int,
    title: str,
    artists: list[str] | str,
    year: int = 0,
    rating: int = 0,
    genres: list[str] | None = None,
    label: str | None = None,
    catno: str | None = None,
    format_name: str | None = "Vinyl",
    cover: str = "",
    thumb: str = "",
) -> dict[str, Any]:
    """Build one ``releases[]`` item as returned by the collection endpoint."""
    if isinstance(artists, str):
        artists = [artists]
    return {
        "id": release_id,
        "instance_id": release_id * 10,
        "date_added": "2024-01-01T00:00:00-08:00",
        "rating": rating,
        "basic_information": {
            "id": release_id,
            "master_id": 0,
            "title": title,
            "year": year,
            "artists": [{"name": name, "anv": "", "join": "", "id": i} for i, name in enumerate(artists)],
            "labels": [{"name": label, "catno": catno or ""}] if label else [],
            "formats": [{"name": format_name, "qty": "1", "descriptions": ["LP"]}] if format_name else [],
            "genres": genres or [],
            "styles": [],
            "thumb": thumb,
            "cover_image": cover,
        },
    }


class FakeDiscogs:
    """In-memory Discogs API served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.pages: list[list[dict[str, Any]]] = []
        self.details: dict[int, dict[str, Any]] = {}
        self.failing_pages: set[int] = set()
        self.failing_details: set[int] = set()
        # Raw 200 bodies served instead of the normal payload
        self.page_bodies: dict[int, str] = {}
        self.detail_bodies: dict[int, str] = {}
        self.requests: list[httpx.Request] = []

    def add_page(self, *items: dict[str, Any]) -> None:
        self.pages.append(list(items))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == f"/users/{DISCOGS_USER}/collection/folders/0/releases":
            page = int(request.url.params.get("page", "1"))
            per_page = int(request.url.params.get("per_page", "50"))
            if page in self.failing_pages:
                return httpx.Response(500, text="Internal Server Error")
            if page in self.page_bodies:
                return httpx.Response(200, text=self.page_bodies[page])
            releases = self.pages[page - 1] if page <= len(self.pages) else []
            return httpx.Response(
                200,
                json={
                    "pagination": {
                        "page": page,
                        "pages": len(self.pages),
                        "per_page": per_page,
                        "items": sum(len(p) for p in self.pages),
                        "urls": {},
                    },
                    "releases": releases,
                },
            )

        if match := re.fullmatch(r"/releases/(\d+)", path):
            release_id = int(match.group(1))
            if release_id in self.failing_details:
                return httpx.Response(502, text="Bad Gateway")
            if release_id in self.detail_bodies:
                return httpx.Response(200, text=self.detail_bodies[release_id])
            if release_id in self.details:
                return httpx.Response(200, json={"id": release_id, **self.details[release_id]})
            return httpx.Response(404, json={"message": "Release not found."})

        return httpx.Response(404, json={"message": "Not found"})

    def page_requests(self) -> list[int]:
        return [
            int(r.url.params["page"]) for r in self.requests if r.url.path.endswith("/releases") and "page" in r.url.params
        ]


@pytest.fixture
def fake_discogs() -> FakeDiscogs:
    return FakeDiscogs()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_reader(fake_discogs: FakeDiscogs, clock: FakeClock) -> Callable[[], DiscogsCollectionReader]:
    """Build readers backed by the fake API and a fake clock."""

    def _make(config: DiscogsConfig | None = None) -> DiscogsCollectionReader:
        config = config or DiscogsConfig()
        client = httpx.Client(
            base_url=config.base_url,
            transport=httpx.MockTransport(fake_discogs.handler),
        )
        return DiscogsCollectionReader(
            username=DISCOGS_USER,
            token="test-token",
            config=config,
            client=client,
            page_pacer=Pacer(config.page_delay_s, clock=clock, sleep=clock.sleep),
            detail_pacer=Pacer(config.detail_delay_s, clock=clock, sleep=clock.sleep),
        )

    return _make


@pytest.fixture
def reader(make_reader: Callable[[], DiscogsCollectionReader]) -> DiscogsCollectionReader:
    return make_reader()


@pytest.fixture
def release_item() -> Callable[..., dict[str, Any]]:
    """Builder for collection ``releases[]`` items."""
    return _release_item
