"""
Discogs collection reader.

Fetches a user's collection one page at a time and, optionally, the full
release record per entry. Calls are paced (1 req/sec for pages, 1.1 s
between release lookups by default) to stay under the 60 req/min limit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import httpx

from crate_sync.config import DiscogsConfig
from crate_sync.errors import ProviderError
from crate_sync.pacing import Pacer, paced
from crate_sync.safe_logging import redact_dict

logger = logging.getLogger(__name__)


@dataclass
class RemoteLabel:
    name: str
    catalog_number: str | None = None


@dataclass
class RemoteFormat:
    name: str
    descriptions: list[str] = field(default_factory=list)


@dataclass
class RemoteEntry:
    """One release from a page of the remote collection."""

    external_id: int
    title: str
    year: int | None = None
    artists: list[str] = field(default_factory=list)
    labels: list[RemoteLabel] = field(default_factory=list)
    formats: list[RemoteFormat] = field(default_factory=list)
    genres: list[str] = field(default_factory=list)
    styles: list[str] = field(default_factory=list)
    thumb_url: str | None = None
    cover_url: str | None = None
    rating: int | None = None
    date_added: str | None = None

    @property
    def artist(self) -> str:
        return ", ".join(self.artists) or "Unknown Artist"

    @property
    def image_url(self) -> str | None:
        return self.cover_url or self.thumb_url or None

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> RemoteEntry:
        """Build from a collection ``releases[]`` item."""
        info = item.get("basic_information") or {}
        release_id = info.get("id", item.get("id"))
        if release_id is None:
            raise ValueError("collection item has no release id")

        labels = [
            RemoteLabel(name=label["name"], catalog_number=label.get("catno") or None)
            for label in info.get("labels") or []
            if label.get("name")
        ]
        formats = [
            RemoteFormat(name=fmt["name"], descriptions=list(fmt.get("descriptions") or []))
            for fmt in info.get("formats") or []
            if fmt.get("name")
        ]

        return cls(
            external_id=int(release_id),
            title=info.get("title", ""),
            year=info.get("year") or None,
            artists=[a["name"] for a in info.get("artists") or [] if a.get("name")],
            labels=labels,
            formats=formats,
            genres=list(info.get("genres") or []),
            styles=list(info.get("styles") or []),
            thumb_url=info.get("thumb") or None,
            cover_url=info.get("cover_image") or None,
            rating=item.get("rating") or None,
            date_added=item.get("date_added"),
        )


@dataclass
class RemoteDetail:
    """Full release record for one external id."""

    external_id: int
    country: str | None = None
    track_list: list[dict[str, Any]] | None = None
    notes: str | None = None
    barcodes: list[str] = field(default_factory=list)
    master_id: int | None = None
    images: list[dict[str, Any]] = field(default_factory=list)
    format_descriptions: list[str] = field(default_factory=list)
    community_rating: float | None = None
    data_quality: str | None = None

    @property
    def primary_image_url(self) -> str | None:
        primary = next((img for img in self.images if img.get("type") == "primary"), None)
        best = primary or (self.images[0] if self.images else None)
        if best is None:
            return None
        return best.get("uri") or best.get("resource_url") or None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RemoteDetail:
        formats = data.get("formats") or []
        format_descriptions = list(formats[0].get("descriptions") or []) if formats else []

        barcodes = [
            ident["value"]
            for ident in data.get("identifiers") or []
            if ident.get("type", "").lower() == "barcode" and ident.get("value")
        ]

        community = data.get("community") or {}
        rating = (community.get("rating") or {}).get("average")

        return cls(
            external_id=int(data["id"]),
            country=data.get("country") or None,
            track_list=data.get("tracklist") or None,
            notes=data.get("notes") or None,
            barcodes=barcodes,
            master_id=data.get("master_id") or None,
            images=list(data.get("images") or []),
            format_descriptions=format_descriptions,
            community_rating=rating or None,
            data_quality=data.get("data_quality") or None,
        )


@dataclass
class CollectionPage:
    items: list[RemoteEntry]
    page: int
    total_pages: int
    total_items: int = 0


@dataclass
class CollectionStats:
    """Summary of a remote collection: total size plus a sample of entries."""

    total_items: int
    sample: list[RemoteEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_items": self.total_items,
            "sample": [
                {
                    "id": entry.external_id,
                    "artist": entry.artist,
                    "title": entry.title,
                    "year": entry.year,
                    "image_url": entry.cover_url,
                    "genres": entry.genres,
                }
                for entry in self.sample
            ],
        }


def _count(pagination: dict[str, Any], key: str, default: int) -> int:
    """Pagination counter; a missing or null value falls back to ``default``."""
    value = pagination.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ProviderError(f"Malformed pagination value {key}={value!r}") from exc


class DiscogsCollectionReader:
    """
    Rate-limited reader for one user's Discogs collection.

    Page fetches raise ProviderError on failure; release lookups are
    best-effort and return None on failure. No retries are performed.
    """

    COLLECTION_ENDPOINT = "users/{username}/collection/folders/0/releases"

    def __init__(
        self,
        username: str,
        token: str | None = None,
        config: DiscogsConfig | None = None,
        client: httpx.Client | None = None,
        page_pacer: Pacer | None = None,
        detail_pacer: Pacer | None = None,
    ):
        """
        Initialize the reader.

        Args:
            username: Discogs username owning the collection
            token: Discogs personal access token
            config: Discogs settings (base URL, pacing, page size)
            client: Pre-built httpx client (tests inject a MockTransport here)
            page_pacer: Pacer for collection page requests
            detail_pacer: Pacer for release detail requests
        """
        self.config = config or DiscogsConfig()
        self.username = username
        self.token = token or self.config.token
        self.page_pacer = page_pacer or Pacer(self.config.page_delay_s)
        self.detail_pacer = detail_pacer or Pacer(self.config.detail_delay_s)

        headers = {"User-Agent": self.config.user_agent}
        if self.token:
            headers["Authorization"] = f"Discogs token={self.token}"

        if client is None:
            client = httpx.Client(
                base_url=self.config.base_url,
                timeout=self.config.timeout_s,
                headers=headers,
            )
        else:
            client.headers.update(headers)
        self._client = client
        logger.debug(f"Discogs client for {username}: headers={redact_dict(headers)}")

    def _get(self, endpoint: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = self._client.get(endpoint, params=params)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Discogs request failed: {exc}") from exc

        if response.status_code != 200:
            raise ProviderError(
                f"Discogs API error: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(f"Discogs returned invalid JSON for {endpoint}: {exc}") from exc
        if not isinstance(data, dict):
            raise ProviderError(
                f"Discogs returned {type(data).__name__} instead of an object for {endpoint}"
            )
        return data

    def fetch_page(self, page: int, per_page: int | None = None) -> CollectionPage:
        """
        Fetch one page of the collection.

        Args:
            page: 1-based page number
            per_page: Items per page (capped at 100)

        Returns:
            CollectionPage with parsed entries and pagination totals

        Raises:
            ProviderError: On transport failure, non-success status or a
                body that is not a collection page
        """
        per_page = min(per_page or self.config.per_page, 100)
        endpoint = self.COLLECTION_ENDPOINT.format(username=self.username)
        data = self._get(endpoint, params={"page": page, "per_page": per_page})

        pagination = data.get("pagination")
        releases = data.get("releases")
        if pagination is None:
            pagination = {}
        if releases is None:
            releases = []
        if not isinstance(pagination, dict) or not isinstance(releases, list):
            raise ProviderError(f"Malformed collection page {page} from Discogs")

        items: list[RemoteEntry] = []
        for raw in releases:
            try:
                items.append(RemoteEntry.from_api(raw))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning(f"Skipping malformed collection item on page {page}: {exc}")

        return CollectionPage(
            items=items,
            page=_count(pagination, "page", page),
            total_pages=_count(pagination, "pages", page),
            total_items=_count(pagination, "items", len(items)),
        )

    def iter_pages(self, per_page: int | None = None) -> Iterator[CollectionPage]:
        """
        Iterate collection pages from page 1 until the last page.

        Requests are paced by ``page_pacer``. A failed fetch raises
        ProviderError out of the iterator, ending iteration.
        """
        bounds = {"total_pages": 1}

        def page_numbers() -> Iterator[int]:
            page = 1
            while page <= bounds["total_pages"]:
                yield page
                page += 1

        for page in paced(page_numbers(), self.page_pacer):
            result = self.fetch_page(page, per_page)
            bounds["total_pages"] = result.total_pages
            logger.debug(f"Fetched page {page}/{result.total_pages} ({len(result.items)} items)")
            yield result

    def fetch_detail(self, external_id: int) -> RemoteDetail | None:
        """
        Fetch the full release record.

        Returns:
            RemoteDetail, or None if the lookup failed for any reason
        """
        self.detail_pacer.wait()
        try:
            data = self._get(f"releases/{external_id}")
            return RemoteDetail.from_api(data)
        except (ProviderError, KeyError, TypeError, ValueError) as exc:
            logger.warning(f"Failed to fetch release details for {external_id}: {exc}")
            return None

    def collection_stats(self, sample_size: int = 20) -> CollectionStats:
        """Return the remote collection size and a sample from the first page."""
        self.page_pacer.wait()
        first = self.fetch_page(1, per_page=sample_size)
        return CollectionStats(total_items=first.total_items, sample=first.items[:sample_size])

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> DiscogsCollectionReader:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


## Tests


def test_remote_entry_from_api():
    entry = RemoteEntry.from_api(
        {
            "id": 1,
            "rating": 4,
            "basic_information": {
                "id": 555,
                "title": "Kind of Blue",
                "year": 1959,
                "artists": [{"name": "Miles Davis"}],
                "labels": [{"name": "Columbia", "catno": "CL 1355"}],
                "formats": [{"name": "Vinyl", "descriptions": ["LP", "Album"]}],
                "genres": ["Jazz"],
                "thumb": "https://img/thumb.jpg",
                "cover_image": "",
            },
        }
    )
    assert entry.external_id == 555
    assert entry.artist == "Miles Davis"
    assert entry.labels[0].catalog_number == "CL 1355"
    assert entry.formats[0].descriptions == ["LP", "Album"]
    assert entry.image_url == "https://img/thumb.jpg"
    assert entry.rating == 4


def test_remote_entry_unknown_artist_and_unrated():
    entry = RemoteEntry.from_api({"rating": 0, "basic_information": {"id": 1, "title": "X"}})
    assert entry.artist == "Unknown Artist"
    assert entry.rating is None
    assert entry.year is None


def test_remote_detail_primary_image():
    detail = RemoteDetail.from_api(
        {
            "id": 7,
            "country": "UK",
            "images": [
                {"type": "secondary", "uri": "https://img/2.jpg"},
                {"type": "primary", "uri": "https://img/1.jpg"},
            ],
            "identifiers": [{"type": "Barcode", "value": "5099902987118"}],
            "community": {"rating": {"average": 4.6}},
        }
    )
    assert detail.primary_image_url == "https://img/1.jpg"
    assert detail.barcodes == ["5099902987118"]
    assert detail.community_rating == 4.6
