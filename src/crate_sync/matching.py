"""
Identity resolution between remote entries and local records.

Exact external-id lookup first, then a conservative substring heuristic that
only considers records not yet linked to any external id. The heuristic is a
strategy object so it can be tested and swapped on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from crate_sync.discogs import RemoteEntry
from crate_sync.records_db import LocalRecord, RecordsDB

logger = logging.getLogger(__name__)


def normalize(text: str | None) -> str:
    """Case-fold and trim."""
    return (text or "").strip().casefold()


def group_key(record: LocalRecord) -> str:
    """Duplicate-grouping key: normalized artist and title."""
    return f"{normalize(record.artist)}::{normalize(record.title)}"


@dataclass(frozen=True)
class CandidateTerms:
    """Substrings a local record must contain to be a fuzzy candidate."""

    artist: str
    title: str


class MatchStrategy(Protocol):
    def candidate_terms(self, remote: RemoteEntry) -> CandidateTerms: ...

    def pick(self, candidates: list[LocalRecord], remote: RemoteEntry) -> LocalRecord | None: ...


class SubstringMatchStrategy:
    """
    Substring heuristic for records entered by hand before the first sync.

    Candidates contain the first comma-separated artist token and the first
    three title words. Preferred is a candidate that also contains the first
    ``title_prefix_len`` characters of the remote title; otherwise the first
    candidate wins.
    """

    def __init__(self, title_words: int = 3, title_prefix_len: int = 20):
        self.title_words = title_words
        self.title_prefix_len = title_prefix_len

    def candidate_terms(self, remote: RemoteEntry) -> CandidateTerms:
        artist_token = remote.artist.split(",")[0].strip()
        title_head = " ".join(remote.title.split()[: self.title_words])
        return CandidateTerms(artist=artist_token, title=title_head)

    def pick(self, candidates: list[LocalRecord], remote: RemoteEntry) -> LocalRecord | None:
        if not candidates:
            return None

        artist_token = remote.artist.casefold().split(",")[0].strip()
        title_prefix = remote.title.casefold()[: self.title_prefix_len]
        for candidate in candidates:
            if (
                artist_token in candidate.artist.casefold()
                and title_prefix in candidate.title.casefold()
            ):
                return candidate
        return candidates[0]


class IdentityResolver:
    """Finds the local record a remote entry corresponds to, if any."""

    def __init__(self, db: RecordsDB, strategy: MatchStrategy | None = None):
        self.db = db
        self.strategy = strategy or SubstringMatchStrategy()

    def resolve(self, remote: RemoteEntry, owner_id: int) -> LocalRecord | None:
        exact = self.db.find_by_external_id(owner_id, remote.external_id)
        if exact is not None:
            return exact

        terms = self.strategy.candidate_terms(remote)
        if not terms.artist or not terms.title:
            return None

        candidates = self.db.find_unlinked_containing(owner_id, terms.artist, terms.title)
        match = self.strategy.pick(candidates, remote)
        if match is not None:
            logger.debug(
                f"Fuzzy match for release {remote.external_id}: record {match.id} "
                f"({len(candidates)} candidate(s))"
            )
        return match


## Tests


def _entry(artist: str, title: str) -> RemoteEntry:
    return RemoteEntry(external_id=1, title=title, artists=[artist])


def test_group_key_normalizes():
    a = LocalRecord(id=1, owner_id=1, artist="Pink Floyd", title="The Wall")
    b = LocalRecord(id=2, owner_id=1, artist="pink floyd", title=" the wall ")
    assert group_key(a) == group_key(b) == "pink floyd::the wall"


def test_candidate_terms():
    strategy = SubstringMatchStrategy()
    terms = strategy.candidate_terms(
        RemoteEntry(
            external_id=1,
            title="The Dark Side Of The Moon",
            artists=["Pink Floyd", "Alan Parsons"],
        )
    )
    assert terms.artist == "Pink Floyd"
    assert terms.title == "The Dark Side"


def test_pick_prefers_title_prefix_match():
    strategy = SubstringMatchStrategy()
    loose = LocalRecord(id=1, owner_id=1, artist="Miles Davis", title="Kind of Blue Sessions Bootleg")
    tight = LocalRecord(id=2, owner_id=1, artist="Miles Davis", title="Kind of Blue (Legacy Edition)")
    remote = _entry("Miles Davis", "Kind of Blue (Legacy Edition)")

    assert strategy.pick([loose, tight], remote) is tight


def test_pick_falls_back_to_first():
    strategy = SubstringMatchStrategy()
    first = LocalRecord(id=1, owner_id=1, artist="Miles Davis", title="Kind of Blue")
    second = LocalRecord(id=2, owner_id=1, artist="Miles Davis", title="Kind of Blue LP")
    remote = _entry("Miles Davis", "Kind of Blue (Remaster)")

    assert strategy.pick([first, second], remote) is first
    assert strategy.pick([], remote) is None
