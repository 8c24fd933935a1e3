"""
Records database: owners, collections and the local catalog.

SQLite store for the user's physical records. Genres and track lists are
kept as JSON text columns; an empty genre list is stored as ``"[]"``.
"""

from __future__ import annotations

import json
import sqlite3
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from crate_sync.errors import CollectionNotFoundError

EMPTY_GENRES = "[]"


@dataclass
class Owner:
    """A local user and their linked Discogs account."""

    id: int
    username: str
    discogs_username: str | None = None
    discogs_token: str | None = None

    @property
    def is_linked(self) -> bool:
        return bool(self.discogs_username and self.discogs_token)


@dataclass
class Collection:
    id: int
    owner_id: int
    title: str
    description: str | None = None
    is_default: bool = False
    is_public: bool = False
    created_at: float | None = None


@dataclass
class LocalRecord:
    """A user-owned catalog entry."""

    id: int | None
    owner_id: int
    artist: str
    title: str
    collection_id: int | None = None
    external_id: int | None = None
    year: int | None = None
    image_url: str | None = None
    genres: list[str] = field(default_factory=list)
    label: str | None = None
    format_name: str | None = None
    catalog_number: str | None = None
    country: str | None = None
    track_list: list[dict[str, Any]] | None = None
    description_note: str | None = None
    rating: int | None = None
    condition: str | None = None
    purchase_date: str | None = None
    purchase_price: float | None = None
    purchase_currency: str | None = None
    purchase_location: str | None = None
    created_at: float | None = None
    updated_at: float | None = None


# Columns in table order; the dataclass field names match the column names.
RECORD_COLUMNS = tuple(f.name for f in fields(LocalRecord))


def _record_to_row(record: LocalRecord) -> dict[str, Any]:
    row = {name: getattr(record, name) for name in RECORD_COLUMNS}
    row["genres"] = json.dumps(record.genres or [])
    row["track_list"] = json.dumps(record.track_list) if record.track_list is not None else None
    return row


def _row_to_record(row: sqlite3.Row) -> LocalRecord:
    data = dict(row)
    data["genres"] = json.loads(data["genres"] or EMPTY_GENRES)
    data["track_list"] = json.loads(data["track_list"]) if data["track_list"] else None
    return LocalRecord(**data)


def _row_to_collection(row: sqlite3.Row) -> Collection:
    data = dict(row)
    data["is_default"] = bool(data["is_default"])
    data["is_public"] = bool(data["is_public"])
    return Collection(**data)


class RecordsDB:
    """
    SQLite database for the local catalog.

    Provides schema creation and CRUD operations for:
    - owner: local users and Discogs links
    - collection: named groups of records, one default per owner
    - record: catalog entries
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with foreign keys enabled."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def _db_connection(self, exclusive: bool = False) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database connections.

        Commits on success, rolls back on error, always closes.

        Args:
            exclusive: If True, sets isolation level to EXCLUSIVE for
                      atomic read-modify-write sequences.
        """
        conn = self._get_connection()
        if exclusive:
            conn.isolation_level = "EXCLUSIVE"
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._db_connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS owner (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE,
                    discogs_username TEXT,
                    discogs_token TEXT
                );

                CREATE TABLE IF NOT EXISTS collection (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    is_default INTEGER NOT NULL DEFAULT 0,
                    is_public INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    FOREIGN KEY (owner_id) REFERENCES owner(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_collection_owner
                    ON collection(owner_id, is_default);

                CREATE TABLE IF NOT EXISTS record (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id INTEGER NOT NULL,
                    artist TEXT NOT NULL,
                    title TEXT NOT NULL,
                    collection_id INTEGER,
                    external_id INTEGER,
                    year INTEGER,
                    image_url TEXT,
                    genres TEXT NOT NULL DEFAULT '[]',
                    label TEXT,
                    format_name TEXT,
                    catalog_number TEXT,
                    country TEXT,
                    track_list TEXT,
                    description_note TEXT,
                    rating INTEGER,
                    condition TEXT,
                    purchase_date TEXT,
                    purchase_price REAL,
                    purchase_currency TEXT,
                    purchase_location TEXT,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    FOREIGN KEY (owner_id) REFERENCES owner(id) ON DELETE CASCADE,
                    FOREIGN KEY (collection_id) REFERENCES collection(id) ON DELETE SET NULL
                );

                CREATE INDEX IF NOT EXISTS idx_record_owner_external
                    ON record(owner_id, external_id);
                CREATE INDEX IF NOT EXISTS idx_record_owner_created
                    ON record(owner_id, created_at);

                CREATE TABLE IF NOT EXISTS schema_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );

                INSERT OR IGNORE INTO schema_meta (key, value)
                    VALUES ('db_version_records', '1');
                """
            )

    # Owners

    def create_owner(
        self,
        username: str,
        discogs_username: str | None = None,
        discogs_token: str | None = None,
    ) -> Owner:
        with self._db_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO owner (username, discogs_username, discogs_token) VALUES (?, ?, ?)",
                (username, discogs_username, discogs_token),
            )
            owner_id = cursor.lastrowid
        assert owner_id is not None
        return Owner(owner_id, username, discogs_username, discogs_token)

    def get_owner(self, owner_id: int) -> Owner | None:
        with self._db_connection() as conn:
            row = conn.execute("SELECT * FROM owner WHERE id = ?", (owner_id,)).fetchone()
        return Owner(**dict(row)) if row else None

    def get_owner_by_username(self, username: str) -> Owner | None:
        with self._db_connection() as conn:
            row = conn.execute("SELECT * FROM owner WHERE username = ?", (username,)).fetchone()
        return Owner(**dict(row)) if row else None

    def link_discogs(self, owner_id: int, discogs_username: str, discogs_token: str) -> None:
        with self._db_connection() as conn:
            conn.execute(
                "UPDATE owner SET discogs_username = ?, discogs_token = ? WHERE id = ?",
                (discogs_username, discogs_token, owner_id),
            )

    # Collections

    def get_default_collection(self, owner_id: int) -> Collection | None:
        with self._db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM collection WHERE owner_id = ? AND is_default = 1 ORDER BY id LIMIT 1",
                (owner_id,),
            ).fetchone()
        return _row_to_collection(row) if row else None

    def create_collection(
        self,
        owner_id: int,
        title: str,
        description: str | None = None,
        is_default: bool = False,
        is_public: bool = False,
    ) -> Collection:
        now = time.time()
        with self._db_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO collection (owner_id, title, description, is_default, is_public, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (owner_id, title, description, int(is_default), int(is_public), now),
            )
            collection_id = cursor.lastrowid
        assert collection_id is not None
        return Collection(collection_id, owner_id, title, description, is_default, is_public, now)

    def ensure_default_collection(
        self,
        owner_id: int,
        title: str = "Discogs Collection",
        description: str | None = "Synced from Discogs",
    ) -> tuple[Collection, bool]:
        """
        Get the owner's default collection, creating it if absent.

        A newly created default collection adopts the owner's records that
        have no collection.

        Returns:
            Tuple of (collection, created)
        """
        with self._db_connection(exclusive=True) as conn:
            row = conn.execute(
                "SELECT * FROM collection WHERE owner_id = ? AND is_default = 1 ORDER BY id LIMIT 1",
                (owner_id,),
            ).fetchone()
            if row:
                return _row_to_collection(row), False

            now = time.time()
            cursor = conn.execute(
                """
                INSERT INTO collection (owner_id, title, description, is_default, is_public, created_at)
                VALUES (?, ?, ?, 1, 0, ?)
                """,
                (owner_id, title, description, now),
            )
            collection_id = cursor.lastrowid
            assert collection_id is not None
            conn.execute(
                "UPDATE record SET collection_id = ? WHERE owner_id = ? AND collection_id IS NULL",
                (collection_id, owner_id),
            )
        return Collection(collection_id, owner_id, title, description, True, False, now), True

    def set_default_collection(self, owner_id: int, collection_id: int) -> None:
        """
        Make a collection the owner's only default.

        Raises:
            CollectionNotFoundError: If the collection does not belong to the owner
        """
        with self._db_connection(exclusive=True) as conn:
            row = conn.execute(
                "SELECT id FROM collection WHERE id = ? AND owner_id = ?",
                (collection_id, owner_id),
            ).fetchone()
            if not row:
                raise CollectionNotFoundError(collection_id)
            conn.execute(
                "UPDATE collection SET is_default = 0 WHERE owner_id = ? AND is_default = 1",
                (owner_id,),
            )
            conn.execute("UPDATE collection SET is_default = 1 WHERE id = ?", (collection_id,))

    def list_collections(self, owner_id: int) -> list[Collection]:
        with self._db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM collection WHERE owner_id = ? ORDER BY is_default DESC, id",
                (owner_id,),
            ).fetchall()
        return [_row_to_collection(row) for row in rows]

    def get_collection(self, collection_id: int) -> Collection | None:
        with self._db_connection() as conn:
            row = conn.execute("SELECT * FROM collection WHERE id = ?", (collection_id,)).fetchone()
        return _row_to_collection(row) if row else None

    # Records

    def create_record(self, record: LocalRecord) -> LocalRecord:
        """Insert a record; timestamps default to now. Returns the stored record."""
        now = time.time()
        row = _record_to_row(record)
        row.pop("id")
        row["created_at"] = record.created_at if record.created_at is not None else now
        row["updated_at"] = record.updated_at if record.updated_at is not None else row["created_at"]

        columns = ", ".join(row)
        placeholders = ", ".join(f":{name}" for name in row)
        with self._db_connection() as conn:
            cursor = conn.execute(f"INSERT INTO record ({columns}) VALUES ({placeholders})", row)
            record_id = cursor.lastrowid
            stored = conn.execute("SELECT * FROM record WHERE id = ?", (record_id,)).fetchone()
        return _row_to_record(stored)

    def update_record(self, record: LocalRecord, columns: Iterable[str] | None = None) -> None:
        """
        Persist a record.

        Args:
            record: Record with id set
            columns: Columns to write (default: all mutable columns)
        """
        if record.id is None:
            raise ValueError("cannot update a record without id")

        immutable = {"id", "owner_id", "created_at", "updated_at"}
        requested = RECORD_COLUMNS if columns is None else columns
        names = [c for c in requested if c not in immutable]
        if not names:
            return

        row = _record_to_row(record)
        values = {name: row[name] for name in names}
        values["updated_at"] = time.time()
        values["id"] = record.id
        assignments = ", ".join(f"{name} = :{name}" for name in [*names, "updated_at"])

        with self._db_connection() as conn:
            cursor = conn.execute(f"UPDATE record SET {assignments} WHERE id = :id", values)
            if cursor.rowcount == 0:
                raise LookupError(f"Record {record.id} not found")

    def get_record(self, record_id: int) -> LocalRecord | None:
        with self._db_connection() as conn:
            row = conn.execute("SELECT * FROM record WHERE id = ?", (record_id,)).fetchone()
        return _row_to_record(row) if row else None

    def find_by_external_id(self, owner_id: int, external_id: int) -> LocalRecord | None:
        """First record of the owner linked to ``external_id``."""
        with self._db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM record WHERE owner_id = ? AND external_id = ? ORDER BY created_at, id LIMIT 1",
                (owner_id, external_id),
            ).fetchone()
        return _row_to_record(row) if row else None

    def find_by_external_id_all(
        self, owner_id: int, external_id: int
    ) -> list[tuple[LocalRecord, Collection | None]]:
        """All records of the owner linked to ``external_id``, with their collection."""
        with self._db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM record WHERE owner_id = ? AND external_id = ? ORDER BY created_at, id",
                (owner_id, external_id),
            ).fetchall()
        results: list[tuple[LocalRecord, Collection | None]] = []
        for row in rows:
            record = _row_to_record(row)
            collection = self.get_collection(record.collection_id) if record.collection_id else None
            results.append((record, collection))
        return results

    def find_unlinked_containing(
        self, owner_id: int, artist_term: str, title_term: str
    ) -> list[LocalRecord]:
        """
        Records without an external id whose artist and title contain the terms.

        Matching is case-insensitive substring containment using Unicode case
        folding (SQLite's lower() only folds ASCII); results are in creation
        order.
        """
        artist_folded = artist_term.casefold()
        title_folded = title_term.casefold()
        with self._db_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM record
                WHERE owner_id = ? AND external_id IS NULL
                ORDER BY created_at, id
                """,
                (owner_id,),
            ).fetchall()
        return [
            _row_to_record(row)
            for row in rows
            if artist_folded in row["artist"].casefold()
            and title_folded in row["title"].casefold()
        ]

    def list_records(self, owner_id: int) -> list[LocalRecord]:
        """All records of the owner, oldest first."""
        with self._db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM record WHERE owner_id = ? ORDER BY created_at, id",
                (owner_id,),
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def list_records_with_notes(self, owner_id: int | None = None) -> list[LocalRecord]:
        query = "SELECT * FROM record WHERE description_note IS NOT NULL"
        params: tuple[Any, ...] = ()
        if owner_id is not None:
            query += " AND owner_id = ?"
            params = (owner_id,)
        with self._db_connection() as conn:
            rows = conn.execute(query + " ORDER BY id", params).fetchall()
        return [_row_to_record(row) for row in rows]

    def delete_records(self, owner_id: int, record_ids: Iterable[int]) -> int:
        """Delete the owner's records by id. Returns number deleted."""
        ids = list(record_ids)
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        with self._db_connection() as conn:
            cursor = conn.execute(
                f"DELETE FROM record WHERE owner_id = ? AND id IN ({placeholders})",
                (owner_id, *ids),
            )
            return cursor.rowcount

    def count_records(self, owner_id: int) -> int:
        with self._db_connection() as conn:
            row = conn.execute("SELECT COUNT(*) FROM record WHERE owner_id = ?", (owner_id,)).fetchone()
        return int(row[0])


## Tests


def test_records_db_roundtrip_json_columns(tmp_path):
    db = RecordsDB(tmp_path / "crate.sqlite")
    owner = db.create_owner("alice")

    stored = db.create_record(
        LocalRecord(
            id=None,
            owner_id=owner.id,
            artist="Miles Davis",
            title="Kind of Blue",
            genres=["Jazz"],
            track_list=[{"position": "A1", "title": "So What"}],
        )
    )

    assert stored.id is not None
    assert stored.genres == ["Jazz"]
    assert stored.track_list == [{"position": "A1", "title": "So What"}]
    assert stored.created_at == stored.updated_at


def test_empty_genres_stored_as_sentinel(tmp_path):
    db = RecordsDB(tmp_path / "crate.sqlite")
    owner = db.create_owner("alice")
    stored = db.create_record(LocalRecord(id=None, owner_id=owner.id, artist="A", title="B"))

    conn = db._get_connection()
    raw = conn.execute("SELECT genres FROM record WHERE id = ?", (stored.id,)).fetchone()[0]
    conn.close()
    assert raw == EMPTY_GENRES
