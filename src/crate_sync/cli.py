"""CLI for crate-sync using Typer and Rich.

Commands to link a Discogs account, mirror the collection into the local
catalog, and clean up duplicate records afterwards.
"""

from __future__ import annotations

import json
import logging
import sys
from enum import StrEnum
from pathlib import Path
from typing import Annotated, Any, cast

import typer
from rich.console import Console

from crate_sync.config import Config
from crate_sync.console import (
    counts_table,
    page_progress,
    print_error,
    print_errors,
    print_success,
    set_console,
)
from crate_sync.console import print as cprint
from crate_sync.dedupe import DuplicateConsolidator
from crate_sync.discogs import DiscogsCollectionReader
from crate_sync.errors import CollectionNotFoundError, CrateSyncError, NotLinkedError
from crate_sync.notes import NoteCleaner
from crate_sync.records_db import Owner, RecordsDB
from crate_sync.safe_logging import configure_rich_logging
from crate_sync.sync import CollectionSync


class OutputFormat(StrEnum):
    """Output format for CLI commands."""

    TEXT = "text"
    JSON = "json"


class ExitCode:
    """Standard exit codes for CLI commands."""

    SUCCESS = 0
    ERROR = 1
    NO_RESULTS = 2


app = typer.Typer(
    name="crate",
    help="crate-sync: mirror your Discogs collection and clean up duplicate records",
    no_args_is_help=True,
    add_completion=False,
)

owner_app = typer.Typer(help="Local owners and Discogs account links")
collections_app = typer.Typer(help="Collection management")

app.add_typer(owner_app, name="owner")
app.add_typer(collections_app, name="collections")


class AppState:
    """Global application state passed between commands."""

    config: Config
    output_format: OutputFormat
    verbose: int


state = AppState()


def _open_db() -> RecordsDB:
    return RecordsDB(state.config.database.records_path)


def _make_reader(owner: Owner) -> DiscogsCollectionReader:
    if not owner.is_linked:
        raise NotLinkedError(owner.id)
    return DiscogsCollectionReader(
        username=cast(str, owner.discogs_username),
        token=owner.discogs_token,
        config=state.config.discogs,
    )


def _require_owner(db: RecordsDB, username: str) -> Owner:
    owner = db.get_owner_by_username(username)
    if owner is None:
        print_error(f"Unknown owner: {username}")
        sys.exit(ExitCode.ERROR)
    return owner


def _emit_json(data: dict[str, Any] | list[Any]) -> None:
    # Plain echo: Rich would wrap long lines and parse brackets as markup
    typer.echo(json.dumps(data, indent=2, default=str))


@app.callback()
def main(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", help="Path to configuration TOML file", exists=True),
    ] = None,
    output: Annotated[
        OutputFormat,
        typer.Option("--output", "-o", help="Output format"),
    ] = OutputFormat.TEXT,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="Increase verbosity"),
    ] = 0,
    db: Annotated[Path | None, typer.Option("--db", help="Records database path")] = None,
    details: Annotated[
        bool | None,
        typer.Option("--details/--no-details", help="Fetch full release data per item"),
    ] = None,
    page_delay: Annotated[
        float | None, typer.Option(help="Seconds between collection page requests")
    ] = None,
    detail_delay: Annotated[
        float | None, typer.Option(help="Seconds between release detail requests")
    ] = None,
) -> None:
    """crate-sync: mirror your Discogs collection and clean up duplicate records."""
    logger = logging.getLogger(__name__)

    # Load config (TOML + env vars)
    cfg = Config.load(config_path)

    # CLI > Env > Config File > Defaults
    if db:
        cfg.database.records_path = db
    if details is not None:
        cfg.sync.fetch_details = details
    if page_delay is not None:
        cfg.discogs.page_delay_s = page_delay
    if detail_delay is not None:
        cfg.discogs.detail_delay_s = detail_delay

    if verbose > 0:
        log_level = logging.DEBUG if verbose >= 2 else logging.INFO
    else:
        log_level = getattr(logging, cfg.logging.level.upper(), logging.WARNING)

    # Logs go to stderr, command output to stdout
    configure_rich_logging(
        level=log_level,
        format_string=cfg.logging.format,
        redact_secrets=cfg.logging.redact_secrets,
    )
    set_console(Console())

    # Suppress external library logging unless very verbose (-vvv)
    if verbose < 3:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    if config_path:
        logger.info(f"Loaded config from {config_path}")
    logger.debug(f"Logging configured: level={logging.getLevelName(log_level)}")

    state.config = cfg
    state.output_format = output
    state.verbose = verbose


# ====================================================================
# OWNER COMMANDS
# ====================================================================


@owner_app.command("add")
def owner_add(
    username: Annotated[str, typer.Argument(help="Local username")],
    discogs_username: Annotated[
        str | None, typer.Option(help="Discogs username (default: DISCOGS_USERNAME)")
    ] = None,
    token: Annotated[
        str | None, typer.Option(help="Discogs personal access token (default: DISCOGS_TOKEN)")
    ] = None,
) -> None:
    """Create a local owner, optionally linked to a Discogs account."""
    db = _open_db()
    if db.get_owner_by_username(username):
        print_error(f"Owner already exists: {username}")
        sys.exit(ExitCode.ERROR)

    discogs_username = discogs_username or state.config.discogs.username
    token = token or state.config.discogs.token
    owner = db.create_owner(username, discogs_username, token if discogs_username else None)
    if state.output_format == OutputFormat.JSON:
        _emit_json({"id": owner.id, "username": owner.username, "linked": owner.is_linked})
    else:
        print_success(f"Created owner {owner.username} (id {owner.id})")


@owner_app.command("link")
def owner_link(
    username: Annotated[str, typer.Argument(help="Local username")],
    discogs_username: Annotated[
        str | None, typer.Option(help="Discogs username (default: DISCOGS_USERNAME)")
    ] = None,
    token: Annotated[
        str | None, typer.Option(help="Discogs personal access token (default: DISCOGS_TOKEN)")
    ] = None,
) -> None:
    """Link an owner to a Discogs account."""
    db = _open_db()
    owner = _require_owner(db, username)

    discogs_username = discogs_username or state.config.discogs.username
    if not discogs_username:
        print_error("No Discogs username given (use --discogs-username or DISCOGS_USERNAME)")
        sys.exit(ExitCode.ERROR)

    token = token or state.config.discogs.token
    if not token:
        print_error("No Discogs token given (use --token or DISCOGS_TOKEN)")
        sys.exit(ExitCode.ERROR)

    db.link_discogs(owner.id, discogs_username, token)
    print_success(f"Linked {username} to Discogs user {discogs_username}")


# ====================================================================
# MAIN COMMANDS
# ====================================================================


@app.command()
def sync(
    username: Annotated[str, typer.Argument(help="Local username to sync")],
) -> None:
    """Mirror the owner's Discogs collection into the local catalog.

    New releases are added to the default collection; hand-entered records
    that match a release are linked and their empty fields filled.

    Examples:
        crate sync alice
        crate --no-details -o json sync alice
    """
    db = _open_db()
    owner = _require_owner(db, username)

    try:
        with _make_reader(owner) as reader:
            syncer = CollectionSync(db, reader, state.config.sync)
            if state.output_format == OutputFormat.JSON:
                summary = syncer.sync_collection(owner.id)
            else:
                with page_progress() as progress:
                    summary = syncer.sync_collection(owner.id, progress=progress)
    except CrateSyncError as exc:
        print_error(str(exc))
        sys.exit(ExitCode.ERROR)

    if state.output_format == OutputFormat.JSON:
        _emit_json(summary.to_dict())
        return

    cprint(
        counts_table(
            "Collection sync completed",
            [
                ("Created", summary.created),
                ("Updated", summary.updated),
                ("Already synced", summary.skipped),
                ("Pages", summary.pages_fetched),
                ("Errors", summary.error_count),
            ],
        )
    )
    print_errors(list(summary.errors), state.config.sync.max_reported_errors)


@app.command()
def dedupe(
    username: Annotated[str, typer.Argument(help="Local username")],
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Only list duplicate groups")] = False,
) -> None:
    """Merge duplicate records (same artist and title) into one record each.

    The record linked to Discogs is kept when there is one, otherwise the
    most complete record. Empty fields are filled from the removed copies.
    """
    db = _open_db()
    owner = _require_owner(db, username)
    consolidator = DuplicateConsolidator(
        db, max_reported_errors=state.config.sync.max_reported_errors
    )

    if dry_run:
        groups = consolidator.find_duplicate_groups(owner.id)
        if state.output_format == OutputFormat.JSON:
            _emit_json(
                [{"key": g.key, "record_ids": [r.id for r in g.records]} for g in groups]
            )
        else:
            if not groups:
                print_success("No duplicates found")
            for group in groups:
                cprint(f"[bold]{group.key}[/bold]: {len(group.records)} records")
        sys.exit(ExitCode.SUCCESS if groups else ExitCode.NO_RESULTS)

    summary = consolidator.consolidate_duplicates(owner.id)
    if state.output_format == OutputFormat.JSON:
        _emit_json(summary.to_dict())
        return

    cprint(
        counts_table(
            "Duplicate cleanup completed",
            [("Groups merged", summary.merged_groups), ("Records removed", summary.removed_records)],
        )
    )
    print_errors(summary.errors, state.config.sync.max_reported_errors)


@app.command()
def stats(
    username: Annotated[str, typer.Argument(help="Local username")],
    sample: Annotated[int, typer.Option(help="Number of releases to sample")] = 20,
) -> None:
    """Show the size of the owner's Discogs collection and a sample of it."""
    db = _open_db()
    owner = _require_owner(db, username)

    try:
        with _make_reader(owner) as reader:
            result = reader.collection_stats(sample_size=sample)
    except CrateSyncError as exc:
        print_error(str(exc))
        sys.exit(ExitCode.ERROR)

    if state.output_format == OutputFormat.JSON:
        _emit_json(result.to_dict())
        return

    cprint(f"[bold]{result.total_items}[/bold] releases in Discogs collection")
    cprint(f"Local records: {db.count_records(owner.id)}")
    for entry in result.sample:
        year = f" ({entry.year})" if entry.year else ""
        cprint(f"  {entry.artist} - {entry.title}{year}")


@app.command()
def check(
    username: Annotated[str, typer.Argument(help="Local username")],
    release_id: Annotated[int, typer.Argument(help="Discogs release id")],
) -> None:
    """Check whether a Discogs release is already in the local catalog."""
    db = _open_db()
    owner = _require_owner(db, username)
    matches = db.find_by_external_id_all(owner.id, release_id)

    if state.output_format == OutputFormat.JSON:
        _emit_json(
            [
                {
                    "id": record.id,
                    "artist": record.artist,
                    "title": record.title,
                    "collection": (
                        {"id": c.id, "title": c.title, "is_default": c.is_default} if c else None
                    ),
                }
                for record, c in matches
            ]
        )
    elif not matches:
        cprint(f"Release {release_id} is not in the catalog")
    else:
        for record, collection in matches:
            where = collection.title if collection else "no collection"
            cprint(f"  #{record.id} {record.artist} - {record.title} [{where}]")

    sys.exit(ExitCode.SUCCESS if matches else ExitCode.NO_RESULTS)


@app.command("clean-notes")
def clean_notes(
    username: Annotated[
        str | None, typer.Argument(help="Local username (default: all owners)")
    ] = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Only report")] = False,
) -> None:
    """Clear personal notes that contain Discogs release notes."""
    db = _open_db()
    owner_id = _require_owner(db, username).id if username else None

    report = NoteCleaner(db).clean(owner_id, dry_run=dry_run)
    if state.output_format == OutputFormat.JSON:
        _emit_json(report.to_dict())
        return

    cprint(
        counts_table(
            "Personal note check",
            [
                ("Records with notes", report.checked),
                ("Contaminated", len(report.contaminated_ids)),
                ("Cleaned", report.cleaned),
                ("Clean notes remaining", report.clean_remaining),
            ],
        )
    )


# ====================================================================
# COLLECTION COMMANDS
# ====================================================================


@collections_app.command("list")
def collections_list(
    username: Annotated[str, typer.Argument(help="Local username")],
) -> None:
    """List the owner's collections."""
    db = _open_db()
    owner = _require_owner(db, username)
    collections = db.list_collections(owner.id)

    if state.output_format == OutputFormat.JSON:
        _emit_json(
            [{"id": c.id, "title": c.title, "is_default": c.is_default} for c in collections]
        )
        return

    for collection in collections:
        marker = " [green](default)[/green]" if collection.is_default else ""
        cprint(f"  {collection.id}: {collection.title}{marker}")


@collections_app.command("set-default")
def collections_set_default(
    username: Annotated[str, typer.Argument(help="Local username")],
    collection_id: Annotated[int, typer.Argument(help="Collection id")],
) -> None:
    """Make a collection the owner's default."""
    db = _open_db()
    owner = _require_owner(db, username)
    try:
        db.set_default_collection(owner.id, collection_id)
    except CollectionNotFoundError as exc:
        print_error(str(exc))
        sys.exit(ExitCode.ERROR)
    print_success(f"Collection {collection_id} is now the default")

