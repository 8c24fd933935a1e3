__all__ = (
    "app",
    "Config",
    "RecordsDB",
    "LocalRecord",
    "Collection",
    "Owner",
    "DiscogsCollectionReader",
    "RemoteEntry",
    "RemoteDetail",
    "CollectionPage",
    "Pacer",
    "IdentityResolver",
    "SubstringMatchStrategy",
    "group_key",
    "merge_record",
    "patch_from_remote",
    "CollectionSync",
    "SyncSummary",
    "DuplicateConsolidator",
    "ConsolidationSummary",
    "NoteCleaner",
    # Errors
    "CrateSyncError",
    "ProviderError",
    "PreconditionError",
    "OwnerNotFoundError",
    "NotLinkedError",
    "CollectionNotFoundError",
)

from crate_sync.cli import app
from crate_sync.config import Config
from crate_sync.dedupe import ConsolidationSummary, DuplicateConsolidator
from crate_sync.discogs import CollectionPage, DiscogsCollectionReader, RemoteDetail, RemoteEntry
from crate_sync.errors import (
    CollectionNotFoundError,
    CrateSyncError,
    NotLinkedError,
    OwnerNotFoundError,
    PreconditionError,
    ProviderError,
)
from crate_sync.matching import IdentityResolver, SubstringMatchStrategy, group_key
from crate_sync.merge import merge_record, patch_from_remote
from crate_sync.notes import NoteCleaner
from crate_sync.pacing import Pacer
from crate_sync.records_db import Collection, LocalRecord, Owner, RecordsDB
from crate_sync.sync import CollectionSync, SyncSummary
