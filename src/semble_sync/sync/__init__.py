"""Batch sync between a local vault and a Semble card repository.

Keeps local markdown objects and remote Semble cards consistent without a
central authority.  Change detection compares each side against what was
recorded at the last sync: the local side by card-content hash, the remote
side by record CID.

Modules:

- ``engine``      -- ``SyncEngine``: orchestrates a full sync run.
- ``state``       -- ``SyncStateStore``: load/save/query JSON state files,
  ``card_hash()``.
- ``mapper``      -- object <-> card conversion and identity helpers.
- ``collections`` -- ``CollectionResolver``: find or create collections.
- ``push``        -- ``PushEngine``: create/update cards, detect conflicts.
- ``deletes``     -- ``DeletePropagator``: delete cards of removed objects.
- ``relink``      -- ``Relinker``: reconcile collection links.
- ``pull``        -- ``PullEngine``: import new remote cards.
- ``resolver``    -- conflict strategies (local-wins, remote-wins,
  skip-conflicts, error-on-conflict).
- ``models``      -- cards, references, options and results.
- ``reporter``    -- human-readable and JSON result formatting.

Usage example
-------------
::

    from pathlib import Path
    from semble_sync.config import load_config
    from semble_sync.core.client import SembleClient
    from semble_sync.sync import SyncEngine, SyncOptions, format_sync_report
    from semble_sync.vault import load_vault_objects

    config = load_config()
    engine = SyncEngine(
        client=SembleClient(config),
        config=config,
        project="shared-references",
        content_root=Path("content"),
    )
    objects = load_vault_objects(Path("content"), "shared-references")

    # Dry-run first to preview changes
    preview = engine.run(objects, SyncOptions(dry_run=True))
    print(format_sync_report(preview))

    result = engine.run(objects)
    print(format_sync_report(result))
"""

from .collections import CollectionResolver
from .deletes import DeletePropagator
from .engine import SyncEngine
from .mapper import compute_object_hash, object_to_card
from .models import (
    MergeStrategy,
    SyncConflict,
    SyncDirection,
    SyncedReference,
    SyncError,
    SyncOptions,
    SyncPhase,
    SyncResult,
)
from .pull import PullEngine
from .push import PushEngine
from .relink import Relinker
from .reporter import format_sync_report, report_to_json
from .state import SyncStateStore

__all__ = [
    "CollectionResolver",
    "DeletePropagator",
    "MergeStrategy",
    "PullEngine",
    "PushEngine",
    "Relinker",
    "SyncConflict",
    "SyncDirection",
    "SyncEngine",
    "SyncError",
    "SyncOptions",
    "SyncPhase",
    "SyncResult",
    "SyncStateStore",
    "SyncedReference",
    "compute_object_hash",
    "format_sync_report",
    "object_to_card",
    "report_to_json",
]
