"""Delete propagation: remove remote cards of locally removed objects.

Only references created by a push are candidates; pulled references never
cause remote deletion.  A deleted reference is kept with ``deleted: true``
so the sync history survives.
"""

from __future__ import annotations

import logging

from semble_sync.core.client import LEXICON_CARD
from semble_sync.sync.context import SyncContext
from semble_sync.sync.mapper import get_local_id
from semble_sync.sync.models import (
    DeleteOutcome,
    ErrorDirection,
    SyncDirection,
    SyncedReference,
    SyncError,
)
from semble_sync.sync.state import utc_now
from semble_sync.validators import parse_at_uri
from semble_sync.vault import VaultObject

logger = logging.getLogger(__name__)


class DeletePropagator:
    """Delete remote cards whose pushed local object no longer exists."""

    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    def find_candidates(
        self, objects: list[VaultObject]
    ) -> list[SyncedReference]:
        """Live ``push`` references whose local id is absent from *objects*."""
        present = {get_local_id(obj) for obj in objects}
        return [
            ref
            for ref in self.ctx.store.iter_references(self.ctx.state)
            if ref.direction is SyncDirection.PUSH
            and not ref.deleted
            and ref.local_id not in present
        ]

    def run(self, objects: list[VaultObject]) -> DeleteOutcome:
        ctx = self.ctx
        candidates = self.find_candidates(objects)
        if not candidates:
            return DeleteOutcome()

        ctx.log("  Found %d locally deleted objects", len(candidates))

        deleted = 0
        errors: list[SyncError] = []
        for ref in candidates:
            if ctx.options.dry_run:
                ctx.log("  [dry-run] Would delete from remote: %s", ref.local_id)
                deleted += 1
                continue

            try:
                ctx.log("  Deleting from remote: %s", ref.local_id)
                rkey = parse_at_uri(ref.uri).rkey
                if not ctx.client.delete_record(LEXICON_CARD, rkey):
                    errors.append(
                        SyncError(
                            id=ref.local_id,
                            error="Failed to delete remote record",
                            direction=ErrorDirection.DELETE,
                        )
                    )
                    continue
            except Exception as exc:
                logger.error("Error deleting %s: %s", ref.local_id, exc)
                errors.append(
                    SyncError(
                        id=ref.local_id,
                        error=str(exc),
                        direction=ErrorDirection.DELETE,
                    )
                )
                continue

            ctx.store.put_reference(
                ctx.state,
                ref.model_copy(update={"deleted": True, "synced_at": utc_now()}),
            )
            deleted += 1

        if deleted:
            ctx.log("  Deleted %d cards from remote", deleted)
        return DeleteOutcome(deleted=deleted, errors=errors)
