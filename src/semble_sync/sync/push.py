"""Push phase: create or update remote cards from local objects.

For every selected object:

1. No URL -> skipped.
2. No reference (or a deleted one) -> create the card, link it to the
   project collection and every tag collection, record a ``push``
   reference.
3. Unchanged hash -> skipped, unless ``force``.
4. Changed hash -> read the remote card.  A missing card is re-created.
   A CID other than the last known one is a conflict handed to the
   configured resolver.  Otherwise the card is updated and its collection
   links reconciled.

Error handling is per-object: a failed remote call is recorded as a
``SyncError`` and the loop moves on.
"""

from __future__ import annotations

import logging

from semble_sync.sync.context import SyncContext
from semble_sync.sync.mapper import (
    compute_card_hash,
    extract_collection_tags,
    get_local_id,
    object_to_card,
)
from semble_sync.sync.models import (
    ErrorDirection,
    PushOutcome,
    SyncConflict,
    SyncDirection,
    SyncedReference,
    SyncError,
    UrlCard,
    card_to_record,
)
from semble_sync.sync.resolver import ConflictResolver, Resolution, create_resolver
from semble_sync.sync.state import utc_now
from semble_sync.vault import VaultObject

logger = logging.getLogger(__name__)


class PushEngine:
    """Push local objects to the remote repository.

    Args:
        ctx: The run context; references are written to ``ctx.state``.
        resolver: Conflict resolver.  Defaults to the one named by
            ``ctx.options.merge_strategy``.
    """

    def __init__(
        self, ctx: SyncContext, resolver: ConflictResolver | None = None
    ) -> None:
        self.ctx = ctx
        self.resolver = resolver or create_resolver(ctx.options.merge_strategy)
        self._reset()

    def _reset(self) -> None:
        self.pushed = 0
        self.updated = 0
        self.skipped = 0
        self.conflicts: list[SyncConflict] = []
        self.errors: list[SyncError] = []

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(self, objects: list[VaultObject]) -> PushOutcome:
        self._reset()
        ctx = self.ctx

        for obj in objects:
            local_id = get_local_id(obj)
            card = object_to_card(obj)
            if card is None:
                ctx.log("  Skipping %s (no URL)", local_id)
                self.skipped += 1
                continue

            existing = ctx.store.get_reference(ctx.state, local_id)
            direction = (
                ErrorDirection.PUSH
                if existing is None or existing.deleted
                else ErrorDirection.UPDATE
            )
            try:
                if direction is ErrorDirection.PUSH:
                    self._create(obj, local_id, card)
                else:
                    self._push_existing(obj, local_id, card, existing)
            except Exception as exc:
                logger.error("Error pushing %s: %s", local_id, exc)
                self.errors.append(
                    SyncError(id=local_id, error=str(exc), direction=direction)
                )

        if self.updated:
            ctx.log("  Updated %d existing cards", self.updated)
        if self.conflicts:
            ctx.log("  Found %d conflicts", len(self.conflicts))

        return PushOutcome(
            pushed=self.pushed,
            updated=self.updated,
            skipped=self.skipped,
            conflicts=self.conflicts,
            errors=self.errors,
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def _create(self, obj: VaultObject, local_id: str, card: UrlCard) -> None:
        ctx = self.ctx
        if ctx.options.dry_run:
            ctx.log("  [dry-run] Would push: %s", local_id)
            self.pushed += 1
            return

        ctx.log("  Pushing: %s", local_id)
        result = ctx.client.create_card(card_to_record(card))

        linked: list[str] = []
        for name in ctx.desired_collection_names(extract_collection_tags(obj)):
            coll = ctx.collections.get(name)
            if coll is None:
                continue
            try:
                ctx.client.link_card_to_collection(
                    result["uri"], result["cid"], coll["uri"], coll["cid"]
                )
                linked.append(coll["uri"])
            except Exception as exc:
                logger.warning("Failed to link %s to %s: %s", local_id, name, exc)
                self.errors.append(
                    SyncError(
                        id=local_id,
                        error=f"Failed to link to collection {name}: {exc}",
                        direction=ErrorDirection.PUSH,
                    )
                )

        ctx.store.put_reference(
            ctx.state,
            SyncedReference(
                local_id=local_id,
                uri=result["uri"],
                cid=result["cid"],
                content_hash=compute_card_hash(card),
                synced_at=utc_now(),
                direction=SyncDirection.PUSH,
                remote_cid=result["cid"],
                collection_uris=linked,
            ),
        )
        self.pushed += 1

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def _push_existing(
        self,
        obj: VaultObject,
        local_id: str,
        card: UrlCard,
        existing: SyncedReference,
    ) -> None:
        ctx = self.ctx
        current_hash = compute_card_hash(card)
        local_changed = existing.content_hash != current_hash

        if not local_changed and not ctx.options.force:
            self.skipped += 1
            return

        if local_changed:
            remote = ctx.client.get_card(existing.uri)
            if remote is None:
                ctx.log("  Remote card for %s was deleted, re-creating", local_id)
                self._create(obj, local_id, card)
                return

            if remote["cid"] != existing.last_known_cid:
                ctx.log("  Conflict detected: %s", local_id)
                conflict = SyncConflict(
                    id=local_id, local_hash=current_hash, remote_cid=remote["cid"]
                )
                self.conflicts.append(conflict)
                resolution = self.resolver.resolve(conflict)
                if resolution is Resolution.FAIL:
                    self.errors.append(
                        SyncError(
                            id=local_id,
                            error="Conflict detected: both local and remote have changed",
                            direction=ErrorDirection.UPDATE,
                        )
                    )
                    return
                if resolution is not Resolution.OVERWRITE:
                    self.skipped += 1
                    return

        if ctx.options.dry_run:
            ctx.log("  [dry-run] Would update: %s", local_id)
            self.updated += 1
            return

        ctx.log("  Updating: %s", local_id)
        result = ctx.client.update_card(existing.uri, card_to_record(card))
        collection_uris = self._reconcile_links(obj, local_id, existing, result)

        ctx.store.put_reference(
            ctx.state,
            existing.model_copy(
                update={
                    "uri": result["uri"],
                    "cid": result["cid"],
                    "content_hash": current_hash,
                    "remote_cid": result["cid"],
                    "synced_at": utc_now(),
                    "direction": SyncDirection.PUSH,
                    "collection_uris": collection_uris,
                }
            ),
        )
        self.updated += 1

    def _reconcile_links(
        self,
        obj: VaultObject,
        local_id: str,
        existing: SyncedReference,
        result: dict[str, str],
    ) -> list[str]:
        """Link newly required collections, unlink dropped managed ones.

        Returns:
            Collection URIs the card is linked to afterwards.
        """
        ctx = self.ctx
        previous = set(existing.collection_uris)
        managed = ctx.managed_collection_uris()

        desired: dict[str, dict[str, str]] = {}
        for name in ctx.desired_collection_names(extract_collection_tags(obj)):
            coll = ctx.collections.get(name)
            if coll is not None:
                desired[name] = coll
        desired_uris = {coll["uri"] for coll in desired.values()}

        linked: list[str] = []
        for name, coll in desired.items():
            if coll["uri"] in previous:
                linked.append(coll["uri"])
                continue
            try:
                ctx.log("    Linking to collection: %s", name)
                ctx.client.link_card_to_collection(
                    result["uri"], result["cid"], coll["uri"], coll["cid"]
                )
                linked.append(coll["uri"])
            except Exception as exc:
                logger.warning("Failed to link %s to %s: %s", local_id, name, exc)
                self.errors.append(
                    SyncError(
                        id=local_id,
                        error=f"Failed to link to collection {name}: {exc}",
                        direction=ErrorDirection.UPDATE,
                    )
                )

        for uri in sorted(previous - desired_uris):
            if uri not in managed:
                linked.append(uri)
                continue
            try:
                ctx.log("    Unlinking from collection: %s", uri)
                ctx.client.unlink_card_from_collection(existing.uri, uri)
            except Exception as exc:
                logger.warning("Failed to unlink %s from %s: %s", local_id, uri, exc)
                self.errors.append(
                    SyncError(
                        id=local_id,
                        error=f"Failed to unlink from collection {uri}: {exc}",
                        direction=ErrorDirection.UPDATE,
                    )
                )
                linked.append(uri)

        return linked
