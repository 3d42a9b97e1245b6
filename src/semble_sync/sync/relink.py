"""Relinking: reconcile collection membership of already-synced cards.

Tag edits change which collections a card belongs to without changing the
card content, so the push phase never sees them.  The relinker fetches all
collection links once, then for every live pushed reference links missing
collections and unlinks collections that are managed by this engine but no
longer wanted.  Collections the engine does not manage are never touched.
"""

from __future__ import annotations

import logging

from semble_sync.sync.context import SyncContext
from semble_sync.sync.mapper import extract_collection_tags, get_local_id
from semble_sync.sync.models import (
    ErrorDirection,
    RelinkOutcome,
    SyncDirection,
    SyncError,
)
from semble_sync.vault import VaultObject

logger = logging.getLogger(__name__)


class Relinker:
    """Reconcile collection links against current local tags."""

    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    def _fetch_links(self) -> dict[str, dict[str, str]]:
        """Map card URI -> {collection URI: link URI} from one bulk listing."""
        links: dict[str, dict[str, str]] = {}
        for link in self.ctx.client.get_all_collection_links():
            value = link["value"]
            card_uri = value["card"]["uri"]
            links.setdefault(card_uri, {})[value["collection"]["uri"]] = link["uri"]
        return links

    def run(self, objects: list[VaultObject]) -> RelinkOutcome:
        ctx = self.ctx
        if not ctx.collections:
            ctx.log("  No collections configured, skipping relink")
            return RelinkOutcome()

        by_id = {get_local_id(obj): obj for obj in objects}

        ctx.log("  Fetching existing collection links...")
        card_links = self._fetch_links()
        managed = ctx.managed_collection_uris()

        refs = [
            ref
            for ref in ctx.store.iter_references(ctx.state)
            if not ref.deleted and ref.uri and ref.direction is SyncDirection.PUSH
        ]
        ctx.log("  Checking %d pushed cards for collection links...", len(refs))

        linked = unlinked = already_linked = 0
        errors: list[SyncError] = []

        for ref in refs:
            obj = by_id.get(ref.local_id)
            if obj is None:
                continue

            desired: dict[str, dict[str, str]] = {}
            for name in ctx.desired_collection_names(extract_collection_tags(obj)):
                coll = ctx.collections.get(name)
                if coll is not None:
                    desired[name] = coll
            desired_uris = {coll["uri"] for coll in desired.values()}
            current = card_links.get(ref.uri, {})
            final: set[str] = set(current) & desired_uris

            card_cid: str | None = None
            for name, coll in desired.items():
                if coll["uri"] in current:
                    already_linked += 1
                    continue
                if ctx.options.dry_run:
                    ctx.log("  [dry-run] Would link %s to %s", ref.local_id, name)
                    linked += 1
                    continue
                try:
                    if card_cid is None:
                        remote = ctx.client.get_card(ref.uri)
                        if remote is None:
                            errors.append(
                                SyncError(
                                    id=ref.local_id,
                                    error="Card not found on remote",
                                    direction=ErrorDirection.PUSH,
                                )
                            )
                            break
                        card_cid = remote["cid"]
                    ctx.log("  Linking %s to %s", ref.local_id, name)
                    ctx.client.link_card_to_collection(
                        ref.uri, card_cid, coll["uri"], coll["cid"]
                    )
                    final.add(coll["uri"])
                    linked += 1
                except Exception as exc:
                    logger.error("Error linking %s to %s: %s", ref.local_id, name, exc)
                    errors.append(
                        SyncError(
                            id=ref.local_id,
                            error=f"Failed to link to collection {name}: {exc}",
                            direction=ErrorDirection.PUSH,
                        )
                    )

            for coll_uri, link_uri in current.items():
                if coll_uri not in managed or coll_uri in desired_uris:
                    continue
                if ctx.options.dry_run:
                    ctx.log("  [dry-run] Would unlink %s from %s", ref.local_id, coll_uri)
                    unlinked += 1
                    continue
                try:
                    ctx.log("  Unlinking %s from %s", ref.local_id, coll_uri)
                    ctx.client.unlink_card_from_collection(ref.uri, coll_uri, link_uri)
                    unlinked += 1
                except Exception as exc:
                    logger.error("Error unlinking %s from %s: %s", ref.local_id, coll_uri, exc)
                    errors.append(
                        SyncError(
                            id=ref.local_id,
                            error=f"Failed to unlink from collection {coll_uri}: {exc}",
                            direction=ErrorDirection.PUSH,
                        )
                    )
                    final.add(coll_uri)

            if not ctx.options.dry_run:
                ordered = [c["uri"] for c in desired.values() if c["uri"] in final]
                ordered += sorted(final - set(ordered))
                ctx.store.put_reference(
                    ctx.state, ref.model_copy(update={"collection_uris": ordered})
                )

        if linked:
            ctx.log("  Linked %d cards to collections", linked)
        if unlinked:
            ctx.log("  Unlinked %d cards from collections", unlinked)
        if already_linked:
            ctx.log("  %d cards already linked", already_linked)

        return RelinkOutcome(
            linked=linked,
            unlinked=unlinked,
            already_linked=already_linked,
            errors=errors,
        )
