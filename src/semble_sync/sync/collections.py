"""Collection resolution: make sure every collection a run needs exists.

A run needs the project's own collection plus one ``<project>:<tag>``
collection per distinct ``collection:<tag>`` tag among the objects being
pushed.  Resolved references are cached by name in the sync state; a cached
name whose collection was deleted remotely is dropped and re-resolved.
"""

from __future__ import annotations

import logging

from semble_sync.sync.context import SyncContext
from semble_sync.sync.mapper import extract_collection_tags
from semble_sync.sync.models import ErrorDirection, SyncError
from semble_sync.validators import validate_collection_name
from semble_sync.vault import VaultObject

logger = logging.getLogger(__name__)


def required_collection_names(
    ctx: SyncContext, objects: list[VaultObject]
) -> list[str]:
    """Project collection first, then tag collections in first-seen order."""
    names = [ctx.collection_name]
    for obj in objects:
        for name in ctx.desired_collection_names(extract_collection_tags(obj)):
            if name not in names:
                names.append(name)
    return names


class CollectionResolver:
    """Resolve (find or create) the collections needed for a run.

    Args:
        ctx: The run context.  ``ctx.state["collection_uris"]`` is updated
            in place.
    """

    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    def _description(self, name: str) -> str:
        if name == self.ctx.collection_name:
            return f"Vault project: {name}"
        return f"Vault collection: {name}"

    def ensure(
        self, objects: list[VaultObject]
    ) -> tuple[dict[str, dict[str, str]], list[SyncError]]:
        """Find or create every required collection.

        Under dry-run missing collections are reported but not created, so
        they are absent from the returned map.

        Returns:
            Tuple of (collections by name as ``{uri, cid}``, errors).
        """
        ctx = self.ctx
        names = required_collection_names(ctx, objects)
        ctx.log("  Need %d collections: %s", len(names), ", ".join(names))

        collections: dict[str, dict[str, str]] = {}
        errors: list[SyncError] = []

        for name in names:
            try:
                resolved = self._resolve(name)
            except Exception as exc:
                logger.error("Failed to resolve collection %s: %s", name, exc)
                errors.append(
                    SyncError(
                        id=name,
                        error=f"Failed to resolve collection: {exc}",
                        direction=ErrorDirection.PUSH,
                    )
                )
                continue
            if resolved is not None:
                collections[name] = resolved

        return collections, errors

    def _resolve(self, name: str) -> dict[str, str] | None:
        ctx = self.ctx
        valid, reason = validate_collection_name(name)
        if not valid:
            raise ValueError(reason)

        cached_uri = ctx.store.get_collection_uri(ctx.state, name)

        existing = ctx.client.find_collection_by_name(name)
        if existing is not None:
            if cached_uri != existing["uri"]:
                ctx.store.set_collection_uri(ctx.state, name, existing["uri"])
                ctx.log("  Found collection: %s", name)
            return {"uri": existing["uri"], "cid": existing["cid"]}

        if cached_uri:
            ctx.log("  Cached collection %s no longer exists remotely", name)
            ctx.store.forget_collection(ctx.state, name)

        if ctx.options.dry_run:
            ctx.log("  [dry-run] Would create collection: %s", name)
            return None

        ctx.log("  Creating collection: %s", name)
        created = ctx.client.create_collection(name, self._description(name))
        ctx.store.set_collection_uri(ctx.state, name, created["uri"])
        return {"uri": created["uri"], "cid": created["cid"]}
