"""Pull phase: import remote cards not yet represented locally.

A card is skipped when its URI is already recorded in sync state, or when
it is a URL card whose URL already exists among the local objects.  Other
cards become new markdown files under ``<content_root>/<project>/references``
(URL cards) or ``.../notes`` (note cards).
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from semble_sync.file_handler import write_markdown
from semble_sync.sync.context import SyncContext
from semble_sync.sync.mapper import (
    card_to_filename,
    card_to_frontmatter,
    compute_card_hash,
    compute_object_hash,
    extract_url,
    time_suffix,
)
from semble_sync.sync.models import (
    ErrorDirection,
    PullOutcome,
    SyncDirection,
    SyncedReference,
    SyncError,
    UrlCard,
    parse_card,
)
from semble_sync.sync.state import utc_now
from semble_sync.vault import VaultObject

logger = logging.getLogger(__name__)

REFERENCES_DIR = "references"
NOTES_DIR = "notes"


def _unique_path(path: Path) -> Path:
    """*path*, or a time-suffixed sibling if *path* already exists."""
    while path.exists():
        path = path.with_name(f"{path.stem}-{time_suffix()}{path.suffix}")
    return path


class PullEngine:
    """Create local objects from remote cards."""

    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    def run(self, existing_objects: list[VaultObject]) -> PullOutcome:
        """Pull every new remote card.

        Args:
            existing_objects: All local objects of the project, used for
                URL de-duplication.

        Raises:
            Exception: Whatever the bulk card listing raises; the
                orchestrator records it as a phase error.
        """
        ctx = self.ctx
        ctx.log("  Fetching cards from Semble...")
        records = ctx.client.get_all_cards()
        ctx.log("  Found %d cards", len(records))

        synced_uris = ctx.store.synced_uris(ctx.state)
        existing_urls = {
            url
            for url in (extract_url(obj.frontmatter) for obj in existing_objects)
            if url
        }

        pulled = 0
        skipped = 0
        errors: list[SyncError] = []
        new_objects: list[VaultObject] = []

        for record in records:
            uri = record["uri"]
            if uri in synced_uris:
                skipped += 1
                continue

            try:
                card = parse_card(record["value"])
            except ValidationError as exc:
                logger.warning("Unrecognised card %s: %s", uri, exc)
                errors.append(
                    SyncError(
                        id=uri,
                        error=f"Unrecognised card record: {exc.error_count()} validation errors",
                        direction=ErrorDirection.PULL,
                    )
                )
                continue

            if isinstance(card, UrlCard) and card.content.url in existing_urls:
                skipped += 1
                continue

            if ctx.options.dry_run:
                ctx.log("  [dry-run] Would pull %s: %s", card.type, card.display_title)
                pulled += 1
                continue

            try:
                ctx.log("  Pulling %s: %s", card.type, card.display_title)
                new_objects.append(self._write(card, uri, record["cid"]))
                pulled += 1
            except Exception as exc:
                logger.error("Error pulling %s: %s", uri, exc)
                errors.append(
                    SyncError(id=uri, error=str(exc), direction=ErrorDirection.PULL)
                )
                continue

            if isinstance(card, UrlCard):
                existing_urls.add(card.content.url)

        return PullOutcome(
            pulled=pulled, skipped=skipped, errors=errors, new_objects=new_objects
        )

    def _write(self, card, uri: str, cid: str) -> VaultObject:
        ctx = self.ctx
        frontmatter, body = card_to_frontmatter(card, uri)
        subdir = REFERENCES_DIR if isinstance(card, UrlCard) else NOTES_DIR
        path = _unique_path(
            ctx.content_root / ctx.project / subdir / card_to_filename(card)
        )
        write_markdown(path, frontmatter, body)

        local_id = str(frontmatter.get("citation_key") or frontmatter["note_id"])
        obj = VaultObject(
            id=local_id,
            type=frontmatter["type"],
            project=ctx.project,
            frontmatter=frontmatter,
            body=body,
            visibility=frontmatter["visibility"],
            file_path=str(path),
            relative_path=path.relative_to(ctx.content_root).as_posix(),
            title=frontmatter.get("title") or path.stem,
        )

        ctx.store.put_reference(
            ctx.state,
            SyncedReference(
                local_id=local_id,
                uri=uri,
                cid=cid,
                content_hash=compute_object_hash(obj) or compute_card_hash(card),
                synced_at=utc_now(),
                direction=SyncDirection.PULL,
                remote_cid=cid,
            ),
        )
        return obj
