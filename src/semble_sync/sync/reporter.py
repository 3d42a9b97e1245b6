"""Sync result formatting functions.

- ``format_sync_report`` -- human-readable post-sync summary.
- ``report_to_json`` -- structured dict for JSON output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SyncResult

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(result: SyncResult) -> str:
    """Format a sync result as human-readable text.

    Conflict and error sections are only included when non-empty.  New
    objects are listed by relative path.

    Args:
        result: The completed sync result.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Semble sync for '{result.project}'"
    if result.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append(f"Started: {result.started_at}")
    if result.completed_at:
        lines.append(f"Completed: {result.completed_at}")
    lines.append("")

    lines.append(
        f"{result.pushed} pushed, {result.updated} updated, "
        f"{result.pulled} pulled, {result.deleted} deleted, "
        f"{result.skipped} skipped"
    )
    if result.linked or result.unlinked:
        lines.append(
            f"Collections: {result.linked} linked, {result.unlinked} unlinked"
        )
    lines.append("")

    if result.new_objects:
        lines.append("Pulled from Semble:")
        for obj in result.new_objects:
            lines.append(f"  {obj.relative_path}")
        lines.append("")

    if result.conflicts:
        lines.append("Conflicts:")
        for c in result.conflicts:
            lines.append(
                f"  {c.id}: local {c.local_hash} vs remote {c.remote_cid}"
            )
        lines.append("")

    if result.errors:
        lines.append("Errors:")
        for e in result.errors:
            lines.append(f"  [{e.direction.value}] {e.id}: {e.error}")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(result: SyncResult) -> dict:
    """Convert a sync result to a structured dict for JSON serialisation.

    Args:
        result: The sync result.

    Returns:
        Dict with run info, counts, conflicts, errors and new object paths.
    """
    return {
        "project": result.project,
        "dry_run": result.dry_run,
        "started_at": result.started_at,
        "completed_at": result.completed_at,
        "counts": {
            "pushed": result.pushed,
            "pulled": result.pulled,
            "updated": result.updated,
            "deleted": result.deleted,
            "skipped": result.skipped,
            "linked": result.linked,
            "unlinked": result.unlinked,
            "conflicts": len(result.conflicts),
            "errors": len(result.errors),
        },
        "conflicts": [c.model_dump(mode="json") for c in result.conflicts],
        "errors": [e.model_dump(mode="json") for e in result.errors],
        "new_objects": [obj.relative_path for obj in result.new_objects],
        "phases": [p.value for p in result.phases],
    }
