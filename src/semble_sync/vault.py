"""Local vault objects: loading markdown files and selecting what to sync.

A vault object is one markdown file with YAML frontmatter.  Objects of a
project live under ``<content_root>/<project>/`` in any sub-directory.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from semble_sync.config_schema import ProjectSyncConfig
from semble_sync.file_handler import parse_markdown, read_file_with_encoding

logger = logging.getLogger(__name__)

DEFAULT_VISIBILITY = "public"
DEFAULT_OBJECT_TYPE = "note"


class VaultObject(BaseModel):
    """One local content record.

    Attributes:
        id: Object identifier (``id`` frontmatter field or file stem).
        type: Object type tag (e.g. ``bibtex_entry``, ``note``).
        project: Owning project name.
        frontmatter: Open key/value metadata.
        body: Markdown body without frontmatter.
        visibility: ``public`` or ``private``.
        file_path: Absolute path of the markdown file.
        relative_path: Path relative to the content root.
        title: Display title, if any.
    """

    id: str
    type: str = DEFAULT_OBJECT_TYPE
    project: str
    frontmatter: dict[str, Any] = Field(default_factory=dict)
    body: str = ""
    visibility: str = DEFAULT_VISIBILITY
    file_path: str = ""
    relative_path: str = ""
    title: str | None = None

    model_config = {"frozen": True}


def load_vault_objects(content_root: Path, project: str) -> list[VaultObject]:
    """Read every markdown file of *project* under *content_root*.

    Unreadable files are logged and skipped.

    Returns:
        Objects sorted by relative path.
    """
    project_root = content_root / project
    if not project_root.is_dir():
        logger.warning("Project directory not found: %s", project_root)
        return []

    objects: list[VaultObject] = []
    for path in sorted(project_root.rglob("*.md")):
        if not path.is_file():
            continue
        try:
            content, _ = read_file_with_encoding(path)
        except OSError as exc:
            logger.error("Error reading %s: %s", path, exc)
            continue

        frontmatter, body = parse_markdown(content)
        title = frontmatter.get("title")
        objects.append(
            VaultObject(
                id=str(frontmatter.get("id") or path.stem),
                type=str(frontmatter.get("type") or DEFAULT_OBJECT_TYPE),
                project=project,
                frontmatter=frontmatter,
                body=body,
                visibility=str(
                    frontmatter.get("visibility") or DEFAULT_VISIBILITY
                ),
                file_path=str(path),
                relative_path=path.relative_to(content_root).as_posix(),
                title=str(title) if title is not None else None,
            )
        )

    return objects


def select_sync_objects(
    objects: list[VaultObject], profile: ProjectSyncConfig
) -> list[VaultObject]:
    """Filter *objects* down to those the profile allows to be pushed.

    Applies, in order: allowed ``types``, ``public_only`` and ``sync_tag``.
    """
    allowed = set(profile.types)
    selected = [o for o in objects if o.type in allowed]

    if profile.public_only:
        selected = [o for o in selected if o.visibility == "public"]

    if profile.sync_tag:
        before = len(selected)
        selected = [
            o
            for o in selected
            if o.frontmatter.get(profile.sync_tag) in (True, "true")
        ]
        logger.info(
            "Filtered by sync_tag '%s': %d -> %d objects",
            profile.sync_tag,
            before,
            len(selected),
        )

    return selected
