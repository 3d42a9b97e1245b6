"""Unified configuration schema for semble_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the Semble account, per-project sync profiles and logging.

Usage:
    from semble_sync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

MergeStrategyName = Literal[
    "local-wins", "remote-wins", "skip-conflicts", "error-on-conflict"
]


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SembleConfig(BaseModel):
    """Semble account settings.

    All fields are optional to support zero-config: env vars and explicit
    overrides can supply them at runtime instead.
    """

    pds: str | None = Field(
        default=None, description="ATProto PDS URL (default https://bsky.social)"
    )
    identifier: str | None = Field(
        default=None, description="ATProto handle or DID"
    )
    password: str | None = Field(
        default=None,
        description="App password (or SEMBLE_APP_PASSWORD env var)",
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class ProjectSyncConfig(BaseModel):
    """Sync profile for one vault project.

    Attributes:
        enabled: Whether the project takes part in sync.
        content_root: Directory holding ``<project>/`` content folders.
        state_dir: Directory holding per-project sync state.
        collection: Name of the project collection; defaults to the
            project name.  Tag collections are always named
            ``<project>:<tag>``.
        collections_enabled: When false no collections are resolved,
            linked or unlinked.
        types: Object types eligible for push.
        public_only: Only push objects with ``visibility: public``.
        sync_tag: Frontmatter field that must be ``true`` for an object to
            be pushed.
        merge_strategy: Default conflict strategy for this project.
    """

    enabled: bool = True
    content_root: str = "content"
    state_dir: str = ".semble_sync"
    collection: str | None = None
    collections_enabled: bool = True
    types: list[str] = Field(default_factory=lambda: ["bibtex_entry"])
    public_only: bool = False
    sync_tag: str | None = None
    merge_strategy: MergeStrategyName = "skip-conflicts"

    model_config = {"frozen": True}

    @field_validator("types")
    @classmethod
    def _types_not_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("types must list at least one object type")
        return value

    def collection_name(self, project: str) -> str:
        """Return the project collection name for *project*."""
        return self.collection or project


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    semble: SembleConfig = Field(default_factory=SembleConfig)
    projects: dict[str, ProjectSyncConfig] = Field(default_factory=dict)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}

    def enabled_projects(self) -> list[str]:
        """Names of projects with sync enabled, sorted."""
        return sorted(
            name for name, profile in self.projects.items() if profile.enabled
        )


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully -- anything absent gets defaults.
    A project declared with an empty body (``projects: {notes: }``) gets
    the default profile.
    """
    if not raw_data:
        return UnifiedConfig()

    data = dict(raw_data)
    projects = data.get("projects")
    if isinstance(projects, dict):
        data["projects"] = {
            name: profile if profile is not None else {}
            for name, profile in projects.items()
        }

    return UnifiedConfig(**data)
