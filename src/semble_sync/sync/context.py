"""Shared per-run context handed to every sync phase."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from semble_sync.sync.mapper import format_collection_name
from semble_sync.sync.models import SyncOptions
from semble_sync.sync.state import SyncStateStore

logger = logging.getLogger(__name__)


class RemoteRepository(Protocol):
    """The remote card/collection API the sync phases depend on.

    ``SembleClient`` implements it over ATProto; tests use an in-memory
    fake.
    """

    def login(self) -> dict[str, Any]: ...  # pragma: no cover

    def find_collection_by_name(
        self, name: str
    ) -> dict[str, str] | None: ...  # pragma: no cover

    def create_collection(
        self, name: str, description: str | None = None
    ) -> dict[str, str]: ...  # pragma: no cover

    def list_collections(self) -> list[dict[str, Any]]: ...  # pragma: no cover

    def create_card(self, card: dict[str, Any]) -> dict[str, str]: ...  # pragma: no cover

    def update_card(
        self, uri: str, card: dict[str, Any]
    ) -> dict[str, str]: ...  # pragma: no cover

    def get_card(self, uri: str) -> dict[str, Any] | None: ...  # pragma: no cover

    def get_all_cards(self) -> list[dict[str, Any]]: ...  # pragma: no cover

    def delete_record(self, collection: str, rkey: str) -> bool: ...  # pragma: no cover

    def link_card_to_collection(
        self,
        card_uri: str,
        card_cid: str,
        collection_uri: str,
        collection_cid: str,
    ) -> dict[str, str]: ...  # pragma: no cover

    def unlink_card_from_collection(
        self,
        card_uri: str,
        collection_uri: str,
        link_uri: str | None = None,
    ) -> None: ...  # pragma: no cover

    def get_all_collection_links(self) -> list[dict[str, Any]]: ...  # pragma: no cover


@dataclass
class SyncContext:
    """Everything a phase needs for one project run.

    Attributes:
        client: Remote repository.
        store: State persistence helper.
        state: Mutable state dict for the project.
        project: Project name.
        collection_name: Name of the project's own collection.
        options: Run options.
        content_root: Root directory of local content.
        collections: Resolved collections by name (``{uri, cid}``).
    """

    client: RemoteRepository
    store: SyncStateStore
    state: dict
    project: str
    collection_name: str
    options: SyncOptions
    content_root: Path
    collections: dict[str, dict[str, str]] = field(default_factory=dict)

    def log(self, message: str, *args: Any) -> None:
        """Log at INFO and forward the formatted line to ``on_progress``."""
        text = message % args if args else message
        logger.info(text)
        if self.options.on_progress is not None:
            self.options.on_progress(text)

    def managed_collection_uris(self) -> set[str]:
        """Collections this engine resolved now or cached in earlier runs."""
        uris = {c["uri"] for c in self.collections.values()}
        uris.update(self.state.get("collection_uris", {}).values())
        return uris

    def desired_collection_names(self, tags: list[str]) -> list[str]:
        """Project collection plus one ``<project>:<tag>`` per tag."""
        names = [self.collection_name]
        for tag in tags:
            name = format_collection_name(self.project, tag)
            if name not in names:
                names.append(name)
        return names
