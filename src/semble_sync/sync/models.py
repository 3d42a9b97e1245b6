"""Pydantic models for the Semble sync engine.

Defines the data contracts shared by all sync modules:

- ``UrlCard`` / ``NoteCard``: the two remote card shapes, a tagged variant
  discriminated by ``type``.
- ``SyncedReference``: last known correspondence between one local object
  and one remote card.
- ``SyncConflict`` / ``SyncError``: per-object outcomes reported to callers.
- ``SyncOptions``: run options.
- ``PushOutcome`` and friends: per-phase results.
- ``SyncResult``: aggregate result of a full run.

All models except ``SyncOptions`` are frozen; updated references are made
with ``model_copy(update=...)``.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Callable, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator

from semble_sync.vault import VaultObject


class SyncDirection(str, Enum):
    """Direction of the last successful sync of a reference."""

    PUSH = "push"
    PULL = "pull"


class ErrorDirection(str, Enum):
    """Operation that produced a ``SyncError``."""

    PUSH = "push"
    PULL = "pull"
    UPDATE = "update"
    DELETE = "delete"


class MergeStrategy(str, Enum):
    """Whole-record conflict policy."""

    LOCAL_WINS = "local-wins"
    REMOTE_WINS = "remote-wins"
    SKIP_CONFLICTS = "skip-conflicts"
    ERROR_ON_CONFLICT = "error-on-conflict"


class SyncPhase(str, Enum):
    """States of one sync run, in order."""

    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    RESOLVING_COLLECTIONS = "resolving-collections"
    PUSHING = "pushing"
    DELETING = "deleting"
    RELINKING = "relinking"
    PULLING = "pulling"
    PERSISTING = "persisting"
    DONE = "done"


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


class UrlMetadata(BaseModel):
    """Optional metadata carried by a URL card."""

    title: str | None = None
    description: str | None = None
    author: str | None = None
    published_date: str | None = Field(default=None, alias="publishedDate")
    site_name: str | None = Field(default=None, alias="siteName")
    image_url: str | None = Field(default=None, alias="imageUrl")
    type: str | None = None
    retrieved_at: str | None = Field(default=None, alias="retrievedAt")

    model_config = {"frozen": True, "populate_by_name": True}


class UrlContent(BaseModel):
    url: str
    metadata: UrlMetadata = Field(default_factory=UrlMetadata)

    model_config = {"frozen": True}


class NoteContent(BaseModel):
    text: str = ""

    model_config = {"frozen": True}


class UrlCard(BaseModel):
    """A card wrapping a link plus optional metadata."""

    type: Literal["URL"] = "URL"
    content: UrlContent
    url: str | None = None
    created_at: str | None = Field(default=None, alias="createdAt")

    model_config = {"frozen": True, "populate_by_name": True}

    @property
    def display_title(self) -> str:
        return self.content.metadata.title or self.content.url


class NoteCard(BaseModel):
    """A card wrapping free text."""

    type: Literal["NOTE"] = "NOTE"
    content: NoteContent
    url: str | None = None
    created_at: str | None = Field(default=None, alias="createdAt")

    model_config = {"frozen": True, "populate_by_name": True}

    @property
    def display_title(self) -> str:
        return self.content.text[:50] or "note"


Card = Annotated[Union[UrlCard, NoteCard], Field(discriminator="type")]

_CARD_ADAPTER: TypeAdapter[UrlCard | NoteCard] = TypeAdapter(Card)


def parse_card(value: dict[str, Any]) -> UrlCard | NoteCard:
    """Build a typed card from a raw record value (``$type`` is ignored).

    Raises:
        pydantic.ValidationError: If the record is not a known card shape.
    """
    return _CARD_ADAPTER.validate_python(value)


def card_to_record(card: UrlCard | NoteCard) -> dict[str, Any]:
    """Serialize *card* to the remote record shape (camelCase, no nulls)."""
    return card.model_dump(by_alias=True, exclude_none=True, mode="json")


# ---------------------------------------------------------------------------
# State and outcomes
# ---------------------------------------------------------------------------


class SyncedReference(BaseModel):
    """Correspondence between one local object and one remote card.

    Attributes:
        local_id: Stable local identifier (citation key or object id).
        uri: AT-URI of the remote card.
        cid: CID of the card as last written or read.
        content_hash: Card-content fingerprint at last successful sync.
        synced_at: ISO 8601 timestamp of last successful sync.
        direction: Whether the last sync was a push or a pull.
        deleted: True once the local object vanished and the remote card
            was deleted.  Deleted references are kept as history.
        remote_cid: Remote CID observed at last sync, for conflict checks.
        collection_uris: Collections the card is linked to.
    """

    local_id: str
    uri: str
    cid: str
    content_hash: str | None = None
    synced_at: str
    direction: SyncDirection
    deleted: bool = False
    remote_cid: str | None = None
    collection_uris: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def last_known_cid(self) -> str:
        return self.remote_cid or self.cid


class SyncConflict(BaseModel):
    """Both sides changed since the last sync of ``id``."""

    id: str
    local_hash: str
    remote_cid: str

    model_config = {"frozen": True}


class SyncError(BaseModel):
    """A failed operation for one object (or one phase, ``__phase__``)."""

    id: str
    error: str
    direction: ErrorDirection

    model_config = {"frozen": True}


class SyncOptions(BaseModel):
    """Options for one sync run.

    Attributes:
        push_only: Skip the pull phase.
        pull_only: Skip the push, delete and relink phases.
        dry_run: Make every decision but issue no mutating remote call and
            write nothing locally.
        force: Re-push objects whose content hash did not change.
        merge_strategy: Conflict policy.
        sync_deletes: Delete remote cards of locally removed objects.
        relink_collection: Reconcile collection links of synced cards.
        on_progress: Receives each human-readable progress line.
    """

    push_only: bool = False
    pull_only: bool = False
    dry_run: bool = False
    force: bool = False
    merge_strategy: MergeStrategy = MergeStrategy.SKIP_CONFLICTS
    sync_deletes: bool = False
    relink_collection: bool = False
    on_progress: Callable[[str], None] | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_exclusive(self) -> SyncOptions:
        if self.push_only and self.pull_only:
            raise ValueError("push_only and pull_only are mutually exclusive")
        return self


class PushOutcome(BaseModel):
    pushed: int = 0
    updated: int = 0
    skipped: int = 0
    conflicts: list[SyncConflict] = []
    errors: list[SyncError] = []

    model_config = {"frozen": True}


class DeleteOutcome(BaseModel):
    deleted: int = 0
    errors: list[SyncError] = []

    model_config = {"frozen": True}


class RelinkOutcome(BaseModel):
    linked: int = 0
    unlinked: int = 0
    already_linked: int = 0
    errors: list[SyncError] = []

    model_config = {"frozen": True}


class PullOutcome(BaseModel):
    pulled: int = 0
    skipped: int = 0
    errors: list[SyncError] = []
    new_objects: list[VaultObject] = []

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Aggregate result of one sync run.

    Attributes:
        project: Project that was synced.
        dry_run: Whether this was a dry run.
        pushed: Cards created remotely.
        pulled: Local objects created from remote cards.
        updated: Remote cards replaced with local content.
        deleted: Remote cards deleted after local removal.
        skipped: Objects or cards left untouched (push and pull combined).
        linked: Collection links created by the relinker.
        unlinked: Collection links removed by the relinker.
        conflicts: Objects changed on both sides.
        errors: Failed operations.
        new_objects: Objects written during pull.
        phases: Phases entered, in order.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run finished.
    """

    project: str
    dry_run: bool = False
    pushed: int = 0
    pulled: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    linked: int = 0
    unlinked: int = 0
    conflicts: list[SyncConflict] = []
    errors: list[SyncError] = []
    new_objects: list[VaultObject] = []
    phases: list[SyncPhase] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        """Format a human-readable summary of the run.

        Returns:
            Multi-line summary string with one count per line.
        """
        lines = [
            f"Semble sync for project '{self.project}'"
            + (" (dry run)" if self.dry_run else ""),
            f"  Pushed:    {self.pushed}",
            f"  Updated:   {self.updated}",
            f"  Pulled:    {self.pulled}",
            f"  Deleted:   {self.deleted}",
            f"  Skipped:   {self.skipped}",
            f"  Conflicts: {len(self.conflicts)}",
            f"  Errors:    {len(self.errors)}",
        ]
        if self.linked or self.unlinked:
            lines.append(
                f"  Relinked:  +{self.linked} / -{self.unlinked}"
            )
        return "\n".join(lines)
