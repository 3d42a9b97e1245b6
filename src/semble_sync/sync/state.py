"""Sync state persistence layer.

Manages the per-project JSON state file that records everything the engine
believes about the remote side: collection URIs by name and one
``SyncedReference`` per local id.  The file lives at
``<state_dir>/<project>/semble-sync.json``; deleting it forces a full
re-sync (URL-based pull de-duplication still applies).

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Canonical hashing** -- ``card_hash()`` serialises with sorted keys at
  every level so equal content always yields the same fingerprint.
* **Dict-based state** -- state is a plain ``dict`` so phases can mutate it
  freely during a run and persist once at the end.  References are stored
  as plain dicts and handed out as ``SyncedReference`` models.
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from semble_sync.sync.models import SyncedReference

STATE_FILE_NAME = "semble-sync.json"
STATE_VERSION = 1
HASH_LENGTH = 16


def utc_now() -> str:
    """Current UTC time as ISO 8601."""
    return datetime.now(timezone.utc).isoformat()


def card_hash(projection: dict[str, Any]) -> str:
    """Fingerprint a card-content projection.

    Args:
        projection: ``{"type", "content", "url"}`` of a card.  Timestamps
            and identity fields must not be included.

    Returns:
        First 16 hex characters of the SHA-256 of the canonical JSON.
    """
    canonical = json.dumps(
        projection,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:HASH_LENGTH]


class SyncStateStore:
    """Load, save, and query sync state for projects.

    Args:
        state_dir: Directory holding one sub-directory per project
            (typically ``.semble_sync/``).
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = Path(state_dir)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def state_path(self, project: str) -> Path:
        return self._state_dir / project / STATE_FILE_NAME

    def load(self, project: str) -> dict:
        """Load sync state from disk.

        Returns:
            The state dict.  If the file does not exist an empty state is
            returned.

        Raises:
            json.JSONDecodeError: If the state file is corrupt.
        """
        path = self.state_path(project)
        if not path.exists():
            return {
                "version": STATE_VERSION,
                "project": project,
                "collection_uris": {},
                "references": {},
                "last_sync": None,
            }
        with open(path, encoding="utf-8") as fh:
            state = json.load(fh)
        state.setdefault("collection_uris", {})
        state.setdefault("references", {})
        return state

    def save(self, state: dict) -> None:
        """Persist *state* atomically and stamp ``last_sync``.

        Creates the project's state directory if needed.
        """
        target = self.state_path(state["project"])
        target.parent.mkdir(parents=True, exist_ok=True)
        state["last_sync"] = utc_now()

        fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(state, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_path, target)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    # ------------------------------------------------------------------
    # Reference helpers
    # ------------------------------------------------------------------

    def get_reference(self, state: dict, local_id: str) -> SyncedReference | None:
        raw = state.get("references", {}).get(local_id)
        if raw is None:
            return None
        return SyncedReference.model_validate(raw)

    def put_reference(self, state: dict, reference: SyncedReference) -> None:
        """Upsert *reference* under its ``local_id``.  Mutates *state*."""
        state.setdefault("references", {})[reference.local_id] = (
            reference.model_dump(mode="json")
        )

    def iter_references(self, state: dict) -> Iterator[SyncedReference]:
        for raw in state.get("references", {}).values():
            yield SyncedReference.model_validate(raw)

    def synced_uris(self, state: dict) -> set[str]:
        """URIs of every recorded card, deleted ones included."""
        return {
            raw["uri"] for raw in state.get("references", {}).values()
        }

    # ------------------------------------------------------------------
    # Collection cache helpers
    # ------------------------------------------------------------------

    def get_collection_uri(self, state: dict, name: str) -> str | None:
        return state.get("collection_uris", {}).get(name)

    def set_collection_uri(self, state: dict, name: str, uri: str) -> None:
        state.setdefault("collection_uris", {})[name] = uri

    def forget_collection(self, state: dict, name: str) -> None:
        """Drop a cached collection URI.  No-op if not present."""
        state.get("collection_uris", {}).pop(name, None)
