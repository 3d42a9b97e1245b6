"""Conflict resolution strategies for the push engine.

A conflict means both the local content hash and the remote CID changed
since the last sync.  Resolution is whole-record; there is no field-level
merge.

- ``LocalWinsResolver``: overwrite the remote card with local content.
- ``RemoteWinsResolver``: keep the remote card, skip the local change.
- ``SkipConflictsResolver``: leave both sides untouched (default).
- ``ErrorOnConflictResolver``: leave both sides untouched and report an
  error.

The ``create_resolver()`` factory maps strategy names to resolver
instances.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

from semble_sync.sync.models import MergeStrategy, SyncConflict

logger = logging.getLogger(__name__)


class Resolution(str, Enum):
    """What the push engine does with a conflicting object."""

    OVERWRITE = "overwrite"
    KEEP_REMOTE = "keep-remote"
    SKIP = "skip"
    FAIL = "fail"


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    def resolve(self, conflict: SyncConflict) -> Resolution:
        """Decide what to do with a conflicting object.

        Args:
            conflict: The object id, local hash and current remote CID.

        Returns:
            The ``Resolution`` to apply.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


class LocalWinsResolver:
    """Always resolve conflicts in favour of local content."""

    def resolve(self, conflict: SyncConflict) -> Resolution:
        logger.info("Resolving conflict: local-wins for %s", conflict.id)
        return Resolution.OVERWRITE


class RemoteWinsResolver:
    """Always resolve conflicts in favour of remote content."""

    def resolve(self, conflict: SyncConflict) -> Resolution:
        logger.info("Resolving conflict: remote-wins for %s", conflict.id)
        return Resolution.KEEP_REMOTE


class SkipConflictsResolver:
    """Leave conflicting objects for a later run."""

    def resolve(self, conflict: SyncConflict) -> Resolution:
        logger.info("Skipping conflict: %s", conflict.id)
        return Resolution.SKIP


class ErrorOnConflictResolver:
    """Report every conflict as an error."""

    def resolve(self, conflict: SyncConflict) -> Resolution:
        logger.warning("Conflict treated as error: %s", conflict.id)
        return Resolution.FAIL


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    MergeStrategy.LOCAL_WINS.value: LocalWinsResolver,
    MergeStrategy.REMOTE_WINS.value: RemoteWinsResolver,
    MergeStrategy.SKIP_CONFLICTS.value: SkipConflictsResolver,
    MergeStrategy.ERROR_ON_CONFLICT.value: ErrorOnConflictResolver,
}


def create_resolver(strategy: str | MergeStrategy) -> ConflictResolver:
    """Create a conflict resolver for the given strategy.

    Args:
        strategy: A ``MergeStrategy`` or one of ``"local-wins"``,
            ``"remote-wins"``, ``"skip-conflicts"``, ``"error-on-conflict"``.

    Raises:
        ValueError: If the strategy is not recognised.
    """
    key = strategy.value if isinstance(strategy, MergeStrategy) else strategy
    cls = _STRATEGY_MAP.get(key)
    if cls is None:
        raise ValueError(
            f"Unknown merge strategy: '{strategy}'. Valid strategies: {sorted(_STRATEGY_MAP.keys())}"
        )
    return cls()  # type: ignore[return-value]
