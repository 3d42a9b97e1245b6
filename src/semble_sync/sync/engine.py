"""Sync orchestrator for one project.

The ``SyncEngine`` sequences the sync phases over one shared state dict:

1. Validates credentials and loads persisted sync state.
2. Logs in to the remote repository.
3. Resolves the project and tag collections.
4. Pushes local objects (unless ``pull_only``).
5. Propagates local deletions (``sync_deletes``, not with ``pull_only``).
6. Relinks collection membership (``relink_collection``, not with
   ``pull_only``).
7. Pulls new remote cards (unless ``push_only``).
8. Persists state (not under ``dry_run``).

Only a configuration or authentication failure aborts the run.  A phase
that raises is recorded as a ``__<phase>__`` error and the next phase
still runs; per-object failures are recorded by the phases themselves.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from semble_sync.config import Config, config_problems
from semble_sync.config_schema import ProjectSyncConfig
from semble_sync.errors import ConfigurationError
from semble_sync.sync.collections import CollectionResolver
from semble_sync.sync.context import RemoteRepository, SyncContext
from semble_sync.sync.deletes import DeletePropagator
from semble_sync.sync.models import (
    DeleteOutcome,
    ErrorDirection,
    PullOutcome,
    PushOutcome,
    RelinkOutcome,
    SyncError,
    SyncOptions,
    SyncPhase,
    SyncResult,
)
from semble_sync.sync.pull import PullEngine
from semble_sync.sync.push import PushEngine
from semble_sync.sync.relink import Relinker
from semble_sync.sync.state import SyncStateStore
from semble_sync.vault import VaultObject, select_sync_objects

logger = logging.getLogger(__name__)

STATE_ERROR_ID = "__sync_state__"

_PHASE_DIRECTION = {
    SyncPhase.RESOLVING_COLLECTIONS: ErrorDirection.PUSH,
    SyncPhase.PUSHING: ErrorDirection.PUSH,
    SyncPhase.DELETING: ErrorDirection.DELETE,
    SyncPhase.RELINKING: ErrorDirection.PUSH,
    SyncPhase.PULLING: ErrorDirection.PULL,
}


class SyncEngine:
    """Run a full sync cycle for one project.

    Args:
        client: Remote repository (usually a ``SembleClient``).
        config: Account configuration, checked before any remote call.
        project: Project name.
        profile: Per-project sync settings.
        content_root: Root directory of local content.  Defaults to
            ``profile.content_root``.
        state_dir: Directory for sync state.  Defaults to
            ``profile.state_dir``.
    """

    def __init__(
        self,
        client: RemoteRepository,
        config: Config,
        project: str,
        profile: ProjectSyncConfig | None = None,
        content_root: Path | None = None,
        state_dir: Path | None = None,
    ) -> None:
        self.client = client
        self.config = config
        self.project = project
        self.profile = profile or ProjectSyncConfig()
        self.content_root = Path(content_root or self.profile.content_root)
        self.store = SyncStateStore(Path(state_dir or self.profile.state_dir))
        self.phase = SyncPhase.IDLE
        self._phases: list[SyncPhase] = []

    def _enter(self, phase: SyncPhase) -> None:
        logger.debug("Phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase
        self._phases.append(phase)

    def _phase_error(self, exc: Exception) -> SyncError:
        logger.error("Sync phase %s failed: %s", self.phase.value, exc)
        return SyncError(
            id=f"__{self.phase.value}__",
            error=str(exc),
            direction=_PHASE_DIRECTION.get(self.phase, ErrorDirection.PUSH),
        )

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(
        self, objects: list[VaultObject], options: SyncOptions | None = None
    ) -> SyncResult:
        """Execute a sync cycle.

        Args:
            objects: All local objects of the project.  Push, delete and
                relink only see the ones selected by the profile; pull
                de-duplicates against all of them.
            options: Run options.  Defaults to the profile's merge strategy
                with everything else off.

        Returns:
            A ``SyncResult`` with counts, conflicts, errors and new objects.

        Raises:
            ConfigurationError: If a required credential is missing.
            AuthenticationError: If login fails.
        """
        if options is None:
            options = SyncOptions(merge_strategy=self.profile.merge_strategy)
        started_at = datetime.now(timezone.utc).isoformat()
        self.phase = SyncPhase.IDLE
        self._phases = [SyncPhase.IDLE]

        problems = config_problems(self.config)
        if problems:
            raise ConfigurationError(
                "Invalid Semble configuration: " + "; ".join(problems)
            )

        state = self.store.load(self.project)
        ctx = SyncContext(
            client=self.client,
            store=self.store,
            state=state,
            project=self.project,
            collection_name=self.profile.collection_name(self.project),
            options=options,
            content_root=self.content_root,
        )

        self._enter(SyncPhase.AUTHENTICATING)
        ctx.log("Syncing with Semble as %s...", self.config.identifier)
        session = self.client.login()
        ctx.log("  Logged in as %s (%s)", session.get("handle"), session.get("did"))

        sync_objects = select_sync_objects(objects, self.profile)
        ctx.log("  Found %d objects to sync", len(sync_objects))

        errors: list[SyncError] = []
        push = PushOutcome()
        deletes = DeleteOutcome()
        relink = RelinkOutcome()
        pull = PullOutcome()

        if self.profile.collections_enabled:
            self._enter(SyncPhase.RESOLVING_COLLECTIONS)
            try:
                ctx.collections, collection_errors = CollectionResolver(
                    ctx
                ).ensure(sync_objects)
                errors.extend(collection_errors)
            except Exception as exc:
                errors.append(self._phase_error(exc))

        if not options.pull_only:
            self._enter(SyncPhase.PUSHING)
            ctx.log("Pushing to Semble...")
            try:
                push = PushEngine(ctx).run(sync_objects)
            except Exception as exc:
                errors.append(self._phase_error(exc))

            if options.sync_deletes:
                self._enter(SyncPhase.DELETING)
                ctx.log("Processing deletions...")
                try:
                    deletes = DeletePropagator(ctx).run(sync_objects)
                except Exception as exc:
                    errors.append(self._phase_error(exc))

            if options.relink_collection:
                self._enter(SyncPhase.RELINKING)
                ctx.log("Re-linking cards to collections...")
                try:
                    relink = Relinker(ctx).run(sync_objects)
                except Exception as exc:
                    errors.append(self._phase_error(exc))

        if not options.push_only:
            self._enter(SyncPhase.PULLING)
            ctx.log("Pulling from Semble...")
            try:
                pull = PullEngine(ctx).run(objects)
            except Exception as exc:
                errors.append(self._phase_error(exc))

        errors = (
            errors + push.errors + deletes.errors + relink.errors + pull.errors
        )

        if not options.dry_run:
            self._enter(SyncPhase.PERSISTING)
            try:
                self.store.save(state)
            except Exception as exc:
                logger.error("Failed to save sync state: %s", exc)
                ctx.log("  Warning: Failed to save sync state - %s", exc)
                errors.append(
                    SyncError(
                        id=STATE_ERROR_ID,
                        error=(
                            f"Failed to save sync state: {exc}. "
                            "Some operations may be retried on next sync."
                        ),
                        direction=ErrorDirection.PUSH,
                    )
                )

        self._enter(SyncPhase.DONE)
        return SyncResult(
            project=self.project,
            dry_run=options.dry_run,
            pushed=push.pushed,
            pulled=pull.pulled,
            updated=push.updated,
            deleted=deletes.deleted,
            skipped=push.skipped + pull.skipped,
            linked=relink.linked,
            unlinked=relink.unlinked,
            conflicts=push.conflicts,
            errors=errors,
            new_objects=pull.new_objects,
            phases=list(self._phases),
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )
