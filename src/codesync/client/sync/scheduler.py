"""Polling scheduler driving reconciliation passes.

This module provides:
- SyncSession: The directory being synced and the components bound to it
- SyncScheduler: State machine, interval jobs and the non-overlap guard

State machine:

    IDLE -> SYNCING -> IDLE | CONFLICT_PENDING | ERROR
    CONFLICT_PENDING -> SYNCING   (sync_now() once every conflict is resolved)
    ERROR -> SYNCING              (next tick)
    any -> IDLE                   (stop())

Two APScheduler interval jobs feed tick(): the full reconciliation job and
a cheaper local check that only starts a pass when the watcher has queued
changes. tick() refuses to start while a pass is in flight, so at most one
pass runs at any time.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.background import BackgroundScheduler

from codesync.client.api import RemoteUnavailable
from codesync.client.sync.conflicts import ConflictResolutionTracker
from codesync.client.sync.engine import PassInput, ReconciliationEngine
from codesync.client.sync.materializer import DirectoryMaterializer
from codesync.client.sync.snapshot import RemoteSnapshotter
from codesync.client.sync.types import (
    CompletionCallback,
    Conflict,
    ConflictsCallback,
    ConflictsPending,
    ErrorCallback,
    PassResult,
    SyncError,
)
from codesync.client.sync.watcher import LocalChangeWatcher
from codesync.core.config import SyncConfig
from codesync.core.types import SyncState

if TYPE_CHECKING:
    from collections.abc import Callable

    from codesync.client.api import DocumentClient
    from codesync.client.state import SyncSessionState, SyncStateStore

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "reconcile"
LOCAL_CHECK_JOB_ID = "local_check"


@dataclass
class SyncSession:
    """One active sync of one directory.

    Attributes:
        directory: Resolved sync folder.
        watcher: Local change watcher started on the directory.
        snapshotter: Remote snapshot source.
        materializer: Local directory reader/writer.
        engine: Reconciliation engine bound to the above.
        passes: Number of passes run in this session.
    """

    directory: Path
    watcher: LocalChangeWatcher
    snapshotter: RemoteSnapshotter
    materializer: DirectoryMaterializer
    engine: ReconciliationEngine
    passes: int = 0


class SyncScheduler:
    """Runs reconciliation passes on a fixed cadence, never two at once.

    The scheduler is the only writer of the persisted session state. It
    writes at the end of each pass and on start/resolve/stop.
    """

    def __init__(
        self,
        client: DocumentClient,
        store: SyncStateStore,
        config: SyncConfig | None = None,
        tracker: ConflictResolutionTracker | None = None,
        watcher: LocalChangeWatcher | None = None,
        on_complete: CompletionCallback | None = None,
        on_conflicts: ConflictsCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_state_change: Callable[[SyncState], None] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            client: Remote document store client.
            store: Persisted session state.
            config: Cadence and policy; defaults to SyncConfig().
            tracker: Conflict memory; a fresh one when omitted.
            watcher: Local change watcher; a fresh one when omitted.
            on_complete: Called after a pass without pending conflicts.
            on_conflicts: Called with the conflicts of a pass that found some.
            on_error: Called with the message of a failed pass.
            on_state_change: Called on every state transition.
        """
        self._client = client
        self._store = store
        self._config = config or SyncConfig()
        self._tracker = tracker or ConflictResolutionTracker()
        self._watcher = watcher or LocalChangeWatcher(self._config.ignore_patterns)

        self._on_complete = on_complete
        self._on_conflicts = on_conflicts
        self._on_error = on_error
        self._on_state_change = on_state_change

        self._lock = threading.RLock()
        self._state = SyncState.IDLE
        self._session: SyncSession | None = None
        self._jobs: BackgroundScheduler | None = None
        self._jobs_paused = False
        self._pass_in_flight = False
        self._last_error: str | None = None

    # === Read-only views ===

    @property
    def state(self) -> SyncState:
        """Current scheduler state."""
        with self._lock:
            return self._state

    @property
    def last_error(self) -> str | None:
        """Message of the last failed pass, cleared by a successful one."""
        with self._lock:
            return self._last_error

    @property
    def is_running(self) -> bool:
        """True between start() and stop()."""
        with self._lock:
            return self._session is not None

    @property
    def session(self) -> SyncSession | None:
        """Active session, if any."""
        with self._lock:
            return self._session

    @property
    def tracker(self) -> ConflictResolutionTracker:
        """Conflict memory of this scheduler."""
        return self._tracker

    @property
    def session_state(self) -> SyncSessionState:
        """Copy of the persisted session state."""
        return self._store.load()

    @property
    def conflicts(self) -> list[Conflict]:
        """Conflicts waiting for a resolution."""
        return self._tracker.live()

    # === Lifecycle ===

    def start(self, directory: Path | str, schedule: bool = True) -> None:
        """Start syncing a directory.

        Runs one pass immediately, then arms the interval jobs unless
        schedule is False (single-pass use). Choosing a different directory
        than the persisted one starts a fresh session: mappings, conflict
        memory and the initial-resolution flag are reset.

        Raises:
            ValueError: If the directory does not exist.
        """
        path = Path(directory).expanduser().resolve()
        if not path.is_dir():
            raise ValueError(f"Sync directory does not exist: {directory}")

        with self._lock:
            if self._session is not None:
                if self._session.directory == path:
                    return
                self.stop()

            stored = self._store.load()
            if stored.directory != str(path):
                logger.info("Sync directory changed to %s, starting a fresh session", path)
                self._tracker.reset()
                self._store.update(
                    directory=str(path),
                    mappings=[],
                    last_sync_timestamp=None,
                    has_completed_initial_resolution=False,
                )

            self._watcher.start(path)
            snapshotter = RemoteSnapshotter(self._client)
            materializer = DirectoryMaterializer(path, self._config.ignore_patterns)
            self._session = SyncSession(
                directory=path,
                watcher=self._watcher,
                snapshotter=snapshotter,
                materializer=materializer,
                engine=ReconciliationEngine(
                    client=self._client,
                    snapshotter=snapshotter,
                    materializer=materializer,
                    tracker=self._tracker,
                    mirror_remote_deletions=self._config.mirror_remote_deletions,
                ),
            )
            self._last_error = None

        logger.info("Sync started for %s", path)
        self.tick()
        if schedule:
            self._arm_jobs()

    def stop(self) -> None:
        """Stop syncing.

        A pass already in flight completes and its result is persisted,
        but nothing further is scheduled. Conflict memory is cleared; the
        persisted session state is kept.
        """
        with self._lock:
            session = self._session
            jobs = self._jobs
            self._session = None
            self._jobs = None
            self._jobs_paused = False
            self._last_error = None

        if jobs is not None:
            jobs.shutdown(wait=False)
        if session is not None:
            session.watcher.stop()
            logger.info("Sync stopped for %s", session.directory)
        self._tracker.reset()
        self._transition(SyncState.IDLE)

    def _arm_jobs(self) -> None:
        with self._lock:
            if self._session is None or self._jobs is not None:
                return

            jobs = BackgroundScheduler()
            jobs.add_job(
                self._reconcile_job,
                trigger="interval",
                seconds=self._config.sync_interval,
                id=RECONCILE_JOB_ID,
                name="Full reconciliation",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            jobs.add_job(
                self._local_check_job,
                trigger="interval",
                seconds=self._config.local_check_interval,
                id=LOCAL_CHECK_JOB_ID,
                name="Local change check",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            jobs.start(paused=self._state is SyncState.CONFLICT_PENDING)
            self._jobs = jobs
            self._jobs_paused = self._state is SyncState.CONFLICT_PENDING

        logger.debug(
            "Interval jobs armed (reconcile every %.1fs, local check every %.1fs)",
            self._config.sync_interval,
            self._config.local_check_interval,
        )

    def _pause_jobs(self) -> None:
        with self._lock:
            if self._jobs is not None and not self._jobs_paused:
                self._jobs.pause()
                self._jobs_paused = True
                logger.debug("Interval jobs paused")

    def _resume_jobs(self) -> None:
        with self._lock:
            if self._jobs is not None and self._jobs_paused:
                self._jobs.resume()
                self._jobs_paused = False
                logger.debug("Interval jobs resumed")

    def _reconcile_job(self) -> None:
        """Job function for the full reconciliation interval."""
        try:
            self.tick()
        except Exception:
            logger.exception("Error during scheduled sync pass")

    def _local_check_job(self) -> None:
        """Job function for the local change interval."""
        session = self.session
        if session is None or session.watcher.pending() == 0:
            return
        try:
            self.tick()
        except Exception:
            logger.exception("Error during local change sync pass")

    # === Passes ===

    def tick(self) -> bool:
        """Run a pass unless one is in flight or conflicts are pending.

        Returns:
            True if a pass ran.
        """
        return self._begin_pass(allow_conflict_pending=False)

    def sync_now(self) -> bool:
        """Run a pass on request.

        Unlike tick(), this re-runs a pass that stopped on conflicts, once
        every one of them has been resolved.

        Returns:
            True if a pass ran.
        """
        return self._begin_pass(allow_conflict_pending=True)

    def _begin_pass(self, allow_conflict_pending: bool) -> bool:
        with self._lock:
            session = self._session
            if session is None:
                return False
            if self._pass_in_flight:
                logger.debug("Pass already in flight, skipping tick")
                return False
            if self._state is SyncState.CONFLICT_PENDING:
                if not allow_conflict_pending:
                    return False
                if self._tracker.has_live_conflicts:
                    logger.info("Conflicts still unresolved, not re-running the pass")
                    return False
            self._pass_in_flight = True
            self._state = SyncState.SYNCING
            session.passes += 1

        try:
            self._notify_state(SyncState.SYNCING)
            self._run_pass(session)
        finally:
            with self._lock:
                self._pass_in_flight = False
        return True

    def _run_pass(self, session: SyncSession) -> None:
        """Fetch, drain, scan, reconcile; in that order."""
        state = self._store.load()
        try:
            remote_files = session.snapshotter.fetch()
            changes = session.watcher.drain()
            listing = session.materializer.scan()
            result = session.engine.reconcile(
                PassInput(
                    mappings=state.mappings,
                    remote_files=remote_files,
                    changes=changes,
                    listing=listing,
                    has_completed_initial_resolution=state.has_completed_initial_resolution,
                    watcher_has_history=session.watcher.has_history,
                )
            )
        except RemoteUnavailable as e:
            self._fail(session, f"Remote store unavailable: {e}")
        except SyncError as e:
            self._fail(session, str(e))
        except OSError as e:
            self._fail(session, f"Local I/O error: {e}")
        except Exception as e:
            logger.exception("Unexpected error during sync pass")
            self._fail(session, f"Unexpected error: {e}")
        else:
            try:
                self._finish(session, result)
            except Exception as e:
                logger.exception("Could not record sync pass result")
                self._fail(session, f"Could not record pass result: {e}")

    def _finish(self, session: SyncSession, result: PassResult) -> None:
        with self._lock:
            stored = self._store.load()
            if stored.directory == str(session.directory):
                self._store.update(
                    mappings=result.mappings,
                    last_sync_timestamp=result.finished_at,
                )
            active = self._session is session
            if active:
                self._last_error = None
                self._state = (
                    SyncState.CONFLICT_PENDING
                    if isinstance(result, ConflictsPending)
                    else SyncState.IDLE
                )
            new_state = self._state

        if not active:
            logger.info("Pass finished after stop; result persisted")
            return

        self._notify_state(new_state)
        if isinstance(result, ConflictsPending):
            self._pause_jobs()
            if self._on_conflicts:
                self._callback(self._on_conflicts, list(result.conflicts))
        else:
            self._resume_jobs()
            if self._on_complete:
                self._callback(self._on_complete, result)

    def _fail(self, session: SyncSession, message: str) -> None:
        logger.warning("Sync pass failed: %s", message)
        with self._lock:
            if self._session is not session:
                return
            self._last_error = message
            self._state = SyncState.ERROR
        self._notify_state(SyncState.ERROR)
        if self._on_error:
            self._callback(self._on_error, message)

    # === Conflicts ===

    def resolve_conflict(self, name: str, keep_local: bool) -> str | None:
        """Record a human choice for a live conflict.

        Resolving the last live conflict marks the session's initial
        resolution as done. The choice is applied by the next pass.

        Returns:
            Content the losing side will receive, or None for a stale name.
        """
        content = self._tracker.resolve(name, keep_local)
        if content is None:
            return None

        if not self._tracker.has_live_conflicts:
            state = self._store.load()
            if not state.has_completed_initial_resolution:
                self._store.update(has_completed_initial_resolution=True)
                logger.info("Initial conflict resolution complete; local edits now win")
        return content

    def abandon_conflicts(self) -> None:
        """Drop the live conflict set without resolving it.

        The scheduler returns to IDLE and the next pass detects the same
        divergences again.
        """
        with self._lock:
            if self._state is not SyncState.CONFLICT_PENDING:
                return
            self._tracker.register([])
            self._state = SyncState.IDLE
        self._notify_state(SyncState.IDLE)
        self._resume_jobs()

    # === Helpers ===

    def _transition(self, new_state: SyncState) -> None:
        with self._lock:
            if self._state is new_state:
                return
            self._state = new_state
        self._notify_state(new_state)

    @staticmethod
    def _callback(callback: Callable[[Any], None], payload: Any) -> None:
        try:
            callback(payload)
        except Exception:
            logger.exception("Sync callback %s failed", getattr(callback, "__name__", callback))

    def _notify_state(self, new_state: SyncState) -> None:
        logger.debug("Sync state -> %s", new_state.value)
        if self._on_state_change:
            try:
                self._on_state_change(new_state)
            except Exception:
                logger.exception("State change callback failed")
