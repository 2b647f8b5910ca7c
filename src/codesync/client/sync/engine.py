"""Reconciliation engine: one bidirectional sync pass.

This module provides:
- PassInput: Everything one pass looks at
- SyncPlan: What a pass decided to do, per direction
- classify(): Pure three-way classification of every file name
- ReconciliationEngine: Applies a plan and rebuilds the file mappings

Classification joins the remote snapshot and the local listing by name:

    remote only      -> write locally (unless deleted locally in this batch)
    local only       -> create remotely (or delete locally in mirror mode)
    both, identical  -> nothing
    both, different  -> remembered resolution if it covers this divergence,
                        else local wins after the initial resolution,
                        else a conflict left untouched on both sides

The remote store is the authority for existence: a local deletion never
deletes remotely.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from codesync.client.api import RemoteError, RemoteFile, RemoteUnavailable
from codesync.client.state import FileMapping, MappingStatus
from codesync.client.sync.types import (
    ChangeKind,
    Conflict,
    ConflictsPending,
    FileWrite,
    LocalChange,
    LocalListing,
    PassReport,
    PassResult,
    SyncSuccess,
)

if TYPE_CHECKING:
    from codesync.client.api import DocumentClient
    from codesync.client.sync.conflicts import ConflictResolutionTracker
    from codesync.client.sync.materializer import DirectoryMaterializer
    from codesync.client.sync.snapshot import RemoteSnapshotter

logger = logging.getLogger(__name__)


@dataclass
class PassInput:
    """Inputs of one reconciliation pass.

    Attributes:
        mappings: Mappings produced by the previous pass.
        remote_files: Complete remote snapshot.
        changes: Local changes drained from the watcher for this pass.
        listing: Fresh listing of the local directory.
        has_completed_initial_resolution: Whether a human already resolved
            the first conflict set of this session.
        watcher_has_history: Whether the drained batch covers everything
            since the previous pass.
    """

    mappings: list[FileMapping]
    remote_files: list[RemoteFile]
    changes: list[LocalChange] = field(default_factory=list)
    listing: LocalListing = field(default_factory=LocalListing)
    has_completed_initial_resolution: bool = False
    watcher_has_history: bool = False


@dataclass
class SyncPlan:
    """Decisions of one pass.

    Attributes:
        local_writes: Remote content to write into the local directory.
        remote_writes: Local content to push to the remote store.
        local_deletions: Local files to delete (mirror mode only).
        conflicts: New divergences waiting for a human.
        auto_resolved: Divergences settled by keeping local content.
        resolved: Divergences settled by a remembered resolution.
        restore_deferred: Remote files deleted locally in this batch; they
            are written back on the next pass.
        ignored: Remote names excluded by the local ignore rules.
        errors: Names that could not be classified, with the reason.
    """

    local_writes: list[FileWrite] = field(default_factory=list)
    remote_writes: list[FileWrite] = field(default_factory=list)
    local_deletions: list[str] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    auto_resolved: list[str] = field(default_factory=list)
    resolved: list[str] = field(default_factory=list)
    restore_deferred: list[str] = field(default_factory=list)
    ignored: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def is_noop(self) -> bool:
        """True when the pass changes nothing on either side."""
        return not (self.local_writes or self.remote_writes or self.local_deletions)


def latest_changes(changes: list[LocalChange]) -> dict[str, LocalChange]:
    """Last change per path in a drained batch."""
    latest: dict[str, LocalChange] = {}
    for change in changes:
        latest[change.path] = change
    return latest


def classify(
    pass_input: PassInput,
    tracker: ConflictResolutionTracker,
    mirror_remote_deletions: bool = False,
    is_ignored: Callable[[str], bool] | None = None,
) -> SyncPlan:
    """Classify every file name of a pass.

    Args:
        pass_input: Snapshot, listing, drained changes and flags.
        tracker: Remembered resolutions for this session.
        mirror_remote_deletions: Delete local files that vanished remotely
            instead of creating them again on the remote side.
        is_ignored: Local ignore rules. Remote documents they match are
            never written locally nor mapped.

    Returns:
        The plan. Nothing is written here.
    """
    plan = SyncPlan()
    remote: dict[str, RemoteFile] = {}
    for remote_file in pass_input.remote_files:
        if is_ignored is not None and is_ignored(remote_file.name):
            logger.debug("Skipping ignored remote document %s", remote_file.name)
            plan.ignored.append(remote_file.name)
        else:
            remote[remote_file.name] = remote_file
    latest = latest_changes(pass_input.changes)

    local = dict(pass_input.listing.files)
    for name, message in pass_input.listing.errors.items():
        # Fall back to the content read when the event was observed
        change = latest.get(name)
        if change is not None and change.content is not None:
            local[name] = change.content
        else:
            plan.errors[name] = message

    # Mappings without an identity never reached the remote side
    previously_mapped = {m.local_path for m in pass_input.mappings if m.remote_identity}

    for name in sorted(set(remote) | set(local)):
        if name in plan.errors:
            continue

        remote_file = remote.get(name)
        local_content = local.get(name)

        if remote_file is not None and local_content is None:
            change = latest.get(name)
            if change is not None and change.kind is ChangeKind.REMOVED:
                logger.info("%s deleted locally, restoring from remote on next pass", name)
                plan.restore_deferred.append(name)
            else:
                plan.local_writes.append(FileWrite(name, remote_file.content))
            continue

        if remote_file is None and local_content is not None:
            if (
                mirror_remote_deletions
                and name in previously_mapped
                and name not in latest
                and pass_input.watcher_has_history
            ):
                plan.local_deletions.append(name)
            else:
                plan.remote_writes.append(FileWrite(name, local_content))
            continue

        assert remote_file is not None and local_content is not None
        if remote_file.content == local_content:
            continue

        resolution = tracker.resolution_for(name)
        if resolution is not None and resolution.matches(local_content, remote_file.content):
            if resolution.keep_local:
                plan.remote_writes.append(FileWrite(name, local_content))
            else:
                plan.local_writes.append(FileWrite(name, remote_file.content))
            plan.resolved.append(name)
        elif pass_input.has_completed_initial_resolution:
            plan.remote_writes.append(FileWrite(name, local_content))
            plan.auto_resolved.append(name)
        else:
            plan.conflicts.append(
                Conflict(
                    remote_identity=remote_file.identity,
                    name=name,
                    local_content=local_content,
                    remote_content=remote_file.content,
                )
            )

    return plan


def build_mappings(
    remote_files: list[RemoteFile],
    conflicts: list[Conflict],
    errors: dict[str, str],
    synced_at: float,
    ignored: Collection[str] = (),
) -> list[FileMapping]:
    """Rebuild the mapping list from a remote snapshot.

    One mapping per remote document, CONFLICT for pending conflicts and
    ERROR for files whose transfer failed in this pass. Failed files that
    exist only locally get an ERROR mapping with an empty identity.
    Ignored remote documents are not mapped.
    """
    conflicting = {c.name for c in conflicts}
    remote_names = {f.name for f in remote_files}
    mappings: list[FileMapping] = []
    for remote_file in sorted(remote_files, key=lambda f: f.name):
        if remote_file.name in ignored:
            continue
        if remote_file.name in conflicting:
            status = MappingStatus.CONFLICT
        elif remote_file.name in errors:
            status = MappingStatus.ERROR
        else:
            status = MappingStatus.SYNCED
        mappings.append(
            FileMapping(
                remote_identity=remote_file.identity,
                local_path=remote_file.name,
                status=status,
                last_sync_at=synced_at,
                error_message=errors.get(remote_file.name),
            )
        )

    for name in sorted(set(errors) - remote_names):
        mappings.append(
            FileMapping(
                remote_identity="",
                local_path=name,
                status=MappingStatus.ERROR,
                last_sync_at=synced_at,
                error_message=errors[name],
            )
        )
    mappings.sort(key=lambda m: m.local_path)
    return mappings


class ReconciliationEngine:
    """Runs classification and applies the resulting plan.

    Local writes go through the materializer; remote writes go through
    the document client one file at a time. Per-file failures are
    recorded and the pass carries on. RemoteUnavailable aborts the pass.
    """

    def __init__(
        self,
        client: DocumentClient,
        snapshotter: RemoteSnapshotter,
        materializer: DirectoryMaterializer,
        tracker: ConflictResolutionTracker,
        mirror_remote_deletions: bool = False,
    ) -> None:
        """Initialize the engine.

        Args:
            client: Remote store client used for writes.
            snapshotter: Re-fetches the remote snapshot after writes.
            materializer: Local directory writer.
            tracker: Conflict memory for the session.
            mirror_remote_deletions: See classify().
        """
        self._client = client
        self._snapshotter = snapshotter
        self._materializer = materializer
        self._tracker = tracker
        self._mirror_remote_deletions = mirror_remote_deletions

    @property
    def tracker(self) -> ConflictResolutionTracker:
        """Conflict memory used by this engine."""
        return self._tracker

    def reconcile(self, pass_input: PassInput) -> PassResult:
        """Run one pass.

        Returns:
            SyncSuccess, or ConflictsPending when new conflicts need a human.
            Non-conflicting files are propagated either way.

        Raises:
            RemoteUnavailable: If the store stops answering mid-pass.
        """
        plan = classify(
            pass_input,
            self._tracker,
            self._mirror_remote_deletions,
            is_ignored=self._materializer.is_ignored,
        )
        report = PassReport(
            auto_resolved=list(plan.auto_resolved),
            resolved=list(plan.resolved),
            errors=dict(plan.errors),
        )

        remote_names = {f.name for f in pass_input.remote_files}
        if plan.local_writes or plan.local_deletions:
            applied = self._materializer.apply(
                plan.local_writes,
                plan.local_deletions,
                remote_names=remote_names,
            )
            report.downloaded.extend(applied.written)
            report.deleted.extend(applied.deleted)
            report.errors.update(applied.errors)

        for item in plan.remote_writes:
            try:
                self._client.create_or_update(item.name, item.content)
            except RemoteUnavailable:
                raise
            except RemoteError as e:
                logger.warning("Remote write of %s failed: %s", item.name, e)
                report.errors[item.name] = str(e)
            else:
                logger.debug("Pushed %s", item.name)
                report.uploaded.append(item.name)

        remote_files = pass_input.remote_files
        if report.uploaded:
            remote_files = self._snapshotter.fetch()

        finished_at = time.time()
        mappings = build_mappings(
            remote_files,
            plan.conflicts,
            report.errors,
            finished_at,
            ignored=set(plan.ignored),
        )

        self._tracker.register(plan.conflicts)

        if plan.conflicts:
            logger.info(
                "Pass found %d conflicts (%d changes applied)",
                len(plan.conflicts),
                report.total_changes,
            )
            return ConflictsPending(
                conflicts=plan.conflicts,
                report=report,
                mappings=mappings,
                finished_at=finished_at,
            )

        if report.total_changes:
            logger.info(
                "Pass complete: %d uploaded, %d downloaded, %d deleted",
                len(report.uploaded),
                len(report.downloaded),
                len(report.deleted),
            )
        return SyncSuccess(report=report, mappings=mappings, finished_at=finished_at)
