"""Tests for the reconciliation engine."""

from pathlib import Path

import pytest

from codesync.client.api import RemoteFile, RemoteUnavailable
from codesync.client.state import FileMapping, MappingStatus
from codesync.client.sync.conflicts import ConflictResolutionTracker
from codesync.client.sync.engine import (
    PassInput,
    ReconciliationEngine,
    build_mappings,
    classify,
    latest_changes,
)
from codesync.client.sync.ignore import IgnorePatterns
from codesync.client.sync.materializer import DirectoryMaterializer
from codesync.client.sync.snapshot import RemoteSnapshotter
from codesync.client.sync.types import (
    ChangeKind,
    Conflict,
    ConflictsPending,
    LocalChange,
    LocalListing,
    SyncSuccess,
)


def remote(name: str, content: str, identity: str | None = None) -> RemoteFile:
    """Create a RemoteFile for testing."""
    return RemoteFile(identity=identity or f"id-{name}", name=name, content=content)


def mapping(name: str) -> FileMapping:
    """Create a SYNCED mapping for testing."""
    return FileMapping(remote_identity=f"id-{name}", local_path=name)


class Harness:
    """Engine wired to a fake store and a real folder."""

    def __init__(self, store, folder: Path, mirror: bool = False) -> None:
        self.store = store
        self.folder = folder
        self.tracker = ConflictResolutionTracker()
        self.materializer = DirectoryMaterializer(folder)
        self.engine = ReconciliationEngine(
            client=store,
            snapshotter=RemoteSnapshotter(store),
            materializer=self.materializer,
            tracker=self.tracker,
            mirror_remote_deletions=mirror,
        )
        self.mappings: list[FileMapping] = []
        self.initial_resolution_done = False

    def write_local(self, name: str, content: str) -> None:
        path = self.folder / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def read_local(self, name: str) -> str | None:
        path = self.folder / name
        return path.read_text(encoding="utf-8") if path.exists() else None

    def run(self, changes: list[LocalChange] | None = None, has_history: bool = True):
        result = self.engine.reconcile(
            PassInput(
                mappings=self.mappings,
                remote_files=RemoteSnapshotter(self.store).fetch(),
                changes=changes or [],
                listing=self.materializer.scan(),
                has_completed_initial_resolution=self.initial_resolution_done,
                watcher_has_history=has_history,
            )
        )
        self.mappings = result.mappings
        return result


@pytest.fixture
def harness(remote_store, sync_folder: Path) -> Harness:
    """Create an engine harness."""
    return Harness(remote_store, sync_folder)


class TestClassify:
    """Tests for the pure classification step."""

    def test_remote_only_is_written_locally(self) -> None:
        """Should plan a local write for a file only on the remote side."""
        plan = classify(
            PassInput(mappings=[], remote_files=[remote("a.md", "hello")]),
            ConflictResolutionTracker(),
        )

        assert [(w.name, w.content) for w in plan.local_writes] == [("a.md", "hello")]
        assert plan.remote_writes == []
        assert plan.conflicts == []

    def test_local_only_is_created_remotely(self) -> None:
        """Should plan a remote write for a file only on the local side."""
        plan = classify(
            PassInput(
                mappings=[],
                remote_files=[],
                listing=LocalListing(files={"notes.md": "draft"}),
            ),
            ConflictResolutionTracker(),
        )

        assert [(w.name, w.content) for w in plan.remote_writes] == [("notes.md", "draft")]
        assert plan.local_writes == []

    def test_identical_is_noop(self) -> None:
        """Should do nothing when both sides hold the same content."""
        plan = classify(
            PassInput(
                mappings=[mapping("a.md")],
                remote_files=[remote("a.md", "same")],
                listing=LocalListing(files={"a.md": "same"}),
            ),
            ConflictResolutionTracker(),
        )

        assert plan.is_noop
        assert plan.conflicts == []

    def test_divergent_before_initial_resolution_is_conflict(self) -> None:
        """Should surface a conflict and touch neither side."""
        plan = classify(
            PassInput(
                mappings=[mapping("a.md")],
                remote_files=[remote("a.md", "remote")],
                listing=LocalListing(files={"a.md": "local"}),
            ),
            ConflictResolutionTracker(),
        )

        assert plan.is_noop
        assert plan.conflicts == [
            Conflict(
                remote_identity="id-a.md",
                name="a.md",
                local_content="local",
                remote_content="remote",
            )
        ]

    def test_divergent_after_initial_resolution_local_wins(self) -> None:
        """Should push local content once the initial resolution is done."""
        plan = classify(
            PassInput(
                mappings=[mapping("a.md")],
                remote_files=[remote("a.md", "remote")],
                listing=LocalListing(files={"a.md": "local"}),
                has_completed_initial_resolution=True,
            ),
            ConflictResolutionTracker(),
        )

        assert [(w.name, w.content) for w in plan.remote_writes] == [("a.md", "local")]
        assert plan.auto_resolved == ["a.md"]
        assert plan.conflicts == []

    def test_remembered_resolution_keep_remote(self) -> None:
        """Should apply a remembered resolution for the same divergence."""
        tracker = ConflictResolutionTracker()
        tracker.register([Conflict("id-a.md", "a.md", "local", "remote")])
        tracker.resolve("a.md", keep_local=False)

        plan = classify(
            PassInput(
                mappings=[mapping("a.md")],
                remote_files=[remote("a.md", "remote")],
                listing=LocalListing(files={"a.md": "local"}),
            ),
            tracker,
        )

        assert [(w.name, w.content) for w in plan.local_writes] == [("a.md", "remote")]
        assert plan.resolved == ["a.md"]
        assert plan.conflicts == []

    def test_remembered_resolution_ignored_for_new_divergence(self) -> None:
        """Should treat a different divergence on a resolved name as new."""
        tracker = ConflictResolutionTracker()
        tracker.register([Conflict("id-a.md", "a.md", "local", "remote")])
        tracker.resolve("a.md", keep_local=True)

        plan = classify(
            PassInput(
                mappings=[mapping("a.md")],
                remote_files=[remote("a.md", "remote v2")],
                listing=LocalListing(files={"a.md": "local"}),
            ),
            tracker,
        )

        assert plan.remote_writes == []
        assert [c.name for c in plan.conflicts] == ["a.md"]

    def test_local_removal_defers_restore(self) -> None:
        """Should not restore a file deleted locally in the same batch."""
        plan = classify(
            PassInput(
                mappings=[mapping("a.md")],
                remote_files=[remote("a.md", "hello")],
                changes=[LocalChange(kind=ChangeKind.REMOVED, path="a.md")],
            ),
            ConflictResolutionTracker(),
        )

        assert plan.local_writes == []
        assert plan.restore_deferred == ["a.md"]

    def test_removal_then_readd_restores(self) -> None:
        """Should only look at the last change per path."""
        plan = classify(
            PassInput(
                mappings=[mapping("a.md")],
                remote_files=[remote("a.md", "hello")],
                changes=[
                    LocalChange(kind=ChangeKind.REMOVED, path="a.md"),
                    LocalChange(kind=ChangeKind.ADDED, path="a.md", content="x"),
                ],
            ),
            ConflictResolutionTracker(),
        )

        assert [w.name for w in plan.local_writes] == ["a.md"]
        assert plan.restore_deferred == []

    def test_unreadable_file_falls_back_to_event_content(self) -> None:
        """Should use content captured by the watcher when the scan failed."""
        plan = classify(
            PassInput(
                mappings=[],
                remote_files=[],
                changes=[LocalChange(kind=ChangeKind.MODIFIED, path="a.md", content="seen")],
                listing=LocalListing(errors={"a.md": "Permission denied"}),
            ),
            ConflictResolutionTracker(),
        )

        assert [(w.name, w.content) for w in plan.remote_writes] == [("a.md", "seen")]
        assert plan.errors == {}

    def test_unreadable_file_without_event_is_error(self) -> None:
        """Should leave an unreadable file alone and report it."""
        plan = classify(
            PassInput(
                mappings=[mapping("a.md")],
                remote_files=[remote("a.md", "hello")],
                listing=LocalListing(errors={"a.md": "Permission denied"}),
            ),
            ConflictResolutionTracker(),
        )

        assert plan.is_noop
        assert plan.errors == {"a.md": "Permission denied"}

    def test_mirror_deletes_previously_mapped_local_file(self) -> None:
        """Should delete locally when mirroring a remote deletion."""
        plan = classify(
            PassInput(
                mappings=[mapping("gone.md")],
                remote_files=[],
                listing=LocalListing(files={"gone.md": "old"}),
                watcher_has_history=True,
            ),
            ConflictResolutionTracker(),
            mirror_remote_deletions=True,
        )

        assert plan.local_deletions == ["gone.md"]
        assert plan.remote_writes == []

    def test_mirror_keeps_locally_changed_file(self) -> None:
        """Should re-create remotely when the file changed locally in the batch."""
        plan = classify(
            PassInput(
                mappings=[mapping("gone.md")],
                remote_files=[],
                changes=[LocalChange(kind=ChangeKind.MODIFIED, path="gone.md", content="new")],
                listing=LocalListing(files={"gone.md": "new"}),
                watcher_has_history=True,
            ),
            ConflictResolutionTracker(),
            mirror_remote_deletions=True,
        )

        assert plan.local_deletions == []
        assert [w.name for w in plan.remote_writes] == ["gone.md"]

    def test_mirror_requires_watcher_history(self) -> None:
        """Should not delete when the batch may have missed local edits."""
        plan = classify(
            PassInput(
                mappings=[mapping("gone.md")],
                remote_files=[],
                listing=LocalListing(files={"gone.md": "old"}),
                watcher_has_history=False,
            ),
            ConflictResolutionTracker(),
            mirror_remote_deletions=True,
        )

        assert plan.local_deletions == []
        assert [w.name for w in plan.remote_writes] == ["gone.md"]

    def test_ignored_remote_names_are_left_alone(self) -> None:
        """Should not plan writes for remote documents the ignore rules exclude."""
        plan = classify(
            PassInput(
                mappings=[],
                remote_files=[remote(".env", "y"), remote("a.md", "a"), remote("notes.tmp", "x")],
            ),
            ConflictResolutionTracker(),
            is_ignored=IgnorePatterns().matches,
        )

        assert [w.name for w in plan.local_writes] == ["a.md"]
        assert plan.ignored == [".env", "notes.tmp"]
        assert plan.errors == {}

    def test_failed_local_file_is_not_mirrored_away(self) -> None:
        """Should upload a local file whose mapping only records a failure."""
        failed = FileMapping("", "a.md", MappingStatus.ERROR, error_message="rejected")

        plan = classify(
            PassInput(
                mappings=[failed],
                remote_files=[],
                listing=LocalListing(files={"a.md": "x"}),
                watcher_has_history=True,
            ),
            ConflictResolutionTracker(),
            mirror_remote_deletions=True,
        )

        assert [w.name for w in plan.remote_writes] == ["a.md"]
        assert plan.local_deletions == []

    def test_latest_changes_keeps_last_per_path(self) -> None:
        """Should keep the most recent change for each path."""
        first = LocalChange(kind=ChangeKind.ADDED, path="a.md", content="1")
        second = LocalChange(kind=ChangeKind.MODIFIED, path="a.md", content="2")
        other = LocalChange(kind=ChangeKind.ADDED, path="b.md", content="b")

        latest = latest_changes([first, other, second])

        assert latest == {"a.md": second, "b.md": other}


class TestBuildMappings:
    """Tests for mapping reconstruction."""

    def test_one_mapping_per_remote_document(self) -> None:
        """Should map every remote document, sorted by name."""
        mappings = build_mappings(
            [remote("b.md", "b"), remote("a.md", "a")],
            conflicts=[],
            errors={},
            synced_at=100.0,
        )

        assert [m.local_path for m in mappings] == ["a.md", "b.md"]
        assert [m.remote_identity for m in mappings] == ["id-a.md", "id-b.md"]
        assert all(m.status is MappingStatus.SYNCED for m in mappings)
        assert all(m.last_sync_at == 100.0 for m in mappings)

    def test_conflict_and_error_status(self) -> None:
        """Should flag conflicting and failed files."""
        mappings = build_mappings(
            [remote("a.md", "a"), remote("b.md", "b")],
            conflicts=[Conflict("id-a.md", "a.md", "x", "a")],
            errors={"b.md": "disk full"},
            synced_at=1.0,
        )

        assert mappings[0].status is MappingStatus.CONFLICT
        assert mappings[1].status is MappingStatus.ERROR
        assert mappings[1].error_message == "disk full"

    def test_local_only_failure_is_mapped(self) -> None:
        """Should add an ERROR mapping without identity for a local-only failure."""
        mappings = build_mappings(
            [remote("b.md", "b")],
            conflicts=[],
            errors={"a.md": "rejected", "c.md": "unreadable"},
            synced_at=1.0,
        )

        assert [m.local_path for m in mappings] == ["a.md", "b.md", "c.md"]
        assert [m.remote_identity for m in mappings] == ["", "id-b.md", ""]
        assert mappings[0].status is MappingStatus.ERROR
        assert mappings[0].error_message == "rejected"
        assert mappings[1].status is MappingStatus.SYNCED

    def test_ignored_documents_are_not_mapped(self) -> None:
        """Should leave ignored remote documents out of the mappings."""
        mappings = build_mappings(
            [remote(".env", "y"), remote("a.md", "a")],
            conflicts=[],
            errors={},
            synced_at=1.0,
            ignored={".env"},
        )

        assert [m.local_path for m in mappings] == ["a.md"]


class TestReconcile:
    """Tests for applying a pass end to end."""

    def test_initial_download(self, harness: Harness, remote_store) -> None:
        """Should write every remote document into an empty folder."""
        remote_store.seed("a.md", "alpha")
        remote_store.seed("docs/b.md", "beta")

        result = harness.run()

        assert isinstance(result, SyncSuccess)
        assert harness.read_local("a.md") == "alpha"
        assert harness.read_local("docs/b.md") == "beta"
        assert sorted(result.report.downloaded) == ["a.md", "docs/b.md"]
        assert remote_store.writes == []

    def test_local_file_is_uploaded(self, harness: Harness, remote_store) -> None:
        """Should create a local-only file remotely and map it."""
        harness.write_local("new.md", "fresh")

        result = harness.run()

        assert isinstance(result, SyncSuccess)
        assert remote_store.content("new.md") == "fresh"
        assert result.report.uploaded == ["new.md"]
        assert [m.local_path for m in result.mappings] == ["new.md"]
        assert result.mappings[0].remote_identity == remote_store.documents["new.md"].identity

    def test_upload_refetches_snapshot(self, harness: Harness, remote_store) -> None:
        """Should list the store again after pushing files."""
        harness.write_local("new.md", "fresh")

        harness.run()

        # One listing for the pass, one after the upload
        assert remote_store.list_calls == 2

    def test_conflict_leaves_both_sides(self, harness: Harness, remote_store) -> None:
        """Should report a conflict without overwriting either side."""
        remote_store.seed("a.md", "remote")
        harness.write_local("a.md", "local")

        result = harness.run()

        assert isinstance(result, ConflictsPending)
        assert result.names == ["a.md"]
        assert harness.read_local("a.md") == "local"
        assert remote_store.content("a.md") == "remote"
        assert result.mappings[0].status is MappingStatus.CONFLICT
        assert [c.name for c in harness.tracker.live()] == ["a.md"]

    def test_conflict_does_not_block_other_files(
        self, harness: Harness, remote_store
    ) -> None:
        """Should still propagate non-conflicting files."""
        remote_store.seed("a.md", "remote")
        remote_store.seed("b.md", "only remote")
        harness.write_local("a.md", "local")
        harness.write_local("c.md", "only local")

        result = harness.run()

        assert isinstance(result, ConflictsPending)
        assert harness.read_local("b.md") == "only remote"
        assert remote_store.content("c.md") == "only local"

    def test_resolution_keep_local_pushes(self, harness: Harness, remote_store) -> None:
        """Should push the local side after the human keeps it."""
        remote_store.seed("a.md", "remote")
        harness.write_local("a.md", "local")
        harness.run()

        assert harness.tracker.resolve("a.md", keep_local=True) == "local"
        result = harness.run()

        assert isinstance(result, SyncSuccess)
        assert remote_store.content("a.md") == "local"
        assert result.report.resolved == ["a.md"]

    def test_resolution_keep_remote_overwrites(self, harness: Harness, remote_store) -> None:
        """Should write the remote side locally after the human keeps it."""
        remote_store.seed("a.md", "remote")
        harness.write_local("a.md", "local")
        harness.run()

        harness.tracker.resolve("a.md", keep_local=False)
        result = harness.run()

        assert isinstance(result, SyncSuccess)
        assert harness.read_local("a.md") == "remote"
        assert remote_store.writes == []

    def test_auto_resolution_after_initial(self, harness: Harness, remote_store) -> None:
        """Should let local content win once the initial resolution is done."""
        remote_store.seed("a.md", "remote")
        harness.write_local("a.md", "local")
        harness.initial_resolution_done = True

        result = harness.run()

        assert isinstance(result, SyncSuccess)
        assert remote_store.content("a.md") == "local"
        assert result.report.auto_resolved == ["a.md"]

    def test_second_pass_is_idempotent(self, harness: Harness, remote_store) -> None:
        """Should change nothing when run again with no new changes."""
        remote_store.seed("a.md", "alpha")
        harness.write_local("b.md", "beta")
        harness.run()
        writes_before = list(remote_store.writes)

        result = harness.run()

        assert isinstance(result, SyncSuccess)
        assert result.report.total_changes == 0
        assert remote_store.writes == writes_before
        assert harness.read_local("a.md") == "alpha"

    def test_local_deletion_is_restored_later(self, harness: Harness, remote_store) -> None:
        """Should never delete remotely and restore on the following pass."""
        remote_store.seed("a.md", "alpha")
        harness.run()
        (harness.folder / "a.md").unlink()

        harness.run(changes=[LocalChange(kind=ChangeKind.REMOVED, path="a.md")])

        assert remote_store.content("a.md") == "alpha"
        assert harness.read_local("a.md") is None

        harness.run()

        assert harness.read_local("a.md") == "alpha"

    def test_mirror_mode_deletes_locally(self, remote_store, sync_folder: Path) -> None:
        """Should delete a local copy of a document removed remotely."""
        harness = Harness(remote_store, sync_folder, mirror=True)
        remote_store.seed("a.md", "alpha")
        harness.run()
        remote_store.delete("a.md")

        result = harness.run()

        assert result.report.deleted == ["a.md"]
        assert harness.read_local("a.md") is None
        assert result.mappings == []

    def test_without_mirror_recreates_remotely(self, harness: Harness, remote_store) -> None:
        """Should create a document again when it vanished remotely."""
        remote_store.seed("a.md", "alpha")
        harness.run()
        remote_store.delete("a.md")

        harness.run()

        assert remote_store.content("a.md") == "alpha"
        assert harness.read_local("a.md") == "alpha"

    def test_rejected_write_is_per_file(self, harness: Harness, remote_store) -> None:
        """Should record a rejected upload and carry on with the rest."""
        remote_store.rejected.add("bad.md")
        harness.write_local("bad.md", "x")
        harness.write_local("good.md", "y")

        result = harness.run()

        assert isinstance(result, SyncSuccess)
        assert result.report.uploaded == ["good.md"]
        assert "bad.md" in result.report.errors
        assert remote_store.content("good.md") == "y"
        bad = next(m for m in result.mappings if m.local_path == "bad.md")
        assert bad.status is MappingStatus.ERROR
        assert bad.remote_identity == ""
        assert bad.error_message == "Rejected by store"

    def test_rejected_write_retried_next_pass(self, harness: Harness, remote_store) -> None:
        """Should upload a previously rejected file once the store accepts it."""
        remote_store.rejected.add("bad.md")
        harness.write_local("bad.md", "x")
        harness.run()
        remote_store.rejected.clear()

        result = harness.run()

        assert result.report.uploaded == ["bad.md"]
        assert [m.status for m in result.mappings] == [MappingStatus.SYNCED]

    def test_ignored_remote_documents_stay_put(self, harness: Harness, remote_store) -> None:
        """Should never download documents the local ignore rules exclude."""
        remote_store.seed("notes.tmp", "x")
        remote_store.seed(".env", "y")
        remote_store.seed("x~", "z")
        remote_store.seed("a.md", "alpha")

        first = harness.run()
        second = harness.run()

        assert first.report.downloaded == ["a.md"]
        assert second.report.total_changes == 0
        assert not (harness.folder / "notes.tmp").exists()
        assert not (harness.folder / ".env").exists()
        assert [m.local_path for m in second.mappings] == ["a.md"]
        assert remote_store.content(".env") == "y"

    def test_unavailable_store_aborts(self, harness: Harness, remote_store) -> None:
        """Should propagate RemoteUnavailable from a write."""
        harness.write_local("a.md", "x")
        pass_input = PassInput(
            mappings=[],
            remote_files=[],
            listing=harness.materializer.scan(),
        )
        remote_store.unavailable = True

        with pytest.raises(RemoteUnavailable):
            harness.engine.reconcile(pass_input)

    def test_crlf_content_round_trips(self, harness: Harness, remote_store) -> None:
        """Should keep CRLF content byte for byte and not flag a conflict."""
        remote_store.seed("win.txt", "line1\r\nline2\r\n")
        harness.run()

        assert (harness.folder / "win.txt").read_bytes() == b"line1\r\nline2\r\n"

        result = harness.run()

        assert isinstance(result, SyncSuccess)
        assert result.report.total_changes == 0

    def test_no_content_lost(self, harness: Harness, remote_store) -> None:
        """Should keep every local and remote content somewhere after a pass."""
        remote_store.seed("shared.md", "remote side")
        remote_store.seed("remote.md", "r")
        harness.write_local("shared.md", "local side")
        harness.write_local("local.md", "l")

        harness.run()

        local_contents = {harness.read_local(n) for n in ("shared.md", "remote.md", "local.md")}
        remote_contents = {f.content for f in remote_store.documents.values()}
        everything = local_contents | remote_contents
        assert {"remote side", "local side", "r", "l"} <= everything
