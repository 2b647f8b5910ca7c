"""Local directory reads and writes.

This module provides:
- DirectoryMaterializer: Applies writes/deletions to the sync folder and
  lists its text files

Failures are per file. A write or delete that fails is reported in the
result and the rest of the batch carries on.
"""

from __future__ import annotations

import contextlib
import logging
import os
from collections.abc import Collection, Sequence
from pathlib import Path, PurePosixPath

from codesync.client.sync.ignore import IGNORE_FILE_NAME, IgnorePatterns
from codesync.client.sync.types import (
    FileWrite,
    LocalIOError,
    LocalListing,
    MaterializeResult,
)

logger = logging.getLogger(__name__)


def read_text(path: Path) -> str:
    """Read a UTF-8 file without newline translation."""
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


class DirectoryMaterializer:
    """Reads and writes text files under one root directory."""

    def __init__(self, base_path: Path | str, ignore_patterns: list[str] | None = None) -> None:
        """Initialize the materializer.

        Args:
            base_path: Root of the sync folder.
            ignore_patterns: Extra patterns excluded from scan().
        """
        self._base_path = Path(base_path).resolve()
        self._ignore = IgnorePatterns(ignore_patterns)
        self._ignore.load_from_file(self._base_path / IGNORE_FILE_NAME)

    @property
    def base_path(self) -> Path:
        """Root of the sync folder."""
        return self._base_path

    def is_ignored(self, name: str) -> bool:
        """Check a file name against the ignore rules used by scan()."""
        return self._ignore.matches(name)

    def resolve(self, name: str) -> Path:
        """Map a file name to an absolute path under the root.

        Raises:
            LocalIOError: If the name is absolute or escapes the root.
        """
        pure = PurePosixPath(name)
        if not name or pure.is_absolute() or ".." in pure.parts:
            raise LocalIOError(name, "path escapes the sync folder")
        return self._base_path.joinpath(*pure.parts)

    # === Writes ===

    def write(self, name: str, content: str) -> Path:
        """Write one file atomically, creating parent directories.

        The content goes to a temporary file first and is renamed into
        place, so a failed write never leaves a truncated file.

        Raises:
            LocalIOError: If the file cannot be written.
        """
        local_path = self.resolve(name)
        tmp_path = local_path.with_name(local_path.name + ".tmp")
        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            os.replace(tmp_path, local_path)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise LocalIOError(name, e.strerror or str(e)) from e
        return local_path

    def delete(self, name: str) -> bool:
        """Delete one file.

        Returns:
            True if a file was removed, False if it was already gone.

        Raises:
            LocalIOError: If the file exists but cannot be removed.
        """
        local_path = self.resolve(name)
        try:
            local_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise LocalIOError(name, e.strerror or str(e)) from e
        return True

    def apply(
        self,
        writes: Sequence[FileWrite],
        deletions: Sequence[str] = (),
        remote_names: Collection[str] = (),
    ) -> MaterializeResult:
        """Apply a batch of writes and deletions.

        Args:
            writes: Files to create or overwrite.
            deletions: Names to delete locally.
            remote_names: Names present in the current remote snapshot.
                Deleting any of them is refused.

        Returns:
            MaterializeResult listing written, skipped and deleted names,
            with an error message for each skipped one.
        """
        result = MaterializeResult()

        for item in writes:
            try:
                self.write(item.name, item.content)
            except LocalIOError as e:
                logger.warning("Skipping write of %s: %s", item.name, e)
                result.skipped.append(item.name)
                result.errors[item.name] = str(e)
            else:
                logger.debug("Wrote %s", item.name)
                result.written.append(item.name)

        protected = set(remote_names)
        for name in deletions:
            if name in protected:
                logger.warning("Refusing to delete %s: still present remotely", name)
                result.skipped.append(name)
                result.errors[name] = "still present remotely"
                continue
            try:
                self.delete(name)
            except LocalIOError as e:
                logger.warning("Skipping delete of %s: %s", name, e)
                result.skipped.append(name)
                result.errors[name] = str(e)
            else:
                logger.debug("Deleted %s", name)
                result.deleted.append(name)

        return result

    # === Reads ===

    def read(self, name: str) -> str:
        """Read one file as text.

        Raises:
            LocalIOError: If the file is missing, unreadable or not UTF-8.
        """
        local_path = self.resolve(name)
        try:
            return read_text(local_path)
        except (OSError, UnicodeDecodeError) as e:
            raise LocalIOError(name, str(e)) from e

    def scan(self) -> LocalListing:
        """List and read every non-ignored file under the root.

        Files that cannot be read are reported in errors instead of files.

        Raises:
            LocalIOError: If the root itself is missing.
        """
        if not self._base_path.is_dir():
            raise LocalIOError(str(self._base_path), "sync folder does not exist")

        listing = LocalListing()
        for root_str, dirs, files in os.walk(self._base_path):
            root = Path(root_str)

            dirs[:] = sorted(
                d for d in dirs
                if not self._ignore.should_ignore(root / d, self._base_path)
            )

            for filename in sorted(files):
                file_path = root / filename
                if self._ignore.should_ignore(file_path, self._base_path):
                    continue

                name = str(file_path.relative_to(self._base_path)).replace("\\", "/")
                try:
                    listing.files[name] = read_text(file_path)
                except (OSError, UnicodeDecodeError) as e:
                    logger.warning("Cannot read %s: %s", name, e)
                    listing.errors[name] = str(e)

        return listing
