"""Ignore rules for the synced directory.

This module provides:
- IgnorePatterns: Hidden-path exclusion plus gitignore-style patterns
- DEFAULT_IGNORE_PATTERNS: Editor and OS litter that is never synced
"""

from __future__ import annotations

import fnmatch
from pathlib import Path

IGNORE_FILE_NAME = ".codesyncignore"

# Dot-prefixed paths are always excluded; these cover the rest
DEFAULT_IGNORE_PATTERNS = [
    "Thumbs.db",
    "*.tmp",
    "*.temp",
    "~*",
    "*~",
    "*.swp",
    "*.swo",
]


def is_hidden(rel_path: str) -> bool:
    """Check if any component of a relative path starts with a dot."""
    return any(part.startswith(".") for part in rel_path.split("/") if part)


class IgnorePatterns:
    """Decides which paths under the sync root are left alone."""

    def __init__(self, patterns: list[str] | None = None) -> None:
        """Initialize with patterns.

        Args:
            patterns: Extra gitignore-style patterns.
        """
        self._patterns = list(DEFAULT_IGNORE_PATTERNS)
        if patterns:
            self._patterns.extend(patterns)

    @property
    def patterns(self) -> list[str]:
        """Active patterns, defaults first."""
        return list(self._patterns)

    def add_pattern(self, pattern: str) -> None:
        """Add an ignore pattern."""
        self._patterns.append(pattern)

    def load_from_file(self, path: Path) -> None:
        """Load patterns from an ignore file, if it exists."""
        if path.exists():
            with open(path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#"):
                        self._patterns.append(line)

    def matches(self, rel_path: str) -> bool:
        """Check a relative, forward-slash path against the rules.

        Args:
            rel_path: Path relative to the sync root.

        Returns:
            True if the path should be ignored.
        """
        if is_hidden(rel_path):
            return True

        name = rel_path.rsplit("/", 1)[-1]
        for pattern in self._patterns:
            # Directory patterns match the directory and everything below it
            if pattern.endswith("/"):
                prefix = pattern[:-1]
                parts = rel_path.split("/")
                if any(fnmatch.fnmatch(part, prefix) for part in parts[:-1]):
                    return True
                if fnmatch.fnmatch(rel_path, prefix):
                    return True
            elif "**" in pattern or "/" in pattern:
                if fnmatch.fnmatch(rel_path, pattern):
                    return True
            elif fnmatch.fnmatch(rel_path, pattern) or fnmatch.fnmatch(name, pattern):
                return True

        return False

    def should_ignore(self, path: Path, base_path: Path) -> bool:
        """Check if an absolute path should be ignored.

        Args:
            path: Absolute path to check.
            base_path: Sync root.

        Returns:
            True if the path should be ignored. Symlinks are always ignored.
        """
        if path.is_symlink():
            return True

        try:
            rel_path = path.relative_to(base_path)
        except ValueError:
            return False

        return self.matches(str(rel_path).replace("\\", "/"))
