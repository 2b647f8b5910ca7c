"""Complete snapshots of the remote document store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from codesync.client.api import RemoteError, RemoteFile

if TYPE_CHECKING:
    from codesync.client.api import DocumentClient

logger = logging.getLogger(__name__)


class RemoteSnapshotter:
    """Fetches every document of the remote store in one call.

    The reconciliation engine reads absence from the snapshot as "does not
    exist remotely", so a snapshot is either complete or an exception.
    """

    def __init__(self, client: DocumentClient) -> None:
        self._client = client

    def fetch(self) -> list[RemoteFile]:
        """Fetch the full set of remote documents, sorted by name.

        Raises:
            RemoteUnavailable: If the store cannot be reached or times out.
            RemoteError: On a non-success response, an incomplete listing,
                or two documents sharing a name.
        """
        files = self._client.list_files()

        seen: set[str] = set()
        for remote in files:
            if remote.name in seen:
                raise RemoteError(f"Duplicate document name in listing: {remote.name}")
            seen.add(remote.name)

        logger.debug("Remote snapshot: %d documents", len(files))
        return sorted(files, key=lambda f: f.name)

    def by_name(self) -> dict[str, RemoteFile]:
        """Fetch a snapshot keyed by document name."""
        return {remote.name: remote for remote in self.fetch()}
