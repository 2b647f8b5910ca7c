"""HTTP client for the remote document store.

This module provides:
- DocumentClient: HTTP client for listing, writing and deleting documents
- RemoteFile: Document as returned by the store
- RemoteError / RemoteUnavailable: Failure taxonomy for remote calls
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from codesync.core.types import SyncError
from codesync.core.config import ServerConfig

logger = logging.getLogger(__name__)

TOTAL_COUNT_HEADER = "X-Total-Count"


class RemoteError(SyncError):
    """The store rejected a request (non-success response)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteUnavailable(RemoteError):
    """The store could not be reached, or the request timed out."""


class NotFoundError(RemoteError):
    """Document not found."""


@dataclass(frozen=True)
class RemoteFile:
    """Document held by the remote store."""

    identity: str
    name: str
    content: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteFile:
        """Create from API response dictionary."""
        return cls(
            identity=str(data["id"]),
            name=data["name"],
            content=data["content"],
        )


def _quote_name(name: str) -> str:
    return quote(name, safe="/")


class DocumentClient:
    """HTTP client for the remote document store.

    Every transport-level failure (refused connection, DNS, timeout) is raised
    as RemoteUnavailable so callers can treat it as transient.
    """

    def __init__(
        self,
        config: ServerConfig,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the document client.

        Args:
            config: Server connection settings.
            http_client: Pre-built httpx client (e.g. a FastAPI TestClient).
                When omitted one is created from the config.
        """
        self._config = config
        headers = {}
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        if http_client is None:
            http_client = httpx.Client(
                base_url=config.server_url,
                timeout=config.timeout,
                verify=config.verify_ssl,
                headers=headers,
            )
        else:
            http_client.headers.update(headers)
        self._client = http_client

    @property
    def server_url(self) -> str:
        """Base URL of the store."""
        return self._config.server_url

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> DocumentClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping transport failures to RemoteUnavailable."""
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteUnavailable(
                f"Timed out after {self._config.timeout:.0f}s: {method} {url}"
            ) from e
        except httpx.TransportError as e:
            raise RemoteUnavailable(f"Cannot reach {self.server_url}: {e}") from e
        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code == 404:
            raise NotFoundError(self._detail(response, "Document not found"), 404)
        if response.status_code in (502, 503, 504):
            raise RemoteUnavailable(
                self._detail(response, "Store unavailable"), response.status_code
            )
        if response.status_code >= 400:
            raise RemoteError(
                self._detail(response, "Unknown error"), response.status_code
            )
        return response

    @staticmethod
    def _detail(response: httpx.Response, default: str) -> str:
        try:
            return str(response.json().get("detail", default))
        except (ValueError, AttributeError):
            return default

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        """Decode a JSON body, mapping garbage to RemoteError."""
        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(
                f"Malformed response body: {e}", response.status_code
            ) from e

    @staticmethod
    def _parse_file(data: Any) -> RemoteFile:
        try:
            return RemoteFile.from_dict(data)
        except (KeyError, TypeError) as e:
            raise RemoteError(f"Malformed document in response: {e!r}") from e

    # === Health check ===

    def health_check(self) -> bool:
        """Check if the store is reachable and healthy.

        Returns:
            True if the store answered the health endpoint.
        """
        try:
            response = self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Document operations ===

    def list_files(self) -> list[RemoteFile]:
        """List every document in the store.

        Returns:
            All documents.

        Raises:
            RemoteError: If the listing is incomplete (fewer items than the
                store reports in X-Total-Count) or cannot be decoded.
        """
        response = self._request("GET", "/api/files")
        body = self._decode(response)
        if not isinstance(body, list):
            raise RemoteError("Malformed listing: expected a JSON array")
        files = [self._parse_file(f) for f in body]

        total = response.headers.get(TOTAL_COUNT_HEADER)
        if total is not None:
            try:
                expected = int(total)
            except ValueError as e:
                raise RemoteError(f"Malformed {TOTAL_COUNT_HEADER} header: {total!r}") from e
            if expected != len(files):
                raise RemoteError(
                    f"Incomplete listing: got {len(files)} of {total} documents"
                )
        return files

    def create_or_update(self, name: str, content: str) -> RemoteFile:
        """Create a document, or replace the content of an existing one.

        Args:
            name: Document name (path-like).
            content: Full text content.

        Returns:
            The stored document.
        """
        response = self._request(
            "PUT",
            f"/api/files/{_quote_name(name)}",
            json={"content": content},
        )
        logger.debug("Wrote remote document %s (%d)", name, response.status_code)
        return self._parse_file(self._decode(response))

    def delete(self, name: str) -> None:
        """Delete a document.

        Args:
            name: Document name.

        Raises:
            NotFoundError: If the document does not exist.
        """
        self._request("DELETE", f"/api/files/{_quote_name(name)}")
