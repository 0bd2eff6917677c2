"""
Blob Store — Abstract Base

The pipeline only speaks this protocol. Concrete backends (S3 today) are
handed to the pipeline per invocation, so there is no process-wide client
and a test can substitute an in-memory store.

Addressing: a blob is (container, key). A container is the backend's
top-level namespace (an S3 bucket).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from taxdoc.schemas.documents import CopyStatus


class BlobNotFoundError(FileNotFoundError):
    """Raised when a blob or container does not exist."""


@dataclass(frozen=True)
class CopyHandle:
    """
    Returned by start_copy and passed back to get_copy_status.

    expected_size / expected_etag describe what a finished destination must
    look like; the backend fills in whatever it can observe at copy start.
    """
    source_container:      str
    destination_container: str
    key:                   str
    expected_size:         int | None = None
    expected_etag:         str | None = None
    copy_id:               str | None = None


class BlobStore(ABC):

    @abstractmethod
    async def get_metadata(self, container: str, key: str) -> dict[str, str]:
        """Return the blob's user metadata. Raises BlobNotFoundError if absent."""

    @abstractmethod
    async def set_metadata(self, container: str, key: str, metadata: dict[str, str]) -> None:
        """Replace the blob's user metadata in one call."""

    @abstractmethod
    async def start_copy(
        self,
        source_container:      str,
        key:                   str,
        destination_container: str,
    ) -> CopyHandle:
        """Start a server-side copy to the same key, preserving metadata."""

    @abstractmethod
    async def get_copy_status(self, handle: CopyHandle) -> CopyStatus:
        """Observe the destination side of a copy."""

    @abstractmethod
    async def delete(self, container: str, key: str) -> None:
        """Permanently remove a blob."""

    @abstractmethod
    async def create_container_if_absent(self, container: str) -> bool:
        """Create the container. Returns False if it already existed. Safe under races."""

    @abstractmethod
    async def document_url(self, container: str, key: str) -> str:
        """A URL the analysis service can fetch the blob from."""
