"""FileStore protocol for durable artifact storage backends."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True)
class FileMetadata:
    """Metadata returned from file operations."""

    key: str
    size: int
    content_type: str | None
    etag: str
    last_modified: datetime


class FileStore(Protocol):
    """Protocol for durable file storage keyed by ``<execution id>/<file name>``."""

    async def put(
        self,
        key: str,
        content: bytes,
        content_type: str | None = None,
    ) -> FileMetadata:
        """Store a file and return its metadata. Overwrites existing content."""
        ...

    async def get(self, key: str) -> tuple[bytes, FileMetadata] | None:
        """Retrieve a file and its metadata. Returns None if not found."""
        ...

    async def head(self, key: str) -> FileMetadata | None:
        """Get file metadata without reading content. Returns None if not found."""
        ...

    async def delete(self, key: str) -> None:
        """Delete a file. No-op if file doesn't exist."""
        ...

    def list(self, prefix: str) -> AsyncIterator[FileMetadata]:
        """List files matching a prefix."""
        ...

    def path_for(self, key: str) -> Path:
        """Durable location backing a key."""
        ...
