"""Local filesystem-based durable artifact storage."""

import asyncio
import atexit
import hashlib
import mimetypes
import os
from collections.abc import AsyncIterator
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import unquote

from coderun_core.protocols.file_store import FileMetadata

# Thread pool for async file I/O - configurable via environment
_max_workers = int(os.environ.get("CODERUN_FILE_WORKERS", "8"))
_executor = ThreadPoolExecutor(max_workers=_max_workers)

atexit.register(_executor.shutdown, wait=False)


class LocalFileStore:
    """Artifact storage rooted at a local directory.

    Keys map one-to-one onto relative paths, so ``<execution id>/<file name>``
    lands in one subdirectory per execution.
    """

    def __init__(self, path: str | None = None, **kwargs: Any) -> None:
        """Initialize local file store.

        The root directory is created lazily on first write.

        Args:
            path: Root directory for durable storage
            **kwargs: Ignored (for compatibility with other backends)
        """
        self.base_path = Path(path) if path else Path("./data/artifacts")

    def _get_path(self, key: str) -> Path:
        """Get the filesystem path for a key.

        Rejects keys that could escape the root, including URL-encoded
        traversal sequences.
        """
        decoded_key = unquote(key)

        if ".." in decoded_key.split("/") or decoded_key.startswith("/"):
            raise ValueError(f"Invalid key: {key}")

        if "\x00" in decoded_key or "\\" in decoded_key:
            raise ValueError(f"Invalid key: {key}")

        target_path = (self.base_path / decoded_key).resolve()

        try:
            target_path.relative_to(self.base_path.resolve())
        except ValueError:
            raise ValueError("Invalid key: path traversal detected")

        return target_path

    def path_for(self, key: str) -> Path:
        """Durable location backing a key."""
        return self._get_path(key)

    def _metadata(self, path: Path, key: str, content: bytes | None = None) -> FileMetadata:
        stat = path.stat()
        if content is not None:
            etag = hashlib.md5(content).hexdigest()
        else:
            # inode-size-mtime avoids reading the file
            fingerprint = f"{stat.st_ino}-{stat.st_size}-{int(stat.st_mtime * 1000)}"
            etag = hashlib.md5(fingerprint.encode()).hexdigest()
        return FileMetadata(
            key=key,
            size=stat.st_size,
            content_type=mimetypes.guess_type(path.name)[0],
            etag=etag,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    async def put(
        self,
        key: str,
        content: bytes,
        content_type: str | None = None,
    ) -> FileMetadata:
        """Store a file, overwriting any previous content under the key."""
        path = self._get_path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(_executor, _write)

        return FileMetadata(
            key=key,
            size=len(content),
            content_type=content_type or mimetypes.guess_type(path.name)[0],
            etag=hashlib.md5(content).hexdigest(),
            last_modified=datetime.now(timezone.utc),
        )

    async def get(self, key: str) -> tuple[bytes, FileMetadata] | None:
        """Retrieve a file and its metadata."""
        path = self._get_path(key)

        def _read() -> tuple[bytes, FileMetadata] | None:
            if not path.is_file():
                return None
            content = path.read_bytes()
            return content, self._metadata(path, key, content)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(_executor, _read)

    async def head(self, key: str) -> FileMetadata | None:
        """Get file metadata without content."""
        path = self._get_path(key)

        def _head() -> FileMetadata | None:
            if not path.is_file():
                return None
            return self._metadata(path, key)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(_executor, _head)

    async def delete(self, key: str) -> None:
        """Delete a file, and its execution directory once empty."""
        path = self._get_path(key)

        def _delete() -> None:
            if path.is_file():
                path.unlink()
            parent = path.parent
            if parent != self.base_path.resolve() and parent.is_dir() and not any(parent.iterdir()):
                parent.rmdir()

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(_executor, _delete)

    async def list(self, prefix: str) -> AsyncIterator[FileMetadata]:
        """List files whose key starts with a prefix, sorted by key."""
        root = self.base_path.resolve()

        def _list_files() -> list[tuple[Path, str]]:
            if not root.is_dir():
                return []
            results = []
            for path in root.rglob("*"):
                if path.is_file():
                    key = path.relative_to(root).as_posix()
                    if key.startswith(prefix):
                        results.append((path, key))
            return sorted(results, key=lambda item: item[1])

        loop = asyncio.get_running_loop()
        files = await loop.run_in_executor(_executor, _list_files)

        for path, key in files:
            yield self._metadata(path, key)
