"""Harvesting of sandbox output files into durable storage."""

import os
import stat
from pathlib import Path

from coderun_core.artifacts.categories import media_type
from coderun_core.artifacts.registry import ArtifactRegistry
from coderun_core.exceptions import ArtifactCollectionFailedError
from coderun_core.observability import emit_counter, get_logger
from coderun_core.protocols.file_store import FileStore

logger = get_logger(__name__)

# Symlinks must not be followed: a link created in the sandbox would resolve on the host
_OPEN_FLAGS = os.O_RDONLY | getattr(os, "O_NOFOLLOW", 0) | getattr(os, "O_NONBLOCK", 0)


def _read_regular_file(path: str) -> bytes:
    fd = os.open(path, _OPEN_FLAGS)
    with os.fdopen(fd, "rb") as f:
        if not stat.S_ISREG(os.fstat(f.fileno()).st_mode):
            raise OSError(f"not a regular file: {path}")
        return f.read()


class ArtifactCollector:
    """Copies files out of an artifact directory and registers them.

    A file that cannot be read or stored is skipped; only failure to list the
    directory aborts collection.
    """

    def __init__(self, store: FileStore, registry: ArtifactRegistry) -> None:
        """Initialize collector.

        Args:
            store: Durable storage receiving one copy per artifact
            registry: Index the durable copies are registered in
        """
        self.store = store
        self.registry = registry

    async def collect(
        self,
        execution_id: str,
        artifacts_dir: Path,
        destination: Path | None = None,
    ) -> list[str]:
        """Harvest the top level of ``artifacts_dir``.

        Args:
            execution_id: Namespace for the durable copies
            artifacts_dir: Host directory bound at the sandbox's artifact path
            destination: Optional extra copy target chosen by the caller

        Returns:
            ``artifacts://<execution id>/<file name>`` identifiers, by file name

        Raises:
            ArtifactCollectionFailedError: If the directory cannot be listed
        """
        try:
            with os.scandir(artifacts_dir) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            raise ArtifactCollectionFailedError(
                f"failed to read artifacts directory: {e}",
                execution_id=execution_id,
            ) from e

        if not entries:
            logger.debug("No artifacts found", context={"execution_id": execution_id})
            return []

        uris: list[str] = []
        for entry in entries:
            name = entry.name
            if entry.is_symlink():
                logger.warning("Skipping symlinked artifact", context={"file": name})
                continue
            if not entry.is_file(follow_symlinks=False):
                continue

            try:
                content = _read_regular_file(entry.path)
            except OSError as e:
                logger.warning("Failed to read artifact", context={"file": name}, error=e)
                continue

            key = f"{execution_id}/{name}"
            try:
                await self.store.put(key, content, content_type=media_type(name))
                durable_path = self.store.path_for(key)
            except (OSError, ValueError) as e:
                logger.warning(
                    "Failed to write artifact to durable storage",
                    context={"file": name},
                    error=e,
                )
                continue

            if destination is not None:
                self._copy_to_destination(destination, name, content)

            record = self.registry.register(execution_id, name, durable_path)
            uris.append(record.uri)
            emit_counter("artifacts.collected", {"category": record.category.value})

        logger.info(
            "Artifacts collected",
            context={"execution_id": execution_id, "count": len(uris)},
        )
        return uris

    @staticmethod
    def _copy_to_destination(destination: Path, name: str, content: bytes) -> None:
        """Best-effort copy; the durable copy already guarantees retrieval."""
        try:
            destination.mkdir(parents=True, exist_ok=True)
            (destination / name).write_bytes(content)
        except OSError as e:
            logger.warning(
                "Failed to copy artifact to output directory",
                context={"file": name, "destination": str(destination)},
                error=e,
            )
