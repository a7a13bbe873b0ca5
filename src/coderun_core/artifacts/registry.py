"""Index of harvested artifacts keyed by (execution id, file name)."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from coderun_core.artifacts.categories import ContentCategory, infer_category
from coderun_core.exceptions import ArtifactNotFoundError
from coderun_core.observability import get_logger
from coderun_core.protocols.file_store import FileStore

logger = get_logger(__name__)

ARTIFACT_SCHEME = "artifacts://"


def artifact_uri(execution_id: str, file_name: str) -> str:
    """Build the stable identifier for an artifact."""
    return f"{ARTIFACT_SCHEME}{execution_id}/{file_name}"


def parse_artifact_uri(uri: str) -> tuple[str, str]:
    """Split ``artifacts://<execution id>/<file name>`` into its parts.

    Raises:
        ValueError: If the identifier is malformed
    """
    if not uri.startswith(ARTIFACT_SCHEME):
        raise ValueError(f"Not an artifact URI: {uri}")
    execution_id, sep, file_name = uri[len(ARTIFACT_SCHEME):].partition("/")
    if not sep or not execution_id or not file_name or "/" in file_name:
        raise ValueError(f"Malformed artifact URI: {uri}")
    return execution_id, file_name


@dataclass(frozen=True)
class ArtifactRecord:
    """A harvested artifact and its durable location."""

    execution_id: str
    file_name: str
    path: Path
    category: ContentCategory

    @property
    def key(self) -> str:
        """Storage key of the durable copy."""
        return f"{self.execution_id}/{self.file_name}"

    @property
    def uri(self) -> str:
        return artifact_uri(self.execution_id, self.file_name)


@dataclass(frozen=True)
class ArtifactListing:
    """Listing entry returned for prefix queries."""

    uri: str
    file_name: str
    category: ContentCategory

    def to_dict(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "file_name": self.file_name,
            "category": self.category.value,
        }


class ArtifactRegistry:
    """In-memory artifact index owned by one orchestrator.

    The durable store is the record of truth; this index is not rebuilt from
    it unless ``rebuild`` is called. Registering an existing key replaces the
    entry (last write wins).
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], ArtifactRecord] = {}

    def register(self, execution_id: str, file_name: str, path: Path) -> ArtifactRecord:
        """Associate an artifact with its durable path."""
        record = ArtifactRecord(
            execution_id=execution_id,
            file_name=file_name,
            path=path,
            category=infer_category(file_name),
        )
        self._records[(execution_id, file_name)] = record
        return record

    def get(self, uri: str) -> ArtifactRecord:
        """Look up a record by identifier.

        Raises:
            ArtifactNotFoundError: If the identifier is unknown or malformed
        """
        try:
            key = parse_artifact_uri(uri)
        except ValueError as e:
            raise ArtifactNotFoundError(f"artifact not found: {uri}") from e
        record = self._records.get(key)
        if record is None:
            raise ArtifactNotFoundError(f"artifact not found: {uri}")
        return record

    def listings(self, prefix: str = ARTIFACT_SCHEME) -> list[ArtifactListing]:
        """List artifacts whose identifier starts with ``prefix``."""
        if prefix.startswith(ARTIFACT_SCHEME):
            prefix = prefix[len(ARTIFACT_SCHEME):]
        return [
            ArtifactListing(uri=record.uri, file_name=record.file_name, category=record.category)
            for record in self._records.values()
            if record.key.startswith(prefix)
        ]

    def records_for(self, execution_id: str) -> list[ArtifactRecord]:
        return [r for r in self._records.values() if r.execution_id == execution_id]

    def purge(self, execution_id: str) -> list[ArtifactRecord]:
        """Drop every record of an execution and return them."""
        removed = self.records_for(execution_id)
        for record in removed:
            del self._records[(record.execution_id, record.file_name)]
        return removed

    async def rebuild(self, store: FileStore) -> int:
        """Re-index every ``<execution id>/<file name>`` file in the store.

        Returns:
            Number of records registered
        """
        count = 0
        async for metadata in store.list(""):
            execution_id, sep, file_name = metadata.key.partition("/")
            if not sep or "/" in file_name:
                continue
            self.register(execution_id, file_name, store.path_for(metadata.key))
            count += 1
        logger.info("Artifact index rebuilt", context={"records": count})
        return count

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, uri: object) -> bool:
        if not isinstance(uri, str):
            return False
        try:
            return parse_artifact_uri(uri) in self._records
        except ValueError:
            return False
