"""Container backend protocol for isolated execution environments."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True)
class Mount:
    """A host directory bound into the container."""

    source: Path
    target: str
    read_only: bool = False


@dataclass(frozen=True)
class ContainerSpec:
    """Everything needed to create one isolated execution."""

    image: str
    command: tuple[str, ...]
    working_dir: str
    mounts: tuple[Mount, ...] = ()
    environment: Mapping[str, str] = field(default_factory=dict)


class ContainerBackend(Protocol):
    """Protocol for container backends (Docker, local subprocess).

    Methods raise ``BackendError`` on failure; the provisioning and
    monitoring layers translate it into their own error types.
    """

    async def image_exists(self, image: str) -> bool:
        """Return True if the image is available locally."""
        ...

    async def pull_image(self, image: str) -> None:
        """Pull an image from its registry."""
        ...

    async def create(self, spec: ContainerSpec) -> str:
        """Create a container and return its ID."""
        ...

    async def start(self, container_id: str) -> None:
        """Start a created container."""
        ...

    async def wait(self, container_id: str) -> int:
        """Block until the container is no longer running; return its exit code."""
        ...

    async def logs(self, container_id: str) -> str:
        """Return stdout and stderr interleaved into one text."""
        ...

    async def remove(self, container_id: str) -> None:
        """Remove a container. No-op if it doesn't exist."""
        ...
