"""Pytest configuration and fixtures."""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from coderun_core.backends.files.local import LocalFileStore
from coderun_core.config import Config
from coderun_core.exceptions import BackendError, ExecutionNotFoundError
from coderun_core.orchestrator import Orchestrator
from coderun_core.protocols.container import ContainerSpec


@dataclass
class FakeContainer:
    spec: ContainerSpec
    started: bool = False


@dataclass
class FakeContainerBackend:
    """Scripted in-memory container backend.

    ``outputs`` maps file names to bytes written into the host source of the
    ``/artifacts`` mount when the container starts. ``fail`` names the
    operation that should raise ``BackendError``.
    """

    logs_text: str = ""
    exit_code: int = 0
    outputs: dict[str, bytes] = field(default_factory=dict)
    present_images: set[str] = field(default_factory=set)
    fail: str | None = None
    delay: float = 0.0
    calls: list[tuple[str, Any]] = field(default_factory=list)
    containers: dict[str, FakeContainer] = field(default_factory=dict)
    specs: list[ContainerSpec] = field(default_factory=list)

    def _maybe_fail(self, operation: str) -> None:
        if self.fail == operation:
            raise BackendError(f"{operation} failed")

    async def image_exists(self, image: str) -> bool:
        self.calls.append(("image_exists", image))
        return image in self.present_images

    async def pull_image(self, image: str) -> None:
        self.calls.append(("pull_image", image))
        self._maybe_fail("pull")
        self.present_images.add(image)

    async def create(self, spec: ContainerSpec) -> str:
        self.calls.append(("create", spec))
        self._maybe_fail("create")
        container_id = f"c{len(self.containers) + 1:04d}"
        self.containers[container_id] = FakeContainer(spec=spec)
        self.specs.append(spec)
        return container_id

    async def start(self, container_id: str) -> None:
        self.calls.append(("start", container_id))
        self._maybe_fail("start")
        container = self.containers[container_id]
        container.started = True
        for mount in container.spec.mounts:
            if mount.target == "/artifacts":
                for name, content in self.outputs.items():
                    (Path(mount.source) / name).write_bytes(content)

    async def wait(self, container_id: str) -> int:
        self.calls.append(("wait", container_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        self._maybe_fail("wait")
        return self.exit_code

    async def logs(self, container_id: str) -> str:
        self.calls.append(("logs", container_id))
        if container_id not in self.containers:
            raise ExecutionNotFoundError(f"Container not found: {container_id}")
        return self.logs_text

    async def remove(self, container_id: str) -> None:
        self.calls.append(("remove", container_id))
        self.containers.pop(container_id, None)

    def called(self, operation: str) -> list[Any]:
        return [arg for name, arg in self.calls if name == operation]


@pytest.fixture
def sample_config_dict(tmp_path):
    """Sample configuration dictionary for testing."""
    return {
        "runtime": {"backend": "local"},
        "artifacts": {"backend": "local", "path": str(tmp_path / "durable"), "user_dir": None},
        "progress": {"poll_interval_seconds": 0.01},
        "logging": {"level": "DEBUG", "format": "text"},
    }


@pytest.fixture
def make_backend():
    """Factory for scripted backends (no images present unless given)."""
    return FakeContainerBackend


@pytest.fixture
def fake_backend():
    """Scripted container backend with the default images already present."""
    from coderun_core.languages import SUPPORTED_LANGUAGES

    return FakeContainerBackend(
        present_images={profile.image for profile in SUPPORTED_LANGUAGES.values()},
    )


@pytest.fixture
def file_store(tmp_path):
    """Durable file store rooted in a temporary directory."""
    return LocalFileStore(path=str(tmp_path / "durable"))


@pytest.fixture
def orchestrator(sample_config_dict, fake_backend, file_store):
    """Orchestrator wired to the fake backend and a temporary store."""
    return Orchestrator(
        Config.from_dict(sample_config_dict),
        backend=fake_backend,
        file_store=file_store,
    )
