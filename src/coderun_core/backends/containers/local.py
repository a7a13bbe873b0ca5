"""Local subprocess-based container backend for development."""

import asyncio
import os
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from coderun_core.exceptions import BackendError, ExecutionNotFoundError
from coderun_core.protocols.container import ContainerSpec


@dataclass
class _LocalContainer:
    spec: ContainerSpec
    cwd: str
    env: dict[str, str]
    task: asyncio.Task | None = None
    process: asyncio.subprocess.Process | None = None
    exit_code: int | None = None
    started: bool = False
    chunks: list[bytes] = field(default_factory=list)


class LocalBackend:
    """Runs sandbox commands as plain host subprocesses.

    WARNING: NOT for production use. Provides no isolation. Mounts are
    emulated by rewriting in-sandbox paths (working directory and
    environment values) to their host sources; the image is ignored.
    """

    def __init__(self, **kwargs: Any) -> None:
        """Initialize local backend.

        Args:
            **kwargs: Ignored (for compatibility with other backends)
        """
        self._containers: dict[str, _LocalContainer] = {}

    def _get(self, container_id: str) -> _LocalContainer:
        container = self._containers.get(container_id)
        if container is None:
            raise ExecutionNotFoundError(f"Container not found: {container_id}")
        return container

    @staticmethod
    def _host_path(spec: ContainerSpec, value: str) -> str:
        """Map an in-sandbox path onto the host directory bound there."""
        for mount in sorted(spec.mounts, key=lambda m: len(m.target), reverse=True):
            if value == mount.target:
                return str(mount.source)
            if value.startswith(mount.target.rstrip("/") + "/"):
                return str(mount.source) + value[len(mount.target.rstrip("/")):]
        return value

    async def image_exists(self, image: str) -> bool:
        return True

    async def pull_image(self, image: str) -> None:
        return None

    async def create(self, spec: ContainerSpec) -> str:
        """Register a container; nothing runs until ``start``."""
        if not spec.command:
            raise BackendError("Container command is empty")
        container_id = uuid4().hex
        env = dict(os.environ)
        env.update({k: self._host_path(spec, v) for k, v in spec.environment.items()})
        self._containers[container_id] = _LocalContainer(
            spec=spec,
            cwd=self._host_path(spec, spec.working_dir),
            env=env,
        )
        return container_id

    async def start(self, container_id: str) -> None:
        """Spawn the container's command."""
        container = self._get(container_id)
        if container.started:
            raise BackendError(f"Container already started: {container_id}")
        try:
            container.process = await asyncio.create_subprocess_exec(
                *container.spec.command,
                cwd=container.cwd,
                env=container.env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise BackendError(f"Failed to start process: {e}") from e
        container.started = True
        container.task = asyncio.create_task(self._collect(container))

    @staticmethod
    async def _collect(container: _LocalContainer) -> None:
        process = container.process
        assert process is not None and process.stdout is not None
        while chunk := await process.stdout.read(65536):
            container.chunks.append(chunk)
        container.exit_code = await process.wait()

    async def wait(self, container_id: str) -> int:
        """Wait for the process to exit and return its exit code."""
        container = self._get(container_id)
        if container.task is None:
            raise BackendError(f"Container not started: {container_id}")
        await container.task
        return container.exit_code if container.exit_code is not None else -1

    async def logs(self, container_id: str) -> str:
        """Return combined output captured so far."""
        container = self._get(container_id)
        data = b"".join(container.chunks)
        return data.decode("utf-8", errors="replace")

    async def remove(self, container_id: str) -> None:
        """Kill the process if still running and forget the container."""
        container = self._containers.pop(container_id, None)
        if container is None:
            return
        if container.process is not None and container.process.returncode is None:
            container.process.kill()
        if container.task is not None and not container.task.done():
            container.task.cancel()
            try:
                await container.task
            except asyncio.CancelledError:
                pass
