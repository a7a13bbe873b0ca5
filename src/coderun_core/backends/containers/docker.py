"""Docker container backend driven through the Docker CLI."""

import asyncio
from typing import Any

from coderun_core.exceptions import BackendError, ExecutionNotFoundError
from coderun_core.observability import get_logger
from coderun_core.protocols.container import ContainerSpec, Mount

logger = get_logger(__name__)


def _decode(data: bytes | None) -> str:
    return data.decode("utf-8", errors="replace") if data else ""


class DockerBackend:
    """Runs sandboxes as Docker containers.

    Every operation shells out to the ``docker`` binary, so the daemon
    connection follows the CLI's own configuration (``DOCKER_HOST``,
    contexts).
    """

    def __init__(self, binary: str = "docker", **kwargs: Any) -> None:
        """Initialize Docker backend.

        Args:
            binary: Docker CLI executable
            **kwargs: Ignored (for compatibility with other backends)
        """
        self.binary = binary

    async def _run(self, *args: str, merge_stderr: bool = False) -> tuple[int, str, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT if merge_stderr else asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise BackendError(
                f"Docker CLI not found ({self.binary}). Install Docker or use the local backend."
            ) from e

        stdout, stderr = await proc.communicate()
        return proc.returncode or 0, _decode(stdout), _decode(stderr)

    @staticmethod
    def _failure(action: str, container_id: str | None, output: str) -> Exception:
        detail = output.strip() or "no output"
        if container_id and "no such container" in detail.lower():
            return ExecutionNotFoundError(f"Container not found: {container_id}")
        return BackendError(f"docker {action} failed: {detail}")

    @staticmethod
    def _volume(mount: Mount) -> str:
        volume = f"{mount.source.resolve()}:{mount.target}"
        return f"{volume}:ro" if mount.read_only else volume

    def build_create_args(self, spec: ContainerSpec) -> list[str]:
        """Build the ``docker create`` argument list for a spec."""
        args = ["create", "--workdir", spec.working_dir]
        for mount in spec.mounts:
            args.extend(["--volume", self._volume(mount)])
        for key, value in sorted(spec.environment.items()):
            args.extend(["--env", f"{key}={value}"])
        args.append(spec.image)
        args.extend(spec.command)
        return args

    async def image_exists(self, image: str) -> bool:
        """Return True if the image is present in the local image store."""
        returncode, _, _ = await self._run("image", "inspect", "--format", "{{.Id}}", image)
        return returncode == 0

    async def pull_image(self, image: str) -> None:
        """Pull an image."""
        returncode, _, stderr = await self._run("pull", "--quiet", image)
        if returncode != 0:
            raise self._failure("pull", None, stderr)

    async def create(self, spec: ContainerSpec) -> str:
        """Create a container and return its ID."""
        returncode, stdout, stderr = await self._run(*self.build_create_args(spec))
        if returncode != 0:
            raise self._failure("create", None, stderr)
        lines = stdout.strip().splitlines()
        if not lines:
            raise BackendError("docker create returned no container ID")
        return lines[-1].strip()

    async def start(self, container_id: str) -> None:
        """Start a created container."""
        returncode, _, stderr = await self._run("start", container_id)
        if returncode != 0:
            raise self._failure("start", container_id, stderr)

    async def wait(self, container_id: str) -> int:
        """Block until the container stops and return its exit code."""
        returncode, stdout, stderr = await self._run("wait", container_id)
        if returncode != 0:
            raise self._failure("wait", container_id, stderr)
        try:
            return int(stdout.strip().splitlines()[-1])
        except (IndexError, ValueError) as e:
            raise BackendError(f"docker wait returned unexpected output: {stdout!r}") from e

    async def logs(self, container_id: str) -> str:
        """Return stdout and stderr interleaved into one text."""
        returncode, output, _ = await self._run("logs", container_id, merge_stderr=True)
        if returncode != 0:
            raise self._failure("logs", container_id, output)
        return output

    async def remove(self, container_id: str) -> None:
        """Force-remove a container. No-op if it doesn't exist."""
        returncode, _, stderr = await self._run("rm", "--force", container_id)
        if returncode != 0 and "no such container" not in stderr.lower():
            raise self._failure("rm", container_id, stderr)
