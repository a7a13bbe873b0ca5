"""Sandbox provisioning: image readiness, mounts, environment, create and start."""

from pathlib import Path

from coderun_core.exceptions import BackendError, ProvisionFailedError
from coderun_core.languages import RuntimeProfile
from coderun_core.observability import Timer, emit_timer, get_logger
from coderun_core.protocols.container import ContainerBackend, ContainerSpec, Mount
from coderun_core.sandbox.commands import CommandPlan
from coderun_core.sandbox.workspace import (
    ARTIFACTS_MOUNT,
    SOURCE_MOUNT,
    USER_ARTIFACTS_MOUNT,
    SandboxWorkspace,
)

logger = get_logger(__name__)


class SandboxProvisioner:
    """Turns a staged workspace and a command plan into a running container."""

    def __init__(
        self,
        backend: ContainerBackend,
        user_artifacts_dir: str | Path | None = None,
    ) -> None:
        """Initialize provisioner.

        Args:
            backend: Container backend used for image, create and start calls
            user_artifacts_dir: Host directory shared with every sandbox, if any
        """
        self.backend = backend
        self.user_artifacts_dir = Path(user_artifacts_dir) if user_artifacts_dir else None

    async def ensure_image(self, image: str) -> None:
        """Pull the image unless it is already present locally."""
        try:
            if await self.backend.image_exists(image):
                return
            logger.info("Pulling image", context={"image": image})
            async with Timer() as t:
                await self.backend.pull_image(image)
        except BackendError as e:
            raise ProvisionFailedError(f"failed to pull image {image}: {e}") from e
        logger.info("Image pulled", context={"image": image}, duration_ms=t.duration_ms)
        emit_timer("sandbox.image_pull", t.duration_ms)

    def _user_artifacts_mount(self) -> Mount | None:
        if self.user_artifacts_dir is None:
            return None
        try:
            self.user_artifacts_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # The mount is still attempted; the backend reports if it cannot bind
            logger.warning(
                "Failed to create user artifacts directory",
                context={"path": str(self.user_artifacts_dir)},
                error=e,
            )
        return Mount(source=self.user_artifacts_dir, target=USER_ARTIFACTS_MOUNT)

    def build_spec(
        self,
        profile: RuntimeProfile,
        workspace: SandboxWorkspace,
        plan: CommandPlan,
    ) -> ContainerSpec:
        """Assemble mounts, environment and command for the container."""
        mounts = [
            Mount(source=workspace.source_dir, target=SOURCE_MOUNT),
            Mount(source=workspace.artifacts_dir, target=ARTIFACTS_MOUNT),
        ]
        environment = {"ARTIFACTS_DIR": ARTIFACTS_MOUNT}

        user_mount = self._user_artifacts_mount()
        if user_mount is not None:
            mounts.append(user_mount)
            environment["USER_ARTIFACTS_DIR"] = USER_ARTIFACTS_MOUNT

        return ContainerSpec(
            image=profile.image,
            command=plan.argv(),
            working_dir=SOURCE_MOUNT,
            mounts=tuple(mounts),
            environment=environment,
        )

    async def provision(
        self,
        profile: RuntimeProfile,
        workspace: SandboxWorkspace,
        plan: CommandPlan,
    ) -> str:
        """Create and start the container.

        Returns:
            Container ID (the execution handle)

        Raises:
            ProvisionFailedError: If pulling, creating or starting fails
        """
        await self.ensure_image(profile.image)
        spec = self.build_spec(profile, workspace, plan)
        logger.debug("Creating container", context={"command": plan.render()})

        try:
            container_id = await self.backend.create(spec)
        except BackendError as e:
            raise ProvisionFailedError(f"failed to create container: {e}") from e

        try:
            await self.backend.start(container_id)
        except BackendError as e:
            raise ProvisionFailedError(
                f"failed to start container {container_id}: {e}"
            ) from e

        logger.info("Container started", context={"execution_id": container_id})
        return container_id
