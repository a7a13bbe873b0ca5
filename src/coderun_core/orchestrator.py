"""Main Orchestrator class for coderun-core."""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from coderun_core.artifacts import (
    ARTIFACT_SCHEME,
    ArtifactCollector,
    ArtifactListing,
    ArtifactRegistry,
    ContentCategory,
)
from coderun_core.config import Config
from coderun_core.exceptions import (
    ArtifactCollectionFailedError,
    ArtifactNotFoundError,
    BackendError,
    ConfigInvalidError,
    CoderunError,
    ExecutionWaitFailedError,
)
from coderun_core.languages import RuntimeProfile, get_profile
from coderun_core.observability import (
    RequestContext,
    Timer,
    emit_counter,
    emit_timer,
    execution_id_var,
    get_logger,
)
from coderun_core.plugins import create_container_backend, create_file_store
from coderun_core.protocols import ContainerBackend, FileStore, ProgressObserver
from coderun_core.resolver import DependencySet, resolve_project, resolve_source
from coderun_core.sandbox import (
    CommandPlan,
    ExecutionMonitor,
    ProgressTracker,
    SandboxProvisioner,
    staged_workspace,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExecutionRequest:
    """One run request: inline code or a project directory."""

    language: str
    code: str | None = None
    project_dir: Path | None = None
    entrypoint: str | None = None
    output_path: Path | None = None

    def __post_init__(self) -> None:
        if self.code is not None:
            # Unencodable sequences (lone surrogates) are dropped
            code = self.code.encode("utf-8", errors="ignore").decode("utf-8")
            object.__setattr__(self, "code", code)
        if not self.language:
            raise ConfigInvalidError("Missing required field: language")
        if self.code is None and self.project_dir is None:
            raise ConfigInvalidError("Either code or project_dir is required")
        if self.code is not None and self.project_dir is not None:
            raise ConfigInvalidError("code and project_dir are mutually exclusive")
        if self.code is not None and not self.code.strip():
            raise ConfigInvalidError("Missing required field: code")
        if self.project_dir is not None and not str(self.project_dir).strip():
            raise ConfigInvalidError("Missing required field: project_dir")

    @property
    def is_project(self) -> bool:
        return self.project_dir is not None


@dataclass
class ExecutionResult:
    """Outcome of a completed execution."""

    execution_id: str
    logs: str
    artifacts: list[str] = field(default_factory=list)
    exit_code: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "logs": self.logs,
            "artifacts": list(self.artifacts),
            "exit_code": self.exit_code,
        }


class Orchestrator:
    """Runs untrusted code in disposable sandboxes and keeps its artifacts.

    Example usage:
        # Load from config file
        orchestrator = Orchestrator.from_config("config.yaml")

        # Start HTTP server
        orchestrator.serve(port=9520)

        # Or use directly
        result = await orchestrator.run_code("python", "print('hi')")
        data, category = await orchestrator.fetch_artifact(result.artifacts[0])
    """

    def __init__(
        self,
        config: Config | None = None,
        backend: ContainerBackend | None = None,
        file_store: FileStore | None = None,
        registry: ArtifactRegistry | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Backends not passed in are created from configuration on first use.
        """
        self.config = config or Config()
        self._backend = backend
        self._files = file_store
        self.registry = registry or ArtifactRegistry()
        self._provisioner: SandboxProvisioner | None = None
        self._collector: ArtifactCollector | None = None
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, path: str | Path) -> "Orchestrator":
        """Create an Orchestrator from a YAML or JSON configuration file."""
        return cls(Config.from_file(path))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "Orchestrator":
        """Create an Orchestrator from a configuration dictionary."""
        return cls(Config.from_dict(config_dict))

    async def _ensure_initialized(self) -> None:
        """Lazily initialize backends on first use."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return
            await self._do_initialize()

    async def _do_initialize(self) -> None:
        """Perform actual initialization (called under lock)."""
        with Timer() as timer:
            runtime = self.config.runtime
            if self._backend is None:
                self._backend = create_container_backend(
                    runtime.backend,
                    binary=runtime.docker_binary,
                )

            artifacts = self.config.artifacts
            if self._files is None:
                self._files = create_file_store(artifacts.backend, path=artifacts.path)

            self._provisioner = SandboxProvisioner(
                self._backend,
                user_artifacts_dir=artifacts.user_dir,
            )
            self._collector = ArtifactCollector(self._files, self.registry)

            if artifacts.rebuild_index:
                await self.registry.rebuild(self._files)

            self._initialized = True

        logger.info(
            "Orchestrator initialized",
            context={"backend": runtime.backend, "artifacts": artifacts.backend},
            duration_ms=timer.duration_ms,
        )

    @property
    def backend(self) -> ContainerBackend:
        """Get the container backend."""
        if self._backend is None:
            raise RuntimeError("Orchestrator not initialized. Use async context manager or run code first.")
        return self._backend

    @property
    def files(self) -> FileStore:
        """Get the durable artifact store."""
        if self._files is None:
            raise RuntimeError("Orchestrator not initialized. Use async context manager or run code first.")
        return self._files

    @property
    def provisioner(self) -> SandboxProvisioner:
        if self._provisioner is None:
            raise RuntimeError("Orchestrator not initialized. Use async context manager or run code first.")
        return self._provisioner

    @property
    def collector(self) -> ArtifactCollector:
        if self._collector is None:
            raise RuntimeError("Orchestrator not initialized. Use async context manager or run code first.")
        return self._collector

    async def run_code(
        self,
        language: str,
        code: str,
        output_path: str | Path | None = None,
        observer: ProgressObserver | None = None,
        progress_token: Any = None,
    ) -> ExecutionResult:
        """Run a single inline source text.

        Args:
            language: Language id (see ``supported_languages()``)
            code: Source text, staged as ``main.<ext>``
            output_path: Optional directory receiving a copy of each artifact
            observer: Optional async callable receiving progress updates
            progress_token: Opaque token echoed in every progress update

        Returns:
            ExecutionResult with logs and artifact identifiers
        """
        request = ExecutionRequest(
            language=language,
            code=code,
            output_path=Path(output_path) if output_path else None,
        )
        return await self.execute(request, observer=observer, progress_token=progress_token)

    async def run_project(
        self,
        language: str,
        project_dir: str | Path,
        entrypoint: str | None = None,
        output_path: str | Path | None = None,
        observer: ProgressObserver | None = None,
        progress_token: Any = None,
    ) -> ExecutionResult:
        """Run a project directory, mounted as the sandbox's working directory.

        Args:
            language: Language id (see ``supported_languages()``)
            project_dir: Host directory holding the project
            entrypoint: Shell command to run instead of the language default
            output_path: Optional directory receiving a copy of each artifact
            observer: Optional async callable receiving progress updates
            progress_token: Opaque token echoed in every progress update

        Returns:
            ExecutionResult with logs and artifact identifiers
        """
        request = ExecutionRequest(
            language=language,
            project_dir=Path(project_dir),
            entrypoint=entrypoint or None,
            output_path=Path(output_path) if output_path else None,
        )
        return await self.execute(request, observer=observer, progress_token=progress_token)

    async def execute(
        self,
        request: ExecutionRequest,
        observer: ProgressObserver | None = None,
        progress_token: Any = None,
    ) -> ExecutionResult:
        """Resolve, provision, run, monitor and harvest one request.

        Raises:
            ConfigInvalidError: Unsupported language or unusable output directory
            ScanFailedError: Project directory could not be read
            ProvisionFailedError: Image pull, create or start failed
            ExecutionWaitFailedError: Waiting for termination failed
            ArtifactCollectionFailedError: Harvest failed; carries the logs
        """
        profile = get_profile(request.language)
        if not profile.supported:
            raise ConfigInvalidError(f"Unsupported language: {request.language}")

        output_dir = self._prepare_output_dir(request.output_path)
        await self._ensure_initialized()

        progress = self.config.progress
        monitor = ExecutionMonitor(
            observer=observer,
            token=progress_token,
            poll_interval=progress.poll_interval_seconds,
            tracker=ProgressTracker(
                total=progress.total,
                initial=progress.initial,
                start=progress.start,
                step=progress.step,
                slow_threshold=progress.slow_threshold,
            ),
        )

        async with RequestContext(language=request.language):
            mode = "project" if request.is_project else "code"
            logger.info("Execution started", context={"mode": mode})
            emit_counter("orchestrator.run.started", {"mode": mode})

            with Timer() as timer:
                try:
                    result = await monitor.run(self._run(request, profile, output_dir))
                except CoderunError as e:
                    logger.error("Execution failed", error=e)
                    emit_counter("orchestrator.run.failed", {"error": type(e).__name__})
                    raise

            logger.info(
                "Execution completed",
                context={
                    "execution_id": result.execution_id,
                    "exit_code": result.exit_code,
                    "artifacts": len(result.artifacts),
                },
                duration_ms=timer.duration_ms,
            )
            emit_timer("orchestrator.run.duration", timer.duration_ms)
            emit_counter("orchestrator.run.completed")
            return result

    @staticmethod
    def _prepare_output_dir(output_path: Path | None) -> Path | None:
        if output_path is None:
            return None
        try:
            output_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigInvalidError(f"Invalid output directory {output_path}: {e}") from e
        return output_path

    async def _resolve(self, request: ExecutionRequest) -> DependencySet:
        if request.project_dir is not None:
            return await asyncio.to_thread(
                resolve_project, request.project_dir, request.language
            )
        return resolve_source(request.code or "", request.language)

    async def _run(
        self,
        request: ExecutionRequest,
        profile: RuntimeProfile,
        output_dir: Path | None,
    ) -> ExecutionResult:
        """Provisioning-and-run sequence executed as the monitored task."""
        deps = await self._resolve(request)
        plan = CommandPlan.build(profile, deps, request.entrypoint)
        logger.debug(
            "Dependencies resolved",
            context={"packages": list(deps), "manifest": deps.manifest},
        )

        async with staged_workspace(
            profile,
            code=request.code,
            project_dir=request.project_dir,
            prefix=self.config.runtime.workspace_prefix,
        ) as workspace:
            execution_id = await self.provisioner.provision(profile, workspace, plan)
            execution_id_var.set(execution_id)

            try:
                exit_code = await self.backend.wait(execution_id)
            except BackendError as e:
                raise ExecutionWaitFailedError(
                    f"failed to wait for container {execution_id}: {e}"
                ) from e

            logs = await self.backend.logs(execution_id)

            try:
                artifacts = await self.collector.collect(
                    execution_id, workspace.artifacts_dir, output_dir
                )
            except ArtifactCollectionFailedError as e:
                raise ArtifactCollectionFailedError(
                    str(e), execution_id=execution_id, logs=logs
                ) from e

        return ExecutionResult(
            execution_id=execution_id,
            logs=logs,
            artifacts=artifacts,
            exit_code=exit_code,
        )

    async def fetch_artifact(self, uri: str) -> tuple[bytes, ContentCategory]:
        """Read an artifact by identifier.

        Raises:
            ArtifactNotFoundError: If the identifier is unknown or its file is gone
        """
        await self._ensure_initialized()
        record = self.registry.get(uri)
        result = await self.files.get(record.key)
        if result is None:
            raise ArtifactNotFoundError(f"artifact file missing: {uri}")
        content, _ = result
        return content, record.category

    async def list_artifacts(self, prefix: str = ARTIFACT_SCHEME) -> list[ArtifactListing]:
        """List registered artifacts whose identifier starts with ``prefix``."""
        await self._ensure_initialized()
        return self.registry.listings(prefix)

    async def container_logs(self, execution_id: str) -> str:
        """Combined output of an execution that has not been discarded.

        Raises:
            ExecutionNotFoundError: If the container is unknown
        """
        await self._ensure_initialized()
        return await self.backend.logs(execution_id)

    async def discard(self, execution_id: str) -> None:
        """Remove the container of an execution. Artifacts are kept."""
        await self._ensure_initialized()
        await self.backend.remove(execution_id)
        logger.info("Execution discarded", context={"execution_id": execution_id})

    async def purge_artifacts(self, execution_id: str) -> int:
        """Delete every durable artifact of an execution and unregister it.

        Returns:
            Number of files removed
        """
        await self._ensure_initialized()
        keys = {record.key for record in self.registry.purge(execution_id)}
        async for metadata in self.files.list(f"{execution_id}/"):
            keys.add(metadata.key)
        for key in sorted(keys):
            await self.files.delete(key)
        logger.info(
            "Artifacts purged",
            context={"execution_id": execution_id, "count": len(keys)},
        )
        return len(keys)

    def serve(
        self,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        """Start the HTTP server.

        Args:
            host: Host to bind to (defaults to config value)
            port: Port to bind to (defaults to config value)
        """
        import uvicorn

        from coderun_core.observability import configure_logging
        from coderun_core.server.app import create_app

        configure_logging(self.config.logging.level, self.config.logging.format)
        app = create_app(self)
        uvicorn.run(
            app,
            host=host or self.config.server.host,
            port=port or self.config.server.port,
        )

    async def __aenter__(self) -> "Orchestrator":
        """Async context manager entry."""
        await self._ensure_initialized()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit. Containers are left for explicit discard."""
        pass
