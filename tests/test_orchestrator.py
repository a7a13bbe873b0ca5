"""Tests for the Orchestrator."""

from pathlib import Path

import pytest

from coderun_core.artifacts import ContentCategory
from coderun_core.backends.containers.local import LocalBackend
from coderun_core.config import Config
from coderun_core.exceptions import (
    ArtifactCollectionFailedError,
    ArtifactNotFoundError,
    ConfigInvalidError,
    ExecutionNotFoundError,
    ExecutionWaitFailedError,
    ProvisionFailedError,
    ScanFailedError,
)
from coderun_core.observability import register_metric_callback, unregister_metric_callback
from coderun_core.orchestrator import ExecutionRequest, ExecutionResult, Orchestrator


def _source_root(backend) -> Path:
    """Host directory that was bound at /app for the first container."""
    return {m.target: m.source for m in backend.specs[0].mounts}["/app"]


class TestExecutionRequest:
    """Tests for request validation."""

    def test_requires_language(self):
        with pytest.raises(ConfigInvalidError, match="language"):
            ExecutionRequest(language="", code="print(1)")

    def test_requires_a_payload(self):
        with pytest.raises(ConfigInvalidError):
            ExecutionRequest(language="python")

    def test_payloads_are_exclusive(self, tmp_path):
        with pytest.raises(ConfigInvalidError):
            ExecutionRequest(language="python", code="print(1)", project_dir=tmp_path)

    def test_blank_code_rejected(self):
        with pytest.raises(ConfigInvalidError, match="code"):
            ExecutionRequest(language="python", code="   ")

    def test_unencodable_code_is_sanitized(self):
        request = ExecutionRequest(language="python", code="print('\ud800hi')")
        assert request.code == "print('hi')"

    def test_code_only_unencodable_is_blank(self):
        with pytest.raises(ConfigInvalidError, match="code"):
            ExecutionRequest(language="python", code="\udc80")

    def test_frozen(self):
        request = ExecutionRequest(language="python", code="print(1)")
        with pytest.raises(AttributeError):
            request.language = "go"  # type: ignore[misc]


class TestRunCode:
    """Tests for inline code execution."""

    @pytest.mark.asyncio
    async def test_numpy_example(self, orchestrator, fake_backend):
        fake_backend.logs_text = "[1 2]\n"

        result = await orchestrator.run_code(
            "python", "import numpy as np\nprint(np.array([1,2]))"
        )

        assert isinstance(result, ExecutionResult)
        assert "[1 2]" in result.logs
        assert result.artifacts == []
        assert result.exit_code == 0
        command = fake_backend.specs[0].command
        assert command[:2] == ("/bin/sh", "-c")
        assert command[2] == "uv pip install --system numpy && python main.py"

    @pytest.mark.asyncio
    async def test_lone_surrogate_in_code_runs(self, orchestrator, fake_backend):
        seen = {}
        original_start = fake_backend.start

        async def start(container_id):
            seen["main"] = (_source_root(fake_backend) / "main.py").read_bytes()
            await original_start(container_id)

        fake_backend.start = start

        result = await orchestrator.run_code(
            "python", "# requirements: requests\ud800\nprint('\ud800x')\n"
        )

        assert result.exit_code == 0
        assert seen["main"] == b"# requirements: requests\nprint('x')\n"
        assert fake_backend.specs[0].command[2] == (
            "uv pip install --system requests && python main.py"
        )

    @pytest.mark.asyncio
    async def test_no_imports_no_install_step(self, orchestrator, fake_backend):
        await orchestrator.run_code("go", 'package main\nimport "fmt"\nfunc main() { fmt.Println(1) }\n')
        assert fake_backend.specs[0].command == ("/bin/sh", "-c", "go run main.go")

    @pytest.mark.asyncio
    async def test_source_staged_and_cleaned_up(self, orchestrator, fake_backend):
        seen = {}
        original_start = fake_backend.start

        async def start(container_id):
            source = _source_root(fake_backend)
            seen["main"] = (source / "main.ts").read_text()
            await original_start(container_id)

        fake_backend.start = start

        await orchestrator.run_code("nodejs", "console.log('hi')\n")

        assert seen["main"] == "console.log('hi')\n"
        assert not _source_root(fake_backend).exists()

    @pytest.mark.asyncio
    async def test_image_artifact(self, orchestrator, fake_backend):
        fake_backend.outputs = {"result.png": b"\x89PNG data"}

        result = await orchestrator.run_code("python", "print('plot')")

        assert result.artifacts == [f"artifacts://{result.execution_id}/result.png"]
        content, category = await orchestrator.fetch_artifact(result.artifacts[0])
        assert content == b"\x89PNG data"
        assert category is ContentCategory.IMAGE

        listing = await orchestrator.list_artifacts(f"artifacts://{result.execution_id}/")
        assert [entry.file_name for entry in listing] == ["result.png"]

    @pytest.mark.asyncio
    async def test_output_path_receives_copies(self, orchestrator, fake_backend, tmp_path):
        fake_backend.outputs = {"data.csv": b"a,b\n", "notes.md": b"# hi"}
        output = tmp_path / "out"

        result = await orchestrator.run_code("python", "print(1)", output_path=output)

        assert (output / "data.csv").read_bytes() == b"a,b\n"
        assert (output / "notes.md").read_bytes() == b"# hi"
        assert len(result.artifacts) == 2
        mounts = {m.target for m in fake_backend.specs[0].mounts}
        assert mounts == {"/app", "/artifacts"}

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_a_result(self, orchestrator, fake_backend):
        fake_backend.exit_code = 2
        fake_backend.logs_text = "Traceback"

        result = await orchestrator.run_code("python", "raise SystemExit(2)")

        assert result.exit_code == 2
        assert result.logs == "Traceback"

    @pytest.mark.asyncio
    async def test_progress_reported(self, orchestrator, fake_backend):
        fake_backend.delay = 0.1
        updates = []

        async def observer(update):
            updates.append(update)

        await orchestrator.run_code("python", "print(1)", observer=observer, progress_token="t-1")

        values = [u.progress for u in updates]
        assert values[0] == 10
        assert values[-1] == 100
        assert values == sorted(values)
        assert values.count(100) == 1
        assert {u.token for u in updates} == {"t-1"}

    @pytest.mark.asyncio
    async def test_metrics_emitted(self, orchestrator):
        received = []

        def callback(name, value, labels):
            received.append((name, labels))

        register_metric_callback(callback)
        try:
            await orchestrator.run_code("python", "print(1)")
        finally:
            unregister_metric_callback(callback)

        names = [name for name, _ in received]
        assert "orchestrator.run.started" in names
        assert "orchestrator.run.completed" in names
        assert dict(received)["orchestrator.run.completed"]["language"] == "python"


class TestRunFailures:
    """Tests for typed failures."""

    @pytest.mark.asyncio
    async def test_unknown_language_creates_nothing(self, orchestrator, fake_backend):
        with pytest.raises(ConfigInvalidError, match="cobol"):
            await orchestrator.run_code("cobol", "DISPLAY 'HI'.")
        assert fake_backend.calls == []

    @pytest.mark.asyncio
    async def test_bad_output_path(self, orchestrator, fake_backend, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")

        with pytest.raises(ConfigInvalidError):
            await orchestrator.run_code("python", "print(1)", output_path=blocker / "sub")
        assert fake_backend.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["create", "start"])
    async def test_provision_failure_cleans_workspace(self, orchestrator, fake_backend, operation):
        fake_backend.fail = operation

        with pytest.raises(ProvisionFailedError):
            await orchestrator.run_code("python", "print(1)")

        created = fake_backend.called("create")
        workspace_root = {m.target: m.source for m in created[0].mounts}["/app"]
        assert not workspace_root.exists()

    @pytest.mark.asyncio
    async def test_wait_failure(self, orchestrator, fake_backend):
        fake_backend.fail = "wait"

        with pytest.raises(ExecutionWaitFailedError):
            await orchestrator.run_code("python", "print(1)")
        assert len(fake_backend.called("wait")) == 1
        assert not _source_root(fake_backend).exists()

    @pytest.mark.asyncio
    async def test_collection_failure_keeps_logs(self, orchestrator, fake_backend):
        fake_backend.logs_text = "computed 42"
        original_start = fake_backend.start

        async def start(container_id):
            await original_start(container_id)
            for mount in fake_backend.containers[container_id].spec.mounts:
                if mount.target == "/artifacts":
                    mount.source.rmdir()

        fake_backend.start = start

        with pytest.raises(ArtifactCollectionFailedError) as exc_info:
            await orchestrator.run_code("python", "print(42)")

        assert exc_info.value.logs == "computed 42"
        assert exc_info.value.execution_id == "c0001"

    @pytest.mark.asyncio
    async def test_missing_project_dir(self, orchestrator, fake_backend, tmp_path):
        with pytest.raises(ScanFailedError):
            await orchestrator.run_project("python", tmp_path / "missing")
        assert fake_backend.called("create") == []


class TestRunProject:
    """Tests for project execution."""

    @pytest.mark.asyncio
    async def test_requirements_comments_materialized(self, orchestrator, fake_backend, tmp_path):
        project = tmp_path / "project"
        project.mkdir()
        (project / "main.py").write_text(
            "# requirements: requests, flask==2.0\nimport requests\nimport flask\n"
        )

        await orchestrator.run_project("python", project)

        assert (project / "requirements.txt").read_text().splitlines() == ["requests", "flask==2.0"]
        spec = fake_backend.specs[0]
        assert spec.command[2] == "uv pip install --system -r requirements.txt && python main.py"
        assert {m.target: m.source for m in spec.mounts}["/app"] == project
        assert (project / "main.py").exists()

    @pytest.mark.asyncio
    async def test_entrypoint_and_launcher(self, orchestrator, fake_backend, tmp_path):
        project = tmp_path / "web"
        project.mkdir()
        (project / "package.json").write_text('{"dependencies": {"express": "^4"}}')

        await orchestrator.run_project("nodejs", project, entrypoint="node server.ts --port 3000")

        assert fake_backend.specs[0].command[2] == "bun server.ts --port 3000"


class TestArtifactOperations:
    """Tests for fetch, list, purge, logs and discard."""

    @pytest.mark.asyncio
    async def test_fetch_unknown(self, orchestrator):
        with pytest.raises(ArtifactNotFoundError):
            await orchestrator.fetch_artifact("artifacts://nope/x.txt")

    @pytest.mark.asyncio
    async def test_purge(self, orchestrator, fake_backend):
        fake_backend.outputs = {"a.txt": b"a", "b.txt": b"b"}
        result = await orchestrator.run_code("python", "print(1)")

        assert await orchestrator.purge_artifacts(result.execution_id) == 2
        assert await orchestrator.list_artifacts(f"artifacts://{result.execution_id}/") == []
        with pytest.raises(ArtifactNotFoundError):
            await orchestrator.fetch_artifact(result.artifacts[0])
        assert await orchestrator.purge_artifacts(result.execution_id) == 0

    @pytest.mark.asyncio
    async def test_logs_and_discard(self, orchestrator, fake_backend):
        fake_backend.logs_text = "hello"
        result = await orchestrator.run_code("python", "print('hello')")

        assert await orchestrator.container_logs(result.execution_id) == "hello"
        await orchestrator.discard(result.execution_id)
        with pytest.raises(ExecutionNotFoundError):
            await orchestrator.container_logs(result.execution_id)
        assert await orchestrator.list_artifacts() == []

    @pytest.mark.asyncio
    async def test_rebuild_index_on_start(self, sample_config_dict, fake_backend, file_store):
        await file_store.put("old-exec/report.pdf", b"%PDF")
        sample_config_dict["artifacts"]["rebuild_index"] = True

        orchestrator = Orchestrator(
            Config.from_dict(sample_config_dict), backend=fake_backend, file_store=file_store
        )
        content, category = await orchestrator.fetch_artifact("artifacts://old-exec/report.pdf")

        assert content == b"%PDF"
        assert category is ContentCategory.PDF

    @pytest.mark.asyncio
    async def test_index_not_rebuilt_by_default(self, orchestrator, file_store):
        await file_store.put("old-exec/report.pdf", b"%PDF")
        assert await orchestrator.list_artifacts() == []


class TestConfiguredBackends:
    """Tests for backends created from configuration."""

    @pytest.mark.asyncio
    async def test_user_artifacts_dir(self, sample_config_dict, fake_backend, tmp_path):
        shared = tmp_path / "shared"
        sample_config_dict["artifacts"]["user_dir"] = str(shared)
        orchestrator = Orchestrator(Config.from_dict(sample_config_dict), backend=fake_backend)

        await orchestrator.run_code("python", "print(1)")

        spec = fake_backend.specs[0]
        assert {m.target: m.source for m in spec.mounts}["/user-artifacts"] == shared
        assert spec.environment["USER_ARTIFACTS_DIR"] == "/user-artifacts"

    @pytest.mark.asyncio
    async def test_local_backend_end_to_end(self, sample_config_dict, tmp_path):
        project = tmp_path / "project"
        project.mkdir()
        (project / "data.txt").write_text("payload")

        async with Orchestrator.from_dict(sample_config_dict) as orchestrator:
            assert isinstance(orchestrator.backend, LocalBackend)
            result = await orchestrator.run_project(
                "python",
                project,
                entrypoint='cat data.txt && cp data.txt "$ARTIFACTS_DIR/out.txt"',
            )

        assert result.logs == "payload"
        assert result.exit_code == 0
        [uri] = result.artifacts
        content, category = await orchestrator.fetch_artifact(uri)
        assert content == b"payload"
        assert category is ContentCategory.TEXT
