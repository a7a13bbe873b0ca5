"""Ephemeral staging area for one execution."""

import shutil
import tempfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from coderun_core.exceptions import ProvisionFailedError
from coderun_core.languages import RuntimeProfile
from coderun_core.observability import get_logger

logger = get_logger(__name__)

# In-sandbox locations
SOURCE_MOUNT = "/app"
ARTIFACTS_MOUNT = "/artifacts"
USER_ARTIFACTS_MOUNT = "/user-artifacts"


@dataclass
class SandboxWorkspace:
    """Host directories staged for one execution.

    ``root`` is the temporary directory owned by the run; ``source_dir`` is
    either inside it (inline code) or the caller's project directory.
    """

    root: Path
    source_dir: Path
    artifacts_dir: Path

    def cleanup(self) -> None:
        """Remove the temporary root. The caller's project directory is never touched."""
        try:
            shutil.rmtree(self.root)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(
                "Failed to remove sandbox workspace",
                context={"path": str(self.root)},
                error=e,
            )


def create_workspace(
    profile: RuntimeProfile,
    code: str | None = None,
    project_dir: Path | None = None,
    prefix: str = "docker-sandbox-",
) -> SandboxWorkspace:
    """Stage source files and an empty artifact directory.

    Exactly one of ``code`` or ``project_dir`` is used; inline code is
    written to ``main.<ext>``.

    Raises:
        ProvisionFailedError: If the staging area cannot be created
    """
    try:
        root = Path(tempfile.mkdtemp(prefix=prefix))
    except OSError as e:
        raise ProvisionFailedError(f"failed to create workspace: {e}") from e

    workspace = SandboxWorkspace(
        root=root,
        source_dir=project_dir if project_dir is not None else root,
        artifacts_dir=root / "artifacts",
    )
    try:
        workspace.artifacts_dir.mkdir()
        if project_dir is None:
            # Sequences that cannot be encoded are dropped
            (root / profile.source_filename).write_bytes(
                (code or "").encode("utf-8", errors="ignore")
            )
    except OSError as e:
        workspace.cleanup()
        raise ProvisionFailedError(f"failed to stage workspace: {e}") from e
    return workspace


@asynccontextmanager
async def staged_workspace(
    profile: RuntimeProfile,
    code: str | None = None,
    project_dir: Path | None = None,
    prefix: str = "docker-sandbox-",
) -> AsyncIterator[SandboxWorkspace]:
    """Yield a staged workspace and remove it when the run ends, whatever the outcome."""
    workspace = create_workspace(profile, code=code, project_dir=project_dir, prefix=prefix)
    try:
        yield workspace
    finally:
        workspace.cleanup()
