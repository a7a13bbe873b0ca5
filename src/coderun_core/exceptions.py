"""Coderun Core exceptions."""


class CoderunError(Exception):
    """Base exception for coderun-core."""

    pass


class ConfigError(CoderunError):
    """Configuration error."""

    pass


class ConfigInvalidError(CoderunError):
    """Execution request is invalid (missing fields, unsupported language)."""

    pass


class ScanFailedError(CoderunError):
    """Dependency discovery could not read the source tree."""

    pass


class BackendError(CoderunError):
    """Container backend operation failed."""

    pass


class ProvisionFailedError(CoderunError):
    """Image pull, container create or container start failed."""

    pass


class ExecutionWaitFailedError(CoderunError):
    """The container backend reported an error while waiting for termination."""

    pass


class ArtifactCollectionFailedError(CoderunError):
    """Harvesting the artifact directory failed after a completed run.

    The logs captured before the failure are preserved on the exception.
    """

    def __init__(self, message: str, execution_id: str, logs: str = "") -> None:
        super().__init__(message)
        self.execution_id = execution_id
        self.logs = logs


class NotFoundError(CoderunError):
    """Resource not found."""

    pass


class ArtifactNotFoundError(NotFoundError):
    """Artifact not found."""

    pass


class ExecutionNotFoundError(NotFoundError):
    """Execution (container) not found."""

    pass
