"""Configuration loading with environment variable substitution."""

import os
import re
import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")

# Directory name under the system temp dir used when no artifact path is set
DEFAULT_ARTIFACTS_DIRNAME = "persistent-code-sandbox-artifacts"


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


def _default_artifacts_path() -> str:
    return str(Path(tempfile.gettempdir()) / DEFAULT_ARTIFACTS_DIRNAME)


def _user_artifacts_dir_from_env() -> str | None:
    return os.environ.get("ARTIFACTS_DIR") or None


class RuntimeConfig(BaseModel):
    """Container runtime settings."""

    backend: str = "docker"  # docker | local
    docker_binary: str = "docker"
    workspace_prefix: str = "docker-sandbox-"


class ArtifactsConfig(BaseModel):
    """Durable artifact storage settings."""

    backend: str = "local"
    path: str = Field(default_factory=_default_artifacts_path)
    # Host directory bound into every sandbox at /user-artifacts
    user_dir: str | None = Field(default_factory=_user_artifacts_dir_from_env)
    rebuild_index: bool = False


class ProgressConfig(BaseModel):
    """Advisory progress reporting settings."""

    poll_interval_seconds: float = Field(default=2.0, gt=0)
    total: int = Field(default=100, gt=1)
    initial: int = 10
    start: int = 20
    step: int = Field(default=5, ge=1)
    slow_threshold: int = 90


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 9520
    cors_origins: list[str] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"  # json | text


class Config(BaseModel):
    """Main configuration for coderun-core."""

    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    artifacts: ArtifactsConfig = Field(default_factory=ArtifactsConfig)
    progress: ProgressConfig = Field(default_factory=ProgressConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        with path.open() as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                import json
                data = json.load(f)

        # Substitute environment variables
        data = substitute_env_vars(data or {})
        return cls.model_validate(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Load configuration from a dictionary."""
        data = substitute_env_vars(data)
        return cls.model_validate(data)
