"""Backend discovery via Python entry points."""

from importlib.metadata import entry_points
from typing import Any

from coderun_core.exceptions import ConfigError
from coderun_core.protocols import ContainerBackend, FileStore

BACKEND_GROUPS = {
    "containers": "coderun_core.backends.containers",
    "files": "coderun_core.backends.files",
}


def discover_backends(group: str) -> dict[str, Any]:
    """Discover all registered backends for a given group.

    Args:
        group: The backend group name (containers, files)

    Returns:
        Dictionary mapping backend names to their classes
    """
    full_group = BACKEND_GROUPS.get(group, group)
    eps = entry_points(group=full_group)
    return {ep.name: ep.load() for ep in eps}


def get_backend(group: str, name: str) -> Any:
    """Get a specific backend class by group and name.

    Raises:
        ConfigError: If the backend is not registered
    """
    backends = discover_backends(group)
    if name not in backends:
        available = ", ".join(sorted(backends.keys())) or "(none)"
        raise ConfigError(
            f"Backend '{name}' not found in group '{group}'. Available: {available}"
        )
    return backends[name]


def create_container_backend(backend: str, **kwargs: Any) -> ContainerBackend:
    """Create a ContainerBackend instance.

    Args:
        backend: The backend name ("docker" or "local")
        **kwargs: Backend-specific configuration

    Returns:
        A ContainerBackend implementation
    """
    cls = get_backend("containers", backend)
    return cls(**kwargs)


def create_file_store(backend: str, **kwargs: Any) -> FileStore:
    """Create a FileStore instance.

    Args:
        backend: The backend name (e.g., "local")
        **kwargs: Backend-specific configuration

    Returns:
        A FileStore implementation
    """
    cls = get_backend("files", backend)
    return cls(**kwargs)
