"""Protocol interfaces for pluggable backends."""

from coderun_core.protocols.container import ContainerBackend, ContainerSpec, Mount
from coderun_core.protocols.file_store import FileMetadata, FileStore
from coderun_core.protocols.progress import ProgressObserver, ProgressUpdate

__all__ = [
    "ContainerBackend",
    "ContainerSpec",
    "FileMetadata",
    "FileStore",
    "Mount",
    "ProgressObserver",
    "ProgressUpdate",
]
