"""Progress observer protocol."""

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class ProgressUpdate:
    """One advisory progress notification."""

    progress: int
    total: int
    token: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the ``{progress, total, progressToken}`` wire shape."""
        return {
            "progress": self.progress,
            "total": self.total,
            "progressToken": self.token,
        }


class ProgressObserver(Protocol):
    """Receives progress notifications. Exceptions raised here are logged, not propagated."""

    async def __call__(self, update: ProgressUpdate) -> None:
        ...
