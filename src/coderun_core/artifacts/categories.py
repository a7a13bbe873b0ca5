"""Content category inference for harvested artifacts."""

import mimetypes
from enum import Enum
from pathlib import PurePosixPath


class ContentCategory(str, Enum):
    """Coarse content category of an artifact."""

    IMAGE = "image"
    PDF = "pdf"
    TEXT = "text"
    AUDIO = "audio"
    VIDEO = "video"
    BINARY = "binary"


_EXTENSION_CATEGORIES: dict[str, ContentCategory] = {
    ".png": ContentCategory.IMAGE,
    ".jpg": ContentCategory.IMAGE,
    ".jpeg": ContentCategory.IMAGE,
    ".gif": ContentCategory.IMAGE,
    ".svg": ContentCategory.IMAGE,
    ".webp": ContentCategory.IMAGE,
    ".pdf": ContentCategory.PDF,
    ".txt": ContentCategory.TEXT,
    ".md": ContentCategory.TEXT,
    ".json": ContentCategory.TEXT,
    ".yaml": ContentCategory.TEXT,
    ".yml": ContentCategory.TEXT,
    ".csv": ContentCategory.TEXT,
    ".tsv": ContentCategory.TEXT,
    ".mp3": ContentCategory.AUDIO,
    ".wav": ContentCategory.AUDIO,
    ".ogg": ContentCategory.AUDIO,
    ".flac": ContentCategory.AUDIO,
    ".mp4": ContentCategory.VIDEO,
    ".webm": ContentCategory.VIDEO,
    ".avi": ContentCategory.VIDEO,
    ".mov": ContentCategory.VIDEO,
}


def infer_category(file_name: str) -> ContentCategory:
    """Classify a file by extension; unknown extensions are binary."""
    suffix = PurePosixPath(file_name).suffix.lower()
    return _EXTENSION_CATEGORIES.get(suffix, ContentCategory.BINARY)


def media_type(file_name: str) -> str:
    """Best-effort MIME type for serving an artifact."""
    return mimetypes.guess_type(file_name)[0] or "application/octet-stream"
