"""Artifact harvesting, indexing and content classification."""

from coderun_core.artifacts.categories import ContentCategory, infer_category, media_type
from coderun_core.artifacts.collector import ArtifactCollector
from coderun_core.artifacts.registry import (
    ARTIFACT_SCHEME,
    ArtifactListing,
    ArtifactRecord,
    ArtifactRegistry,
    artifact_uri,
    parse_artifact_uri,
)

__all__ = [
    "ARTIFACT_SCHEME",
    "ArtifactCollector",
    "ArtifactListing",
    "ArtifactRecord",
    "ArtifactRegistry",
    "ContentCategory",
    "artifact_uri",
    "infer_category",
    "media_type",
    "parse_artifact_uri",
]
