"""Coderun Core - Sandboxed code execution with dependency resolution and artifact harvesting."""

from coderun_core.artifacts import ArtifactListing, ArtifactRecord, ArtifactRegistry, ContentCategory
from coderun_core.config import Config
from coderun_core.languages import Language, RuntimeProfile, get_profile, supported_languages
from coderun_core.observability import (
    LogLevel,
    RequestContext,
    StructuredLogger,
    Timer,
    configure_logging,
    emit_counter,
    emit_metric,
    emit_timer,
    get_logger,
    register_metric_callback,
)
from coderun_core.orchestrator import ExecutionRequest, ExecutionResult, Orchestrator
from coderun_core.protocols import ProgressUpdate

__version__ = "0.1.0"
__all__ = [
    # Core
    "Config",
    "ExecutionRequest",
    "ExecutionResult",
    "Orchestrator",
    "ProgressUpdate",
    # Languages
    "Language",
    "RuntimeProfile",
    "get_profile",
    "supported_languages",
    # Artifacts
    "ArtifactListing",
    "ArtifactRecord",
    "ArtifactRegistry",
    "ContentCategory",
    # Observability
    "LogLevel",
    "RequestContext",
    "StructuredLogger",
    "Timer",
    "configure_logging",
    "emit_counter",
    "emit_metric",
    "emit_timer",
    "get_logger",
    "register_metric_callback",
]
