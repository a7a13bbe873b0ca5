"""Dependency resolution for inline code and project directories."""

from coderun_core.resolver.dependency_set import (
    DependencySet,
    merge_specifiers,
    requirement_name,
)
from coderun_core.resolver.imports import (
    extract_requirement_comments,
    parse_go_imports,
    parse_node_imports,
    parse_python_imports,
    resolve_source,
)
from coderun_core.resolver.project import (
    find_manifest,
    materialize_manifest,
    resolve_project,
    scan_requirement_comments,
)

__all__ = [
    "DependencySet",
    "extract_requirement_comments",
    "find_manifest",
    "materialize_manifest",
    "merge_specifiers",
    "parse_go_imports",
    "parse_node_imports",
    "parse_python_imports",
    "requirement_name",
    "resolve_project",
    "resolve_source",
    "scan_requirement_comments",
]
