"""Dependency discovery for whole project directories."""

import os
from pathlib import Path

from coderun_core.exceptions import ScanFailedError
from coderun_core.languages import RuntimeProfile, get_profile
from coderun_core.observability import get_logger
from coderun_core.resolver.dependency_set import DependencySet, merge_specifiers
from coderun_core.resolver.imports import extract_requirement_comments

logger = get_logger(__name__)

# Directories never scanned for requirement comments
SKIP_DIRS = frozenset({
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "venv",
    ".tox",
    "__pycache__",
    ".mypy_cache",
    ".pytest_cache",
    "node_modules",
})


def _is_list_manifest(name: str | None) -> bool:
    """Whether a manifest is a plain one-specifier-per-line file."""
    return bool(name) and name.endswith(".txt")


def _ensure_readable(root: Path) -> None:
    if not root.is_dir():
        raise ScanFailedError(f"project directory does not exist: {root}")
    try:
        os.listdir(root)
    except OSError as e:
        raise ScanFailedError(f"failed to scan project files: {e}") from e


def find_manifest(project_dir: Path, profile: RuntimeProfile) -> str | None:
    """Return the first recognized manifest present in the project root."""
    for name in profile.dependency_files:
        if (project_dir / name).is_file():
            return name
    return None


def read_manifest_specifiers(path: Path) -> list[str]:
    """Read specifiers from a requirements-style manifest.

    Blank lines and ``#`` comments are ignored.
    """
    specifiers = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            specifiers.append(line)
    return specifiers


def _warn_unreadable(error: OSError) -> None:
    logger.warning(
        "Skipping unreadable directory",
        context={"path": getattr(error, "filename", None)},
        error=error,
    )


def scan_requirement_comments(project_dir: Path, profile: RuntimeProfile) -> list[str]:
    """Collect ``requirements:`` comment specifiers from every source file.

    Files are visited in sorted order so repeated scans yield the same
    sequence. Unreadable files are skipped with a warning.

    Raises:
        ScanFailedError: If the project root itself cannot be read
    """
    _ensure_readable(project_dir)
    suffix = f".{profile.file_extension}"

    found: list[str] = []
    for dirpath, dirnames, filenames in os.walk(project_dir, onerror=_warn_unreadable):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
        for name in sorted(filenames):
            if not name.lower().endswith(suffix):
                continue
            path = Path(dirpath) / name
            try:
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.warning(
                    "Failed to read source file",
                    context={"path": str(path)},
                    error=e,
                )
                continue
            found.extend(extract_requirement_comments(text, profile.comment_prefix))

    return list(DependencySet.from_iterable(found))


def materialize_manifest(
    project_dir: Path,
    profile: RuntimeProfile,
    discovered: list[str],
) -> list[str]:
    """Write discovered specifiers into the project's canonical manifest.

    Entries of an existing manifest keep their position and pins; discovered
    specifiers are only appended.

    Returns:
        The merged specifier list as written

    Raises:
        OSError: If the manifest cannot be written
        UnicodeDecodeError: If an existing manifest is not UTF-8; it is left untouched
    """
    canonical = profile.canonical_manifest
    if canonical is None:
        raise ValueError(f"{profile.language} has no canonical manifest")

    path = project_dir / canonical
    existing = read_manifest_specifiers(path) if path.is_file() else []
    merged = merge_specifiers(existing, discovered)
    path.write_text("\n".join(merged) + "\n", encoding="utf-8")
    logger.info(
        "Wrote manifest from requirements comments",
        context={"path": str(path), "specifiers": merged},
    )
    return merged


def resolve_project(project_dir: str | Path, language: str) -> DependencySet:
    """Resolve the dependencies of a project directory.

    A canonical manifest in the project root is used as-is. Otherwise
    ``requirements:`` comments across the tree are merged into a newly
    materialized canonical manifest (list-style manifests only).

    Raises:
        ScanFailedError: If the project root cannot be read
    """
    root = Path(project_dir)
    profile = get_profile(language)
    _ensure_readable(root)

    manifest = find_manifest(root, profile)
    canonical = profile.canonical_manifest

    if manifest is not None and manifest == canonical:
        specifiers: list[str] = []
        if _is_list_manifest(manifest):
            try:
                specifiers = read_manifest_specifiers(root / manifest)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(
                    "Failed to read manifest",
                    context={"path": str(root / manifest)},
                    error=e,
                )
        return DependencySet.from_iterable(specifiers, manifest=manifest)

    if _is_list_manifest(canonical):
        discovered = scan_requirement_comments(root, profile)
        if discovered:
            try:
                merged = materialize_manifest(root, profile, discovered)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(
                    "Failed to materialize manifest; installing discovered packages directly",
                    context={"path": str(root / canonical)},
                    error=e,
                )
                return DependencySet.from_iterable(discovered)
            return DependencySet.from_iterable(merged, manifest=canonical)

    return DependencySet(manifest=manifest)
