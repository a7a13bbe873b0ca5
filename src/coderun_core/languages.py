"""Static per-language runtime profiles.

Each supported language maps to a base image, a default run command, the
extension used for inline source files, the dependency manifests the runtime
understands and the install steps used to satisfy them.

Install steps are argv templates. The ``PACKAGES`` placeholder token expands
to the resolved package specifiers, one argv element each.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

# Placeholder token inside install step templates
PACKAGES = "{packages}"

Step = tuple[str, ...]


class Language(str, Enum):
    """Supported language identifiers."""

    PYTHON = "python"
    GO = "go"
    NODEJS = "nodejs"


@dataclass(frozen=True)
class RuntimeProfile:
    """Runtime configuration for a single language."""

    language: str = ""
    image: str = ""
    run_command: Step = ()
    file_extension: str = ""
    dependency_files: tuple[str, ...] = ()
    # Steps that install an explicit list of package specifiers
    install_command: tuple[Step, ...] = ()
    # Steps that install from a manifest file, keyed by manifest name
    manifest_install: Mapping[str, tuple[Step, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    # Runtime resolves dependencies itself when the program starts
    implicit_install: bool = False
    # Replaces the first token of the run step when a manifest is present
    launcher: str | None = None
    # Line comment prefix used for "requirements:" markers
    comment_prefix: str = "#"

    @property
    def supported(self) -> bool:
        """A profile without an image is the zero profile."""
        return bool(self.image)

    @property
    def canonical_manifest(self) -> str | None:
        """The manifest that comment-declared requirements are written to."""
        return self.dependency_files[0] if self.dependency_files else None

    @property
    def source_filename(self) -> str:
        """File name used when staging inline source code."""
        return f"main.{self.file_extension}"


_PYTHON_MANIFEST_INSTALL: tuple[Step, ...] = (("uv", "pip", "install", "--system", "."),)

SUPPORTED_LANGUAGES: Mapping[str, RuntimeProfile] = MappingProxyType({
    Language.PYTHON.value: RuntimeProfile(
        language=Language.PYTHON.value,
        image="ghcr.io/astral-sh/uv:python3.12-bookworm-slim",
        run_command=("python", "main.py"),
        file_extension="py",
        dependency_files=("requirements.txt", "pyproject.toml", "setup.py"),
        install_command=(("uv", "pip", "install", "--system", PACKAGES),),
        manifest_install=MappingProxyType({
            "requirements.txt": (
                ("uv", "pip", "install", "--system", "-r", "requirements.txt"),
            ),
            "pyproject.toml": _PYTHON_MANIFEST_INSTALL,
            "setup.py": _PYTHON_MANIFEST_INSTALL,
        }),
    ),
    Language.GO.value: RuntimeProfile(
        language=Language.GO.value,
        image="docker.io/library/golang:1.23-alpine",
        run_command=("go", "run", "main.go"),
        file_extension="go",
        dependency_files=("go.mod",),
        install_command=(
            ("go", "mod", "init", "sandbox"),
            ("go", "get", PACKAGES),
        ),
        manifest_install=MappingProxyType({
            "go.mod": (("go", "mod", "download"),),
        }),
        comment_prefix="//",
    ),
    Language.NODEJS.value: RuntimeProfile(
        language=Language.NODEJS.value,
        image="docker.io/oven/bun:debian",
        run_command=("bun", "run", "main.ts"),
        file_extension="ts",
        dependency_files=("package.json",),
        implicit_install=True,
        launcher="bun",
        comment_prefix="//",
    ),
})

ZERO_PROFILE = RuntimeProfile()


def get_profile(language: str) -> RuntimeProfile:
    """Look up the runtime profile for a language id.

    Returns the zero profile (empty image) for unknown ids; callers treat
    that as an unsupported language.
    """
    if isinstance(language, Language):
        language = language.value
    return SUPPORTED_LANGUAGES.get(language, ZERO_PROFILE)


def supported_languages() -> list[str]:
    """List supported language ids in declaration order."""
    return list(SUPPORTED_LANGUAGES)
