"""Lexical import scanning for inline source code.

Nothing is executed: imports computed at runtime are invisible here.
"""

import re
import sys
from collections.abc import Callable

from coderun_core.languages import Language, get_profile
from coderun_core.resolver.dependency_set import DependencySet, merge_specifiers

# Import names whose distribution is published under another name
PYTHON_PACKAGE_ALIASES: dict[str, str] = {
    "PIL": "pillow",
    "bs4": "beautifulsoup4",
    "cv2": "opencv-python",
    "dateutil": "python-dateutil",
    "docx": "python-docx",
    "dotenv": "python-dotenv",
    "jwt": "pyjwt",
    "magic": "python-magic",
    "pptx": "python-pptx",
    "serial": "pyserial",
    "skimage": "scikit-image",
    "sklearn": "scikit-learn",
    "yaml": "pyyaml",
    "Crypto": "pycryptodome",
    "OpenSSL": "pyopenssl",
    "attr": "attrs",
    "fitz": "pymupdf",
    "google.protobuf": "protobuf",
}

# Names that refer to the staged source itself
_LOCAL_MODULES = frozenset({"main"})

NODE_BUILTINS = frozenset({
    "assert", "async_hooks", "buffer", "child_process", "cluster", "console",
    "constants", "crypto", "dgram", "diagnostics_channel", "dns", "domain",
    "events", "fs", "http", "http2", "https", "inspector", "module", "net",
    "os", "path", "perf_hooks", "process", "punycode", "querystring",
    "readline", "repl", "stream", "string_decoder", "sys", "timers", "tls",
    "trace_events", "tty", "url", "util", "v8", "vm", "wasi", "worker_threads",
    "zlib",
})

_PY_IMPORT_RE = re.compile(r"^import\s+(.+)$")
_PY_FROM_RE = re.compile(r"^from\s+(\S+)\s+import\b")

_JS_FROM_RE = re.compile(r"""\bfrom\s+['"]([^'"\n]+)['"]""")
_JS_BARE_RE = re.compile(r"""^\s*import\s+['"]([^'"\n]+)['"]""", re.MULTILINE)
_JS_CALL_RE = re.compile(r"""\b(?:require|import)\s*\(\s*['"]([^'"\n]+)['"]\s*\)""")

_GO_SINGLE_RE = re.compile(r'^\s*import\s+(?:[\w.]+\s+)?"([^"]+)"', re.MULTILINE)
_GO_BLOCK_RE = re.compile(r"^\s*import\s*\((.*?)\)", re.MULTILINE | re.DOTALL)
_GO_BLOCK_LINE_RE = re.compile(r'^\s*(?:[\w.]+\s+)?"([^"]+)"', re.MULTILINE)


def extract_requirement_comments(text: str, comment_prefix: str = "#") -> list[str]:
    """Collect specifiers from ``<prefix> requirements: a, b==1.0`` lines."""
    pattern = re.compile(
        rf"^\s*{re.escape(comment_prefix)}\s*requirements:\s*(.+)$",
        re.MULTILINE | re.IGNORECASE,
    )
    found: list[str] = []
    for match in pattern.finditer(text):
        found.extend(part.strip() for part in match.group(1).split(","))
    return list(DependencySet.from_iterable(found))


def _python_distribution(module: str) -> str | None:
    if module.startswith("."):
        return None
    top = module.split(".")[0]
    if top in sys.stdlib_module_names or top in _LOCAL_MODULES or not top.isidentifier():
        return None
    for alias in (module, top):
        if alias in PYTHON_PACKAGE_ALIASES:
            return PYTHON_PACKAGE_ALIASES[alias]
    return top


def parse_python_imports(code: str) -> list[str]:
    """Return third-party distributions imported by Python source."""
    packages: list[str] = []
    for line in code.splitlines():
        line = line.split("#", 1)[0]
        for statement in line.split(";"):
            statement = statement.strip()
            match = _PY_FROM_RE.match(statement)
            if match:
                modules = [match.group(1)]
            else:
                match = _PY_IMPORT_RE.match(statement)
                if not match:
                    continue
                modules = [
                    item.split()[0]
                    for item in match.group(1).strip("()\\ ").split(",")
                    if item.strip()
                ]
            for module in modules:
                package = _python_distribution(module)
                if package and package not in packages:
                    packages.append(package)
    return packages


def _node_package(specifier: str) -> str | None:
    if specifier.startswith((".", "/", "node:", "bun:")):
        return None
    parts = specifier.split("/")
    if specifier.startswith("@"):
        if len(parts) < 2:
            return None
        return "/".join(parts[:2])
    if parts[0] in NODE_BUILTINS:
        return None
    return parts[0]


def parse_node_imports(code: str) -> list[str]:
    """Return npm packages imported or required by JavaScript/TypeScript source."""
    hits: list[tuple[int, str]] = []
    for pattern in (_JS_FROM_RE, _JS_BARE_RE, _JS_CALL_RE):
        hits.extend((m.start(1), m.group(1)) for m in pattern.finditer(code))

    packages: list[str] = []
    for _, specifier in sorted(hits):
        package = _node_package(specifier)
        if package and package not in packages:
            packages.append(package)
    return packages


def parse_go_imports(code: str) -> list[str]:
    """Return non-standard-library module paths imported by Go source."""
    hits: list[tuple[int, str]] = [
        (m.start(1), m.group(1)) for m in _GO_SINGLE_RE.finditer(code)
    ]
    for block in _GO_BLOCK_RE.finditer(code):
        offset = block.start(1)
        hits.extend(
            (offset + m.start(1), m.group(1))
            for m in _GO_BLOCK_LINE_RE.finditer(block.group(1))
        )

    packages: list[str] = []
    for _, path in sorted(hits):
        # Standard library paths never contain a dot in the first element
        if "." in path.split("/")[0] and path not in packages:
            packages.append(path)
    return packages


_PARSERS: dict[str, Callable[[str], list[str]]] = {
    Language.PYTHON.value: parse_python_imports,
    Language.NODEJS.value: parse_node_imports,
    Language.GO.value: parse_go_imports,
}


def resolve_source(code: str, language: str) -> DependencySet:
    """Resolve the dependencies of a single inline source text.

    Specifiers declared in ``requirements:`` comments come first; imports
    of packages they already name are not added again.
    """
    profile = get_profile(language)
    declared = extract_requirement_comments(code, profile.comment_prefix)
    parser = _PARSERS.get(profile.language)
    imported = parser(code) if parser else []
    return DependencySet.from_iterable(merge_specifiers(declared, imported))
