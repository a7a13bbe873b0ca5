"""Ordered, de-duplicated package specifier sets."""

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

# First character that ends the package name part of a specifier
_NAME_END_RE = re.compile(r"[<>=!~;\[\s]")


def requirement_name(specifier: str) -> str:
    """Return the normalized package name of a specifier.

    ``flask==2.0`` -> ``flask``, ``@types/node@20`` -> ``@types/node``,
    ``github.com/x/y@v1.2.0`` -> ``github.com/x/y``.
    """
    spec = specifier.strip()
    match = _NAME_END_RE.search(spec)
    name = spec[: match.start()] if match else spec
    # name@version (npm, go); a leading "@" is an npm scope
    at = name.find("@", 1)
    if at > 0:
        name = name[:at]
    return name.lower().replace("_", "-")


@dataclass(frozen=True)
class DependencySet:
    """Package specifiers to install before running, in install order.

    ``manifest`` names the manifest file in the source area that the install
    step consumes instead of an explicit specifier list.
    """

    specifiers: tuple[str, ...] = ()
    manifest: str | None = None

    @classmethod
    def from_iterable(
        cls,
        specifiers: Iterable[str],
        manifest: str | None = None,
    ) -> "DependencySet":
        """Build a set keeping first occurrences; duplicates collapse by exact string."""
        seen: set[str] = set()
        ordered: list[str] = []
        for spec in specifiers:
            spec = spec.strip()
            if spec and spec not in seen:
                seen.add(spec)
                ordered.append(spec)
        return cls(specifiers=tuple(ordered), manifest=manifest)

    @property
    def is_empty(self) -> bool:
        return not self.specifiers and self.manifest is None

    def names(self) -> set[str]:
        """Normalized package names covered by this set."""
        return {requirement_name(spec) for spec in self.specifiers}

    def __bool__(self) -> bool:
        return not self.is_empty

    def __iter__(self) -> Iterator[str]:
        return iter(self.specifiers)

    def __len__(self) -> int:
        return len(self.specifiers)


def merge_specifiers(existing: Iterable[str], discovered: Iterable[str]) -> list[str]:
    """Append discovered specifiers to existing ones without overriding them.

    A discovered specifier is dropped when an existing entry already names the
    same package, so ``pkgA==1.0`` survives a later ``pkgA``.
    """
    merged = list(DependencySet.from_iterable(existing))
    names = {requirement_name(spec) for spec in merged}
    for spec in DependencySet.from_iterable(discovered):
        name = requirement_name(spec)
        if name in names:
            continue
        names.add(name)
        merged.append(spec)
    return merged
