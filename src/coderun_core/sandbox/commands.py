"""Composition of the install and run steps into one sandbox command."""

import shlex
from dataclasses import dataclass

from coderun_core.languages import PACKAGES, RuntimeProfile, Step
from coderun_core.resolver import DependencySet

SHELL = "/bin/sh"


def expand_step(template: Step, packages: tuple[str, ...]) -> Step:
    """Expand the packages placeholder into one argv element per specifier."""
    argv: list[str] = []
    for token in template:
        if token == PACKAGES:
            argv.extend(packages)
        else:
            argv.append(token)
    return tuple(argv)


def install_steps(profile: RuntimeProfile, deps: DependencySet) -> list[Step]:
    """Install steps for a dependency set; empty when nothing must be installed.

    Runtimes that resolve dependencies themselves never get an install step.
    """
    if profile.implicit_install or deps.is_empty:
        return []
    if deps.manifest is not None:
        steps = profile.manifest_install.get(deps.manifest)
        if steps is not None:
            return list(steps)
    if not deps.specifiers:
        return []
    return [expand_step(step, deps.specifiers) for step in profile.install_command]


@dataclass(frozen=True)
class CommandPlan:
    """Structured command kept as argv steps until rendering.

    ``run`` is either an argv step or the caller's entrypoint text, which is
    handed to the shell verbatim.
    """

    install: tuple[Step, ...]
    run: Step | str

    @classmethod
    def build(
        cls,
        profile: RuntimeProfile,
        deps: DependencySet,
        entrypoint: str | None = None,
    ) -> "CommandPlan":
        run: Step | str
        if entrypoint:
            run = entrypoint
            if profile.launcher and deps.manifest is not None:
                head, sep, rest = entrypoint.strip().partition(" ")
                if head:
                    run = profile.launcher + sep + rest
        else:
            run = profile.run_command
        return cls(install=tuple(install_steps(profile, deps)), run=run)

    @property
    def run_text(self) -> str:
        if isinstance(self.run, str):
            return self.run
        return shlex.join(self.run)

    def render(self) -> str:
        """Render as ``<install> && <run>``; install tokens are shell-quoted."""
        parts = [shlex.join(step) for step in self.install]
        parts.append(self.run_text)
        return " && ".join(parts)

    def argv(self) -> tuple[str, ...]:
        """Final container command, always wrapped in ``/bin/sh -c``."""
        return (SHELL, "-c", self.render())
