"""Tests for sandbox command composition."""

import shlex

import pytest

from coderun_core.languages import get_profile
from coderun_core.resolver import DependencySet, resolve_source
from coderun_core.sandbox import CommandPlan, expand_step, install_steps


class TestExpandStep:
    """Tests for placeholder expansion."""

    def test_one_element_per_specifier(self):
        step = expand_step(("uv", "pip", "install", "{packages}"), ("a", "b==1"))
        assert step == ("uv", "pip", "install", "a", "b==1")


class TestInstallSteps:
    """Tests for install step selection."""

    def test_explicit_packages(self):
        deps = DependencySet.from_iterable(["numpy"])
        assert install_steps(get_profile("python"), deps) == [
            ("uv", "pip", "install", "--system", "numpy")
        ]

    def test_manifest_install(self):
        deps = DependencySet.from_iterable(["requests"], manifest="requirements.txt")
        assert install_steps(get_profile("python"), deps) == [
            ("uv", "pip", "install", "--system", "-r", "requirements.txt")
        ]

    def test_go_packages(self):
        deps = DependencySet.from_iterable(["github.com/x/y"])
        assert install_steps(get_profile("go"), deps) == [
            ("go", "mod", "init", "sandbox"),
            ("go", "get", "github.com/x/y"),
        ]

    def test_implicit_runtime_never_installs(self):
        deps = DependencySet.from_iterable(["express"], manifest="package.json")
        assert install_steps(get_profile("nodejs"), deps) == []

    def test_empty_set(self):
        assert install_steps(get_profile("python"), DependencySet()) == []


class TestCommandPlan:
    """Tests for CommandPlan rendering."""

    @pytest.mark.parametrize(
        "language,code",
        [
            ("python", "import os\nprint('hi')\n"),
            ("go", 'package main\nimport "fmt"\nfunc main() { fmt.Println("hi") }\n'),
            ("nodejs", "console.log('hi')\n"),
        ],
    )
    def test_no_imports_means_no_install_step(self, language, code):
        profile = get_profile(language)
        plan = CommandPlan.build(profile, resolve_source(code, language))

        assert plan.install == ()
        assert plan.argv() == ("/bin/sh", "-c", shlex.join(profile.run_command))

    def test_install_then_run(self):
        deps = resolve_source("import numpy as np\nprint(np.array([1,2]))", "python")
        plan = CommandPlan.build(get_profile("python"), deps)

        assert plan.render() == "uv pip install --system numpy && python main.py"

    def test_install_tokens_are_quoted(self):
        deps = DependencySet.from_iterable(["requests>=2.0", "x; rm -rf /"])
        plan = CommandPlan.build(get_profile("python"), deps)

        rendered = plan.render()
        assert "'requests>=2.0'" in rendered
        assert "'x; rm -rf /'" in rendered
        assert shlex.split(rendered.split(" && ")[0])[-2:] == ["requests>=2.0", "x; rm -rf /"]

    def test_entrypoint_passed_verbatim(self):
        deps = DependencySet.from_iterable(["flask"], manifest="requirements.txt")
        plan = CommandPlan.build(get_profile("python"), deps, entrypoint="python app.py --port 80 | tee out")

        assert plan.render() == (
            "uv pip install --system -r requirements.txt && python app.py --port 80 | tee out"
        )

    def test_launcher_replaces_first_token_with_manifest(self):
        deps = DependencySet(manifest="package.json")
        plan = CommandPlan.build(get_profile("nodejs"), deps, entrypoint="node index.js")

        assert plan.install == ()
        assert plan.render() == "bun index.js"

    def test_launcher_not_applied_without_manifest(self):
        plan = CommandPlan.build(get_profile("nodejs"), DependencySet(), entrypoint="node index.js")
        assert plan.render() == "node index.js"
