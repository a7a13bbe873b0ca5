"""Tests for configuration loading."""

import json
import tempfile
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from coderun_core.config import DEFAULT_ARTIFACTS_DIRNAME, Config, substitute_env_vars


class TestEnvSubstitution:
    """Tests for environment variable substitution."""

    def test_substitute_string(self, monkeypatch):
        """Test substituting a string value."""
        monkeypatch.setenv("CODERUN_TEST_VAR", "hello")
        assert substitute_env_vars("${CODERUN_TEST_VAR}") == "hello"

    def test_substitute_nested(self, monkeypatch):
        """Test substituting values in nested dicts and lists."""
        monkeypatch.setenv("CODERUN_ROOT", "/srv/artifacts")
        data = {"artifacts": {"path": "${CODERUN_ROOT}"}, "origins": ["${CODERUN_ROOT}", "x"]}
        result = substitute_env_vars(data)
        assert result == {
            "artifacts": {"path": "/srv/artifacts"},
            "origins": ["/srv/artifacts", "x"],
        }

    def test_missing_env_var_raises(self, monkeypatch):
        """Test that missing env vars raise ValueError naming the variable."""
        monkeypatch.delenv("CODERUN_NONEXISTENT", raising=False)
        with pytest.raises(ValueError, match="CODERUN_NONEXISTENT"):
            substitute_env_vars("${CODERUN_NONEXISTENT}")

    def test_partial_substitution(self, monkeypatch):
        """Test substituting part of a string."""
        monkeypatch.setenv("CODERUN_PREFIX", "ci")
        assert substitute_env_vars("${CODERUN_PREFIX}-sandbox-") == "ci-sandbox-"

    def test_non_strings_untouched(self):
        assert substitute_env_vars(5) == 5
        assert substitute_env_vars(None) is None


class TestConfigLoading:
    """Tests for configuration loading."""

    def test_from_dict(self, sample_config_dict):
        """Test loading config from dictionary."""
        config = Config.from_dict(sample_config_dict)
        assert config.runtime.backend == "local"
        assert config.progress.poll_interval_seconds == 0.01
        assert config.artifacts.user_dir is None

    def test_from_yaml_file(self, sample_config_dict):
        """Test loading config from YAML file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yaml"
            path.write_text(yaml.dump(sample_config_dict))

            config = Config.from_file(path)
            assert config.runtime.backend == "local"
            assert config.logging.format == "text"

    def test_from_json_file(self, sample_config_dict):
        """Test loading config from JSON file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            path.write_text(json.dumps(sample_config_dict))

            config = Config.from_file(path)
            assert config.artifacts.path == sample_config_dict["artifacts"]["path"]

    def test_empty_yaml_file_uses_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "empty.yaml"
            path.write_text("")

            config = Config.from_file(path)
            assert config.runtime.backend == "docker"

    def test_defaults(self, monkeypatch):
        """Test that defaults are applied."""
        monkeypatch.delenv("ARTIFACTS_DIR", raising=False)
        config = Config.from_dict({})
        assert config.runtime.backend == "docker"
        assert config.runtime.docker_binary == "docker"
        assert config.runtime.workspace_prefix == "docker-sandbox-"
        assert config.artifacts.backend == "local"
        assert config.artifacts.path.endswith(DEFAULT_ARTIFACTS_DIRNAME)
        assert config.artifacts.user_dir is None
        assert config.artifacts.rebuild_index is False
        assert config.progress.poll_interval_seconds == 2.0
        assert config.progress.total == 100
        assert config.server.port == 9520
        assert config.logging.level == "INFO"

    def test_user_dir_defaults_to_environment(self, monkeypatch):
        monkeypatch.setenv("ARTIFACTS_DIR", "/data/shared")
        config = Config.from_dict({})
        assert config.artifacts.user_dir == "/data/shared"

    def test_invalid_poll_interval_rejected(self):
        with pytest.raises(ValidationError):
            Config.from_dict({"progress": {"poll_interval_seconds": 0}})
