"""Tests for configuration loading."""

import pytest
from pathlib import Path

from membank.config import LastSyncPolicy, load_config
from membank.errors import ConfigError
from membank.models import ContextLevel

_ENV_KEYS = [
    "MEMBANK_LOG_LEVEL",
    "MEMBANK_PROJECTS_FILE",
    "MEMBANK_LAST_SYNC_POLICY",
    "MEMBANK_PARALLEL_SYNC",
    "MEMBANK_CONTEXT_LEVEL",
    "MEMBANK_WARN_TOKENS",
]


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestConfig:
    def test_defaults(self):
        config = load_config()
        assert config.sync.last_sync_policy is LastSyncPolicy.ALWAYS
        assert config.sync.parallel is False
        assert config.context.default_level is ContextLevel.RELEVANT
        assert config.context.summary_lines == 30
        assert config.context.relevant_chars == 5000
        assert config.projects_file == Path("data") / "projects.json"
        assert config.log_level == "INFO"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MEMBANK_LAST_SYNC_POLICY", "on_success")
        monkeypatch.setenv("MEMBANK_PARALLEL_SYNC", "true")
        monkeypatch.setenv("MEMBANK_CONTEXT_LEVEL", "summary")

        config = load_config()
        assert config.sync.last_sync_policy is LastSyncPolicy.ON_SUCCESS
        assert config.sync.parallel is True
        assert config.context.default_level is ContextLevel.SUMMARY

    def test_toml_file(self, tmp_path: Path):
        toml_path = tmp_path / "membank.toml"
        toml_path.write_text("""
log_level = "DEBUG"
projects_file = "/srv/projects.json"

[sync]
last_sync_policy = "on_success"
parallel = true

[context]
default_level = "full"
relevant_chars = 8000
warn_tokens = 100
""")
        config = load_config(toml_path)
        assert config.log_level == "DEBUG"
        assert config.projects_file == Path("/srv/projects.json")
        assert config.sync.last_sync_policy is LastSyncPolicy.ON_SUCCESS
        assert config.sync.parallel is True
        assert config.context.default_level is ContextLevel.FULL
        assert config.context.relevant_chars == 8000
        assert config.context.warn_tokens == 100

    def test_toml_found_in_cwd(self, tmp_path: Path):
        (tmp_path / "membank.toml").write_text('[context]\ndefault_level = "summary"\n')
        config = load_config()
        assert config.context.default_level is ContextLevel.SUMMARY

    def test_env_overrides_toml(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("MEMBANK_LAST_SYNC_POLICY", "always")
        toml_path = tmp_path / "membank.toml"
        toml_path.write_text('[sync]\nlast_sync_policy = "on_success"\n')
        config = load_config(toml_path)
        assert config.sync.last_sync_policy is LastSyncPolicy.ALWAYS  # env wins

    def test_invalid_policy(self, monkeypatch):
        monkeypatch.setenv("MEMBANK_LAST_SYNC_POLICY", "sometimes")
        with pytest.raises(ConfigError, match="last_sync_policy"):
            load_config()

    def test_invalid_level(self, monkeypatch):
        monkeypatch.setenv("MEMBANK_CONTEXT_LEVEL", "everything")
        with pytest.raises(ConfigError, match="context level"):
            load_config()

    def test_malformed_toml(self, tmp_path: Path):
        toml_path = tmp_path / "membank.toml"
        toml_path.write_text("[sync\nparallel = ")
        with pytest.raises(ConfigError):
            load_config(toml_path)
