"""Tests for settings loading."""

from pathlib import Path

import pytest

from repo_builder.config import (
    DEFAULT_BASE_INPUT,
    get_base_dir,
    get_choices_file,
    get_default_base_input,
    get_load_factor,
    get_log_dir,
    get_max_workers,
    get_scripts_dir,
    load_config,
)
from repo_builder.errors import ConfigError


@pytest.fixture(autouse=True)
def _isolated(tmp_path, monkeypatch):
    """Point HOME and cwd at empty directories."""
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(work)
    for var in ("REPO_BUILDER_CONFIG", "REPO_BUILDER_CHOICES_FILE", "REPO_BUILDER_SCRIPTS_DIR"):
        monkeypatch.delenv(var, raising=False)
    return home, work


class TestLoadConfig:
    """Tests for load_config."""

    def test_no_file(self):
        """No settings file anywhere gives an empty dict."""
        assert load_config() == {}

    def test_explicit_path(self, tmp_path):
        """An explicit file is loaded and its source recorded."""
        path = tmp_path / "settings.yml"
        path.write_text("load_factor: 0.5\n")
        config = load_config(str(path))
        assert config["load_factor"] == 0.5
        assert config["_source"] == str(path)

    def test_explicit_missing(self, tmp_path):
        """An explicit path that does not exist is an error."""
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yml"))

    def test_env_var(self, tmp_path, monkeypatch):
        """$REPO_BUILDER_CONFIG is used when no path is given."""
        path = tmp_path / "env.yml"
        path.write_text("max_workers: 3\n")
        monkeypatch.setenv("REPO_BUILDER_CONFIG", str(path))
        assert load_config()["max_workers"] == 3

    def test_project_local_beats_user(self, _isolated):
        """./.repo_builder/config.yml wins over the home one."""
        home, work = _isolated
        (home / ".repo_builder").mkdir()
        (home / ".repo_builder" / "config.yml").write_text("default_base_input: user\n")
        (work / ".repo_builder").mkdir()
        (work / ".repo_builder" / "config.yml").write_text("default_base_input: project\n")

        assert load_config()["default_base_input"] == "project"

    def test_user_file(self, _isolated):
        """~/.repo_builder/config.yml is the last fallback."""
        home, _ = _isolated
        (home / ".repo_builder").mkdir()
        (home / ".repo_builder" / "config.yml").write_text("default_base_input: user\n")
        assert load_config()["default_base_input"] == "user"

    def test_empty_file(self, tmp_path):
        """An empty file means no settings."""
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert load_config(str(path)) == {}

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("key: [unclosed")
        with pytest.raises(ConfigError, match="invalid YAML"):
            load_config(str(path))

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(str(path))


class TestSettings:
    """Tests for the individual setting helpers."""

    def test_choices_file_default(self, _isolated):
        home, _ = _isolated
        assert get_choices_file({}) == home / ".repo_builder_config"

    def test_choices_file_env_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("REPO_BUILDER_CHOICES_FILE", str(tmp_path / "env"))
        assert get_choices_file({"choices_file": "/x"}) == tmp_path / "env"

    def test_scripts_dir_default(self, _isolated):
        _, work = _isolated
        assert get_scripts_dir({}) == (work / "scripts").resolve()

    def test_default_base_input(self):
        assert get_default_base_input({}) == DEFAULT_BASE_INPUT
        assert get_default_base_input({"default_base_input": "nightly"}) == "nightly"

    def test_base_dir_relative_to_home(self, _isolated):
        """Relative base inputs live under the home directory."""
        home, _ = _isolated
        assert get_base_dir("builds/x") == home / "builds" / "x"
        assert get_base_dir("/abs/path") == Path("/abs/path")

    def test_log_dir(self, tmp_path):
        assert get_log_dir({}, tmp_path) == tmp_path / "automationlogs"
        assert get_log_dir({"log_dir_name": "logs"}, tmp_path) == tmp_path / "logs"

    @pytest.mark.parametrize("value", [0, -1, 1.5, "fast"])
    def test_bad_load_factor(self, value):
        with pytest.raises(ConfigError):
            get_load_factor({"load_factor": value})

    def test_load_factor_default(self):
        assert get_load_factor({}) == 0.8

    @pytest.mark.parametrize("value", [0, -2, "many"])
    def test_bad_max_workers(self, value):
        with pytest.raises(ConfigError):
            get_max_workers({"max_workers": value})

    def test_max_workers(self):
        assert get_max_workers({}) is None
        assert get_max_workers({"max_workers": "4"}) == 4
