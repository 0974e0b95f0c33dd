"""Tests for settings_sync.config_loader -- hierarchical YAML config."""

import textwrap
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from settings_sync.config_loader import (
    CONFIG_ENV_VAR,
    _interpolate_recursive,
    _load_yaml_with_includes,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
    resolve_config_path,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """CWD and HOME point into tmp_path; no explicit config env var."""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.chdir(tmp_path)
    home = tmp_path / "home"
    monkeypatch.setenv("HOME", str(home))
    return tmp_path, home


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text))
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    def test_set_var(self, monkeypatch):
        monkeypatch.setenv("SYNC_HOST", "sync.local")
        assert interpolate_env_vars("https://${SYNC_HOST}") == (
            "https://sync.local"
        )

    def test_unset_var_becomes_empty(self, monkeypatch):
        monkeypatch.delenv("SYNC_UNSET_VAR", raising=False)
        assert interpolate_env_vars("${SYNC_UNSET_VAR}") == ""

    def test_default_when_unset_or_empty(self, monkeypatch):
        monkeypatch.delenv("SYNC_UNSET_VAR", raising=False)
        monkeypatch.setenv("SYNC_EMPTY_VAR", "")
        assert interpolate_env_vars("${SYNC_UNSET_VAR:-60}") == "60"
        assert interpolate_env_vars("${SYNC_EMPTY_VAR:-60}") == "60"

    def test_default_ignored_when_set(self, monkeypatch):
        monkeypatch.setenv("SYNC_INTERVAL", "120")
        assert interpolate_env_vars("${SYNC_INTERVAL:-60}") == "120"

    def test_unclosed_reference_left_alone(self):
        assert interpolate_env_vars("${NO_CLOSE") == "${NO_CLOSE"

    def test_recursive_over_dicts_and_lists(self, monkeypatch):
        monkeypatch.setenv("EDITOR_DIR", "/home/dev/.atom")
        data = {
            "daemon": {"editor_config_dir": "${EDITOR_DIR}", "interval": 30},
            "preferences": {"extra_files": ["${EDITOR_DIR}/x.cson", 7]},
        }

        assert _interpolate_recursive(data) == {
            "daemon": {"editor_config_dir": "/home/dev/.atom", "interval": 30},
            "preferences": {"extra_files": ["/home/dev/.atom/x.cson", 7]},
        }


# -------------------------------------------------------------------------
# !include
# -------------------------------------------------------------------------


class TestIncludeDirective:
    def test_relative_include(self, tmp_path):
        _write(tmp_path / "prefs.yml", "blacklisted_keys: [core.projectHome]\n")
        main = _write(tmp_path / "config.yml", "preferences: !include prefs.yml\n")

        assert _load_yaml_with_includes(main) == {
            "preferences": {"blacklisted_keys": ["core.projectHome"]}
        }

    def test_absolute_include(self, tmp_path):
        api = _write(tmp_path / "shared" / "api.yml", "url: https://x.test\n")
        main = _write(tmp_path / "config.yml", f"api: !include {api}\n")

        assert _load_yaml_with_includes(main) == {
            "api": {"url": "https://x.test"}
        }

    def test_nested_includes(self, tmp_path):
        _write(tmp_path / "c.yml", "level: DEBUG\n")
        _write(tmp_path / "b.yml", "inner: !include c.yml\n")
        a = _write(tmp_path / "a.yml", "outer: !include b.yml\n")

        assert _load_yaml_with_includes(a) == {
            "outer": {"inner": {"level": "DEBUG"}}
        }

    def test_missing_include_raises(self, tmp_path):
        main = _write(tmp_path / "config.yml", "api: !include gone.yml\n")

        with pytest.raises(FileNotFoundError, match="gone.yml"):
            _load_yaml_with_includes(main)

    @pytest.mark.parametrize(
        "files",
        [
            {"a.yml": "x: !include a.yml\n"},
            {"a.yml": "x: !include b.yml\n", "b.yml": "y: !include a.yml\n"},
        ],
        ids=["self", "mutual"],
    )
    def test_circular_include_raises(self, tmp_path, files):
        for name, text in files.items():
            _write(tmp_path / name, text)

        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml_with_includes(tmp_path / "a.yml")

    def test_safe_loader_untouched(self, tmp_path):
        cfg = _write(tmp_path / "config.yml", "x: !include other.yml\n")

        with pytest.raises(yaml.constructor.ConstructorError):
            with open(cfg) as fh:
                yaml.safe_load(fh)


# -------------------------------------------------------------------------
# Discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    def test_nothing_on_disk(self, isolated):
        assert discover_config_files() == []

    def test_env_var_first(self, isolated, monkeypatch):
        cwd, _ = isolated
        custom = _write(cwd / "custom.yml", "api: {}\n")
        _write(cwd / ".settings_sync" / "config.yml", "api: {}\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(custom))

        result = discover_config_files()

        assert result[0] == custom.resolve()
        assert len(result) == 2

    def test_project_before_global(self, isolated):
        cwd, home = isolated
        project = _write(cwd / ".settings_sync" / "config.yml", "a: 1\n")
        legacy_ext = _write(cwd / ".settings_sync" / "config.yaml", "a: 2\n")
        xdg = _write(home / ".config" / "settings_sync" / "config.yml", "a: 3\n")
        home_cfg = _write(home / ".settings_sync" / "config.yaml", "a: 4\n")

        assert discover_config_files() == [
            project,
            legacy_ext,
            xdg,
            home_cfg,
        ]


# -------------------------------------------------------------------------
# Hierarchical merge
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    def test_zero_config(self, isolated):
        assert load_hierarchical_config() == {}

    def test_project_replaces_global_sections(self, isolated):
        cwd, home = isolated
        _write(
            home / ".config" / "settings_sync" / "config.yml",
            """\
            api:
              url: https://global.example.com
              cache_ttl: 10
            daemon:
              interval: 300
            """,
        )
        _write(
            cwd / ".settings_sync" / "config.yml",
            """\
            api:
              url: https://project.example.com
            """,
        )

        result = load_hierarchical_config()

        assert result["api"] == {"url": "https://project.example.com"}
        assert result["daemon"]["interval"] == 300

    def test_interpolation_runs_after_merge(self, isolated, monkeypatch):
        cwd, _ = isolated
        monkeypatch.setenv("SYNC_SERVER", "https://env.example.com")
        _write(
            cwd / ".settings_sync" / "config.yml",
            'api:\n  url: "${SYNC_SERVER}"\n',
        )

        assert load_hierarchical_config()["api"]["url"] == (
            "https://env.example.com"
        )

    def test_include_in_discovered_file(self, isolated):
        cwd, _ = isolated
        _write(cwd / ".settings_sync" / "daemon.yml", "interval: 15\n")
        _write(
            cwd / ".settings_sync" / "config.yml",
            "daemon: !include daemon.yml\n",
        )

        assert load_hierarchical_config() == {"daemon": {"interval": 15}}

    def test_non_dict_root_skipped(self, isolated, monkeypatch):
        cwd, _ = isolated
        bad = _write(cwd / "bad.yml", "- one\n- two\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(bad))

        assert load_hierarchical_config() == {}


# -------------------------------------------------------------------------
# Bootstrapping
# -------------------------------------------------------------------------


class TestResolveConfigPath:
    def test_first_existing_wins(self):
        first = Path("/project/.settings_sync/config.yml")
        second = Path("/home/dev/.config/settings_sync/config.yml")

        with patch(
            "settings_sync.config_loader.discover_config_files",
            return_value=[first, second],
        ):
            assert resolve_config_path() == first

    def test_default_project_path(self, isolated):
        cwd, _ = isolated

        assert resolve_config_path() == cwd / ".settings_sync" / "config.yml"


class TestEnsureConfig:
    def test_existing_file_returned(self, isolated):
        cwd, _ = isolated
        existing = _write(cwd / ".settings_sync" / "config.yml", "api: {}\n")

        assert ensure_config() == existing
        assert existing.read_text() == "api: {}\n"

    def test_writes_starter_file(self, isolated):
        cwd, _ = isolated

        path = ensure_config()

        assert path == cwd / ".settings_sync" / "config.yml"
        content = path.read_text()
        assert "# editor-settings-sync configuration" in content
        assert "# daemon:" in content
        assert yaml.safe_load(content) is None

    def test_explicit_target_with_parents(self, isolated):
        cwd, _ = isolated
        target = cwd / "deep" / "er" / "sync.yml"

        assert ensure_config(target=target) == target
        assert target.is_file()
