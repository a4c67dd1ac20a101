"""Tests for config: host paths, settings file, env overrides, save_settings."""

import json
import os
from unittest.mock import patch

import pytest

from modcrate.core.config import Config, _apply_settings, load_config, save_settings


class TestConfigDefaults:
    def test_host_paths_derive_from_game_root(self, tmp_path):
        c = Config(game_root=tmp_path)
        assert c.bepinex_root == tmp_path / "BepInEx"
        assert c.plugin_path == tmp_path / "BepInEx" / "plugins"
        assert c.patcher_path == tmp_path / "BepInEx" / "patchers"
        assert c.config_path == tmp_path / "BepInEx" / "config"
        assert c.cache_path == tmp_path / "BepInEx" / "cache"

    def test_state_files_live_in_config_dir(self, tmp_path):
        c = Config(game_root=tmp_path)
        assert c.catalog_cache_file.parent == c.config_path
        assert c.loop_guard_file.parent == c.config_path
        assert c.manifest_dir.parent == c.config_path

    def test_defaults(self):
        c = Config()
        assert c.cache_duration == 3600
        assert c.max_retries == 3
        assert c.runtime_packages == ["BepInEx-BepInExPack"]

    def test_protected_dirs(self, tmp_path):
        c = Config(game_root=tmp_path)
        assert c.plugin_path in c.protected_dirs
        assert c.game_root in c.protected_dirs
        assert c.config_path not in c.protected_dirs

    def test_per_mod_flags_default_off(self):
        c = Config()
        assert not c.is_auto_update("any.mod")
        assert not c.is_mod_ignored("any.mod")


class TestApplySettings:
    def test_reads_camel_case_keys(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(
            json.dumps(
                {
                    "cacheDuration": 60,
                    "maxRetries": 5,
                    "registryUrl": "https://example.test/api/",
                    "autoUpdate": {"a.mod": True},
                    "ignoredMods": {"b.mod": True},
                    "modMap": {"c.mod": "Team-CMod"},
                }
            )
        )
        c = Config()
        _apply_settings(c, path)
        assert c.cache_duration == 60
        assert c.max_retries == 5
        assert c.registry_url == "https://example.test/api/"
        assert c.is_auto_update("a.mod")
        assert c.is_mod_ignored("b.mod")
        assert c.mod_map == {"c.mod": "Team-CMod"}

    def test_missing_file_is_noop(self, tmp_path):
        c = Config()
        _apply_settings(c, tmp_path / "nope.json")
        assert c.cache_duration == 3600

    def test_invalid_json_ignored(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        c = Config()
        _apply_settings(c, path)
        assert c.max_retries == 3

    def test_bad_value_keeps_default(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"cacheDuration": "soon"}))
        c = Config()
        _apply_settings(c, path)
        assert c.cache_duration == 3600

    @pytest.mark.parametrize("value,expected", [(20, 20.0), ("7.5", 7.5), (None, None), (0, None), ("later", None)])
    def test_curated_timeout(self, tmp_path, value, expected):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"curatedTimeout": value}))
        c = Config()
        _apply_settings(c, path)
        assert c.curated_timeout == expected


class TestLoadConfig:
    def test_settings_file_under_game_root(self, tmp_path):
        c = Config(game_root=tmp_path)
        c.settings_file.parent.mkdir(parents=True)
        c.settings_file.write_text(json.dumps({"maxWorkers": 2}))
        config = load_config(game_root=tmp_path)
        assert config.max_workers == 2

    def test_env_game_root(self, tmp_path):
        with patch.dict(os.environ, {"MODCRATE_GAME_ROOT": str(tmp_path)}, clear=False):
            config = load_config()
            assert config.game_root == tmp_path

    def test_cli_game_root_beats_env(self, tmp_path):
        other = tmp_path / "other"
        with patch.dict(os.environ, {"MODCRATE_GAME_ROOT": str(tmp_path)}, clear=False):
            config = load_config(game_root=other)
            assert config.game_root == other

    def test_env_beats_settings_file(self, tmp_path):
        c = Config(game_root=tmp_path)
        c.settings_file.parent.mkdir(parents=True)
        c.settings_file.write_text(json.dumps({"cacheDuration": 10}))
        with patch.dict(os.environ, {"MODCRATE_CACHE_DURATION": "99"}, clear=False):
            config = load_config(game_root=tmp_path)
            assert config.cache_duration == 99

    def test_github_token_env(self, tmp_path):
        with patch.dict(os.environ, {"GITHUB_TOKEN": "ghp_test"}, clear=False):
            config = load_config(game_root=tmp_path)
            assert config.read_github_token() == "ghp_test"


class TestGithubToken:
    def test_token_file(self, tmp_path):
        c = Config(game_root=tmp_path)
        c.github_token_file.parent.mkdir(parents=True)
        c.github_token_file.write_text("  secret-token\n")
        assert c.read_github_token() == "secret-token"

    def test_no_token(self, tmp_path):
        assert Config(game_root=tmp_path).read_github_token() == ""


class TestSaveSettings:
    def test_round_trips_per_mod_maps(self, tmp_path):
        c = Config(game_root=tmp_path)
        c.auto_update["x.mod"] = True
        c.mod_map["y.mod"] = "Team-Y"
        path = save_settings(c)

        reloaded = Config(game_root=tmp_path)
        _apply_settings(reloaded, path)
        assert reloaded.is_auto_update("x.mod")
        assert reloaded.mod_map == {"y.mod": "Team-Y"}

    def test_keeps_unrelated_keys(self, tmp_path):
        c = Config(game_root=tmp_path)
        c.settings_file.parent.mkdir(parents=True)
        c.settings_file.write_text(json.dumps({"cacheDuration": 42}))
        save_settings(c)
        data = json.loads(c.settings_file.read_text())
        assert data["cacheDuration"] == 42
        assert data["autoUpdate"] == {}
