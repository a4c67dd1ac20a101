"""CLI tests. The catalog comes from a fresh on-disk cache, so nothing touches the network."""

import json
import zipfile

import pytest
from click.testing import CliRunner

from modcrate.__main__ import cli
from modcrate.catalog.cache import CatalogCache
from modcrate.catalog.models import Package, PackageVersion
from modcrate.core.config import Config


@pytest.fixture
def config(tmp_path):
    c = Config(game_root=tmp_path / "game")
    c.plugin_path.mkdir(parents=True)
    c.config_path.mkdir(parents=True)
    return c


@pytest.fixture
def runner(monkeypatch):
    for var in ("MODCRATE_GAME_ROOT", "MODCRATE_REGISTRY_URL", "MODCRATE_CURATED_URL", "GITHUB_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    return CliRunner()


def _run(runner, config, *args):
    return runner.invoke(cli, ["--game-root", str(config.game_root), *args])


def _cache_catalog(config, *packages):
    CatalogCache(config.catalog_cache_file).save(list(packages))


def _pkg(full_name, version="1.0.0", description=""):
    return Package(
        name=full_name.split("-", 1)[1],
        full_name=full_name,
        latest=PackageVersion(version_number=version, download_url=f"https://thunderstore.io/dl/{full_name}/"),
        description=description,
    )


def _inventory(config, *plugins):
    config.cache_path.mkdir(parents=True, exist_ok=True)
    (config.cache_path / "loaded_plugins.json").write_text(json.dumps(list(plugins)))


class TestConfigure:
    def test_saves_settings(self, runner, config):
        result = _run(runner, config, "configure", "p.a", "--auto-update", "--map", "T-A")
        assert result.exit_code == 0, result.output
        data = json.loads(config.settings_file.read_text())
        assert data["autoUpdate"] == {"p.a": True}
        assert data["modMap"] == {"p.a": "T-A"}

    def test_clear_mapping(self, runner, config):
        _run(runner, config, "configure", "p.a", "--map", "T-A", "--ignore")
        result = _run(runner, config, "configure", "p.a", "--map", "")
        assert result.exit_code == 0, result.output
        data = json.loads(config.settings_file.read_text())
        assert data["modMap"] == {}
        assert data["ignoredMods"] == {"p.a": True}


class TestCatalog:
    def test_lists_cached_packages(self, runner, config):
        _cache_catalog(config, _pkg("T-Alpha", description="first"), _pkg("T-Beta", description="second"))
        result = _run(runner, config, "catalog")
        assert result.exit_code == 0, result.output
        assert "T-Alpha" in result.output
        assert "2 package(s)" in result.output

    def test_search(self, runner, config):
        _cache_catalog(config, _pkg("T-Alpha", description="first"), _pkg("T-Beta", description="second"))
        result = _run(runner, config, "catalog", "-s", "SECOND")
        assert "T-Beta" in result.output
        assert "T-Alpha" not in result.output


class TestMatch:
    def test_best_match_shown(self, runner, config):
        _cache_catalog(config, _pkg("Author-CoolMod"), _pkg("Someone-OtherThing"))
        _inventory(config, {"id": "com.author.coolmod", "name": "Cool Mod", "version": "1.0.0"})
        result = _run(runner, config, "match", "com.author.coolmod")
        assert result.exit_code == 0, result.output
        assert "match: Author-CoolMod" in result.output
        assert "exact name match" in result.output


class TestInstallFile:
    def test_installs_archive(self, runner, config, tmp_path):
        payload = tmp_path / "Cool.zip"
        with zipfile.ZipFile(payload, "w") as zf:
            zf.writestr("manifest.json", "{}")
            zf.writestr("Cool/Cool.dll", "dll")

        result = _run(runner, config, "install-file", str(payload), "--name", "Team-Cool")

        assert result.exit_code == 0, result.output
        assert (config.plugin_path / "Cool" / "Cool.dll").exists()
        assert (config.manifest_dir / "Team-Cool.json").exists()
        assert payload.exists()

    def test_rejects_non_archive(self, runner, config, tmp_path):
        payload = tmp_path / "notes.txt"
        payload.write_text("hello")
        result = _run(runner, config, "install-file", str(payload))
        assert result.exit_code == 1
        assert "error" in result.output


class TestUninstall:
    def test_removes_plugin_folder(self, runner, config):
        folder = config.plugin_path / "Cool"
        folder.mkdir()
        (folder / "Cool.dll").write_text("dll")
        _cache_catalog(config, _pkg("Author-CoolMod"))
        _inventory(
            config,
            {"id": "com.author.coolmod", "name": "Cool Mod", "version": "1.0.0", "location": str(folder / "Cool.dll")},
        )

        result = _run(runner, config, "uninstall", "com.author.coolmod")

        assert result.exit_code == 0, result.output
        assert "discovered" in result.output
        assert not folder.exists()

    def test_protected(self, runner, config):
        _cache_catalog(config, _pkg("Author-CoolMod"))
        result = _run(runner, config, "uninstall", "BepInEx")
        assert result.exit_code == 1
        assert "protected" in result.output


class TestStartup:
    def test_sweeps_leftovers(self, runner, config):
        (config.plugin_path / "Mod.dll.old_42").write_text("backup")
        result = _run(runner, config, "startup")
        assert result.exit_code == 0, result.output
        assert "removed 1 leftover" in result.output
        assert not (config.plugin_path / "Mod.dll.old_42").exists()
