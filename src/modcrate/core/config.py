"""Configuration: host paths, remote endpoints, per-mod settings, env overrides."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_URL = "https://thunderstore.io/c/ultimate-chicken-horse/api/v1/package/"
DEFAULT_REGISTRY_EXPERIMENTAL_URL = "https://thunderstore.io/api/experimental/package/"
DEFAULT_CURATED_LIST_URL = (
    "https://raw.githubusercontent.com/KnusBernd/RoosterCuratedList/main/curated-mods.json"
)
DEFAULT_GITHUB_API_URL = "https://api.github.com"

SETTINGS_FILE = "modcrate_settings.json"


@dataclass
class Config:
    game_root: Path = field(default_factory=Path.cwd)
    registry_url: str = DEFAULT_REGISTRY_URL
    registry_experimental_url: str = DEFAULT_REGISTRY_EXPERIMENTAL_URL
    curated_list_url: str = DEFAULT_CURATED_LIST_URL
    github_api_url: str = DEFAULT_GITHUB_API_URL
    github_token: str = ""
    cache_duration: int = 3600  # seconds
    max_retries: int = 3
    request_timeout: float = 30.0
    retry_backoff: float = 1.0
    startup_delay: float = 2.0
    max_workers: int = 8
    # seconds for the whole curated pass; None waits for every repository
    curated_timeout: float | None = None
    verbose: bool = False
    # per-mod settings, keyed by local plugin id
    auto_update: dict[str, bool] = field(default_factory=dict)
    ignored_mods: dict[str, bool] = field(default_factory=dict)
    mod_map: dict[str, str] = field(default_factory=dict)
    runtime_packages: list[str] = field(default_factory=lambda: ["BepInEx-BepInExPack"])

    @property
    def bepinex_root(self) -> Path:
        return self.game_root / "BepInEx"

    @property
    def plugin_path(self) -> Path:
        return self.bepinex_root / "plugins"

    @property
    def patcher_path(self) -> Path:
        return self.bepinex_root / "patchers"

    @property
    def config_path(self) -> Path:
        return self.bepinex_root / "config"

    @property
    def cache_path(self) -> Path:
        return self.bepinex_root / "cache"

    @property
    def state_dir(self) -> Path:
        return self.config_path

    @property
    def settings_file(self) -> Path:
        return self.state_dir / SETTINGS_FILE

    @property
    def catalog_cache_file(self) -> Path:
        return self.state_dir / "modcrate_catalog_cache.json"

    @property
    def loop_guard_file(self) -> Path:
        return self.state_dir / "modcrate_update_loop.json"

    @property
    def manifest_dir(self) -> Path:
        return self.state_dir / "modcrate_manifests"

    @property
    def github_token_file(self) -> Path:
        return self.state_dir / "modcrate_github_token.txt"

    @property
    def log_file(self) -> Path:
        return self.state_dir / "modcrate.log"

    @property
    def protected_dirs(self) -> list[Path]:
        """Shared directories that must never be removed as a whole."""
        return [self.game_root, self.bepinex_root, self.plugin_path, self.patcher_path]

    def is_mod_ignored(self, plugin_id: str) -> bool:
        return bool(self.ignored_mods.get(plugin_id, False))

    def is_auto_update(self, plugin_id: str) -> bool:
        return bool(self.auto_update.get(plugin_id, False))

    def read_github_token(self) -> str:
        """Token from settings/env first, then the local token file."""
        if self.github_token:
            return self.github_token
        path = self.github_token_file
        if not path.is_file():
            return ""
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as e:
            logger.warning("could not read token file %s: %s", path, e)
            return ""


def _apply_settings(config: Config, path: Path) -> None:
    """Apply a single settings file to config."""
    if not path.exists():
        return
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("ignoring unreadable settings file %s: %s", path, e)
        return
    if not isinstance(data, dict):
        return

    for key, attr in (
        ("registryUrl", "registry_url"),
        ("registryExperimentalUrl", "registry_experimental_url"),
        ("curatedListUrl", "curated_list_url"),
        ("githubApiUrl", "github_api_url"),
    ):
        if isinstance(data.get(key), str) and data[key]:
            setattr(config, attr, data[key])

    for key, attr, cast in (
        ("cacheDuration", "cache_duration", int),
        ("maxRetries", "max_retries", int),
        ("requestTimeout", "request_timeout", float),
        ("retryBackoff", "retry_backoff", float),
        ("startupDelay", "startup_delay", float),
        ("maxWorkers", "max_workers", int),
    ):
        if key in data:
            try:
                setattr(config, attr, cast(data[key]))
            except (TypeError, ValueError):
                logger.warning("settings: invalid value for %s: %r", key, data[key])

    if "curatedTimeout" in data:
        value = data["curatedTimeout"]
        try:
            config.curated_timeout = float(value) if value else None
        except (TypeError, ValueError):
            logger.warning("settings: invalid value for curatedTimeout: %r", value)

    if isinstance(data.get("autoUpdate"), dict):
        config.auto_update.update({k: bool(v) for k, v in data["autoUpdate"].items()})
    if isinstance(data.get("ignoredMods"), dict):
        config.ignored_mods.update({k: bool(v) for k, v in data["ignoredMods"].items()})
    if isinstance(data.get("modMap"), dict):
        config.mod_map.update({k: str(v) for k, v in data["modMap"].items() if v})
    if isinstance(data.get("runtimePackages"), list):
        config.runtime_packages = [str(v) for v in data["runtimePackages"] if v]


def save_settings(config: Config) -> Path:
    """Persist per-mod settings, keeping any other keys already in the file."""
    path = config.settings_file
    data: dict = {}
    if path.exists():
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(loaded, dict):
                data = loaded
        except (json.JSONDecodeError, OSError):
            pass
    data["autoUpdate"] = dict(sorted(config.auto_update.items()))
    data["ignoredMods"] = dict(sorted(config.ignored_mods.items()))
    data["modMap"] = dict(sorted(config.mod_map.items()))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return path


def load_config(
    game_root: Path | str | None = None,
    verbose: bool = False,
) -> Config:
    """Load config with priority: CLI args > env > .env > settings file > defaults."""
    load_dotenv()

    config = Config()
    config.verbose = verbose

    if game_root is not None:
        config.game_root = Path(game_root)
    elif env_root := os.getenv("MODCRATE_GAME_ROOT"):
        config.game_root = Path(env_root)

    _apply_settings(config, config.settings_file)

    if env_registry := os.getenv("MODCRATE_REGISTRY_URL"):
        config.registry_url = env_registry
    if env_curated := os.getenv("MODCRATE_CURATED_URL"):
        config.curated_list_url = env_curated
    if env_duration := os.getenv("MODCRATE_CACHE_DURATION"):
        try:
            config.cache_duration = int(env_duration)
        except ValueError:
            logger.warning("MODCRATE_CACHE_DURATION is not an integer: %r", env_duration)
    if token := os.getenv("GITHUB_TOKEN"):
        config.github_token = token

    return config
