"""Host-integration boundary: loaded-plugin inventory and the session context.

The host loader writes the plugins it loaded to ``loaded_plugins.json`` in its
cache directory, as a list of ``{id, name, version, location}`` objects. Every
core operation receives a :class:`Session` instead of reading global state.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from .models import LocalPlugin, MatchResult

if TYPE_CHECKING:
    from modcrate.catalog.models import Package
    from modcrate.core.config import Config

logger = logging.getLogger(__name__)

INVENTORY_FILE = "loaded_plugins.json"


def inventory_path(config: Config) -> Path:
    return config.cache_path / INVENTORY_FILE


def load_loaded_plugins(path: Path) -> list[LocalPlugin]:
    if not path.is_file():
        logger.info("no loaded-plugin inventory at %s", path)
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("loaded-plugin inventory unreadable: %s", e)
        return []
    if isinstance(data, dict):
        data = data.get("plugins", [])
    if not isinstance(data, list):
        return []
    plugins = []
    for item in data:
        plugin = LocalPlugin.from_dict(item)
        if plugin is not None:
            plugins.append(plugin)
    return plugins


def invalidate_metadata_cache(cache_path: Path) -> int:
    """Drop the host's cached plugin metadata so new files are rescanned."""
    removed = 0
    if not cache_path.is_dir():
        return removed
    for dat in cache_path.glob("*.dat"):
        try:
            dat.unlink()
            removed += 1
        except OSError as e:
            logger.warning("could not clear host cache file %s: %s", dat.name, e)
    return removed


@dataclass
class Session:
    """Mutable state for one run: what is loaded, matched, and pending."""

    config: Config
    plugins: list[LocalPlugin] = field(default_factory=list)
    packages: list[Package] = field(default_factory=list)
    matches: dict[str, MatchResult] = field(default_factory=dict)
    restart_required: bool = False
    pending_uninstalls: set[str] = field(default_factory=set)

    @classmethod
    def from_config(cls, config: Config) -> Session:
        return cls(config=config, plugins=load_loaded_plugins(inventory_path(config)))

    def plugin(self, plugin_id: str) -> LocalPlugin | None:
        wanted = plugin_id.lower()
        for plugin in self.plugins:
            if plugin.id.lower() == wanted:
                return plugin
        return None

    def match_for(self, plugin_id: str) -> MatchResult | None:
        if plugin_id in self.matches:
            return self.matches[plugin_id]
        wanted = plugin_id.lower()
        for key, result in self.matches.items():
            if key.lower() == wanted:
                return result
        return None

    def matched_full_names(self) -> set[str]:
        return {m.package.full_name.lower() for m in self.matches.values()}
