"""UpdateLoopGuard: stop re-offering an update that silently failed to apply.

Each applied update is recorded as pending ``id|version``. On the next start
the loaded plugin's version is compared with the expectation; a mismatch
moves the version into the ignored set. Ignored entries heal themselves once
that exact version is seen installed.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from pathlib import Path

from modcrate.catalog.versions import versions_equal

from .matcher import normalize
from .models import LocalPlugin

logger = logging.getLogger(__name__)

_WORD_SPLIT = re.compile(r"[ \-_.]+")


def _entry(plugin_id: str, version: str) -> str:
    return f"{plugin_id}|{version}"


def _split(entry: str) -> tuple[str, str] | None:
    parts = entry.split("|")
    if len(parts) != 2 or not parts[0]:
        return None
    return parts[0], parts[1]


def is_acronym(acronym: str, full_name: str) -> bool:
    """'RPP' matches 'RemovePlayerPlacements' and 'remove-player-placements'."""
    if not acronym or not full_name or len(acronym) >= len(full_name):
        return False
    caps = "".join(c for c in full_name if c.isupper())
    if caps and caps.lower() == acronym.lower():
        return True
    initials = "".join(word[0] for word in _WORD_SPLIT.split(full_name) if word)
    return initials.lower() == acronym.lower()


def _tail(plugin_id: str) -> str:
    dot = plugin_id.rfind(".")
    return plugin_id[dot + 1 :] if 0 <= dot < len(plugin_id) - 1 else plugin_id


def find_heuristic_match(plugin_id: str, plugins: Iterable[LocalPlugin]) -> LocalPlugin | None:
    """A loaded plugin that is probably *plugin_id* under a drifted id."""
    plugins = list(plugins)
    wanted_tail = _tail(plugin_id)
    for plugin in plugins:
        if is_acronym(plugin_id, plugin.name) or is_acronym(wanted_tail, plugin.name):
            return plugin
        if is_acronym(plugin_id, _tail(plugin.id)):
            return plugin

    n_tail = normalize(wanted_tail)
    if len(n_tail) > 3:
        for plugin in plugins:
            n_name = normalize(plugin.name)
            n_other = normalize(_tail(plugin.id))
            if n_tail in n_name or n_tail == n_other or (len(n_name) > 3 and n_name in n_tail):
                return plugin
    return None


class UpdateLoopGuard:
    def __init__(self, path: Path):
        self.path = path
        self.pending: list[str] = []
        self.ignored: list[str] = []
        self.pending_uninstalls: list[str] = []
        self.load()

    def load(self) -> None:
        self.pending, self.ignored, self.pending_uninstalls = [], [], []
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.error("failed to load update loop data: %s", e)
            return
        if not isinstance(data, dict):
            return
        self.pending = [str(s) for s in data.get("pendingInstalls") or [] if s]
        self.ignored = [str(s) for s in data.get("ignoredVersions") or [] if s]
        self.pending_uninstalls = [str(s) for s in data.get("pendingUninstalls") or [] if s]

    def save(self) -> None:
        data = {
            "pendingInstalls": self.pending,
            "ignoredVersions": self.ignored,
            "pendingUninstalls": self.pending_uninstalls,
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            logger.error("failed to save update loop data: %s", e)

    def register_pending_install(self, plugin_id: str, version: str) -> None:
        entry = _entry(plugin_id, version)
        if entry not in self.pending:
            self.pending.append(entry)
            self.save()

    def register_pending_uninstall(self, plugin_id: str) -> None:
        if not self.is_pending_uninstall(plugin_id):
            self.pending_uninstalls.append(plugin_id)
            self.save()

    def is_pending_uninstall(self, plugin_id: str) -> bool:
        wanted = plugin_id.lower()
        return any(p.lower() == wanted for p in self.pending_uninstalls)

    def is_version_ignored(self, plugin_id: str, version: str) -> bool:
        for entry in self.ignored:
            parsed = _split(entry)
            if parsed and parsed[0].lower() == plugin_id.lower() and versions_equal(parsed[1], version):
                return True
        return False

    def _locate(self, plugin_id: str, plugins: list[LocalPlugin]) -> LocalPlugin | None:
        for plugin in plugins:
            if plugin.id == plugin_id:
                return plugin
        match = find_heuristic_match(plugin_id, plugins)
        if match is not None:
            logger.info("heuristic match for %s -> %s", plugin_id, match.name)
        return match

    def verify(self, loaded: Iterable[LocalPlugin]) -> list[str]:
        """Startup pass. Returns the entries newly added to the ignored set."""
        plugins = list(loaded)
        added = self._check_pending(plugins)
        healed = self._heal_ignored(plugins)
        if added or healed or self.pending or self.pending_uninstalls:
            self.pending = []
            # the host has reloaded, so uninstalled plugins are gone from its inventory
            self.pending_uninstalls = []
            self.save()
        return added

    def _check_pending(self, plugins: list[LocalPlugin]) -> list[str]:
        if not self.pending:
            return []
        logger.info("verifying %d pending install(s)", len(self.pending))
        added = []
        for entry in self.pending:
            parsed = _split(entry)
            if parsed is None:
                continue
            plugin_id, expected = parsed
            plugin = self._locate(plugin_id, plugins)
            if plugin is None:
                logger.warning("plugin %s missing after update", plugin_id)
                continue
            if not versions_equal(plugin.version, expected):
                logger.warning(
                    "update failed for %s: expected %s, found %s; ignoring %s",
                    plugin.name,
                    expected,
                    plugin.version,
                    expected,
                )
                ignored = _entry(plugin_id, expected)
                if ignored not in self.ignored:
                    self.ignored.append(ignored)
                    added.append(ignored)
        return added

    def _heal_ignored(self, plugins: list[LocalPlugin]) -> list[str]:
        healed = []
        for entry in self.ignored:
            parsed = _split(entry)
            if parsed is None:
                continue
            plugin = self._locate(parsed[0], plugins)
            if plugin is not None and versions_equal(plugin.version, parsed[1]):
                logger.info("previously ignored update %s is now installed", entry)
                healed.append(entry)
        if healed:
            self.ignored = [e for e in self.ignored if e not in healed]
        return healed
