"""UninstallPipeline: scope the removal, respect shared directories, stage deletes."""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from modcrate.core.utils import is_within

from .files import safe_delete
from .loop_guard import UpdateLoopGuard
from .manifests import ManifestStore
from .models import LocalPlugin, UninstallResult, UninstallScope

if TYPE_CHECKING:
    from modcrate.core.config import Config

    from .host import Session

logger = logging.getLogger(__name__)

SELF_PLUGIN_ID = "io.modcrate.manager"
HOST_RUNTIME_ID = "BepInEx"
PROTECTED_IDS = frozenset({SELF_PLUGIN_ID.lower(), HOST_RUNTIME_ID.lower()})


class ProtectedOperationError(Exception):
    """Refused: the target is the manager itself, the host runtime, or a shared directory."""


class Uninstaller:
    def __init__(
        self,
        config: Config,
        session: Session,
        manifests: ManifestStore | None = None,
        loop_guard: UpdateLoopGuard | None = None,
    ):
        self.config = config
        self.session = session
        self.manifests = manifests or ManifestStore(config.manifest_dir)
        self.loop_guard = loop_guard

    def is_protected_dir(self, path: Path) -> bool:
        try:
            resolved = path.resolve()
        except OSError:
            return True
        return any(resolved == p.resolve() for p in self.config.protected_dirs)

    def scope_for(self, plugin: LocalPlugin) -> UninstallScope:
        if self._store_manifest(plugin) is not None or self._side_manifest(plugin) is not None:
            return UninstallScope.TRACKED
        if self.session.match_for(plugin.id) is not None:
            return UninstallScope.DISCOVERED
        return UninstallScope.MANUAL

    def uninstall(self, plugin_id: str, delete_config: bool = False) -> UninstallResult:
        """Remove a loaded plugin's files. Never raises."""
        try:
            if plugin_id.lower() in PROTECTED_IDS:
                raise ProtectedOperationError(f"{plugin_id} is protected and cannot be uninstalled")
            plugin = self.session.plugin(plugin_id)
            if plugin is None or plugin.location is None:
                return UninstallResult(success=False, error=f"{plugin_id} is not a loaded plugin")

            scope = self.scope_for(plugin)
            logger.info("uninstalling %s (%s, scope %s)", plugin.name, plugin.id, scope.value)
            if scope is UninstallScope.TRACKED:
                removed, failed = self._remove_tracked(plugin)
            else:
                removed, failed = self._remove_directory(plugin.location)

            if delete_config:
                cfg = self.config.config_path / f"{plugin.id}.cfg"
                if cfg.exists():
                    if safe_delete(cfg):
                        removed.append(cfg)
                    else:
                        failed.append(cfg)
        except ProtectedOperationError as e:
            logger.error("%s", e)
            return UninstallResult(success=False, error=str(e))
        except OSError as e:
            logger.error("uninstall of %s failed: %s", plugin_id, e)
            return UninstallResult(success=False, error=str(e))

        if failed:
            names = ", ".join(p.name for p in failed)
            return UninstallResult(
                success=False, error=f"could not remove: {names}", scope=scope, removed=removed
            )

        self.session.pending_uninstalls.add(plugin.id)
        if self.loop_guard is not None:
            self.loop_guard.register_pending_uninstall(plugin.id)
        self.session.restart_required = True
        logger.info("uninstalled %s (%d file(s)); restart required", plugin.id, len(removed))
        return UninstallResult(success=True, scope=scope, removed=removed)

    # ── Tracked ─────────────────────────────────────────────────────

    def _store_manifest(self, plugin: LocalPlugin):
        match = self.session.match_for(plugin.id)
        if match is not None:
            manifest = self.manifests.load(match.package.full_name)
            if manifest is not None:
                return manifest
        if plugin.location is not None:
            return self.manifests.find_by_file(plugin.location)
        return None

    def _side_manifest(self, plugin: LocalPlugin) -> Path | None:
        if plugin.location is None:
            return None
        path = plugin.location.parent / "manifest.json"
        return path if path.is_file() else None

    def _remove_tracked(self, plugin: LocalPlugin) -> tuple[list[Path], list[Path]]:
        manifest = self._store_manifest(plugin)
        if manifest is not None:
            base = Path(manifest.target_dir)
            files = [base / rel for rel in manifest.files]
            removed, failed = self._delete_files(files)
            self._prune_empty_dirs(files, base)
            if not failed:
                self.manifests.delete(manifest.full_name)
            return removed, failed

        side = self._side_manifest(plugin)
        listed = _side_manifest_files(side) if side is not None else None
        if side is None or listed is None:
            # marker only: the whole folder belongs to this plugin
            return self._remove_directory(plugin.location)
        files = [side.parent / rel for rel in listed] + [side]
        removed, failed = self._delete_files(files)
        self._prune_empty_dirs(files, side.parent)
        return removed, failed

    # ── Untracked ───────────────────────────────────────────────────

    def _remove_directory(self, dll: Path) -> tuple[list[Path], list[Path]]:
        folder = dll.parent
        if not is_within(folder, self.config.game_root):
            raise ProtectedOperationError(f"{folder} is outside the game root")
        if self.is_protected_dir(folder):
            logger.info("%s is a shared directory; removing only %s", folder, dll.name)
            return self._delete_files([dll])

        files = [p for p in folder.rglob("*") if p.is_file()]
        try:
            shutil.rmtree(folder)
        except OSError as e:
            logger.warning("could not remove %s at once (%s); deleting file by file", folder, e)
            removed, failed = self._delete_files(files)
            shutil.rmtree(folder, ignore_errors=True)
            return removed, failed
        return files, []

    # ── Helpers ─────────────────────────────────────────────────────

    def _delete_files(self, files: list[Path]) -> tuple[list[Path], list[Path]]:
        removed, failed = [], []
        for path in files:
            if not is_within(path, self.config.game_root):
                logger.warning("refusing to delete %s outside the game root", path)
                failed.append(path)
                continue
            if not path.exists():
                continue
            if safe_delete(path):
                removed.append(path)
            else:
                failed.append(path)
        return removed, failed

    def _prune_empty_dirs(self, files: list[Path], base: Path) -> None:
        dirs = {f.parent for f in files}
        for folder in sorted(dirs, key=lambda p: len(p.parts), reverse=True):
            current = folder
            while is_within(current, base) and not self.is_protected_dir(current):
                try:
                    current.rmdir()
                except OSError:
                    break
                current = current.parent


def _side_manifest_files(path: Path) -> list[str] | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return None
    files = data.get("files") if isinstance(data, dict) else None
    if not isinstance(files, list):
        return None
    return [str(f) for f in files if f]
