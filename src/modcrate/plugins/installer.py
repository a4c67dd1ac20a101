"""InstallPipeline: payload -> package root -> target directory -> hot-swapped files.

Payloads are either a single DLL or a ZIP archive. Archives are unpacked into
a scratch directory next to the payload; the package root is located, the
layout classified into a host directory, and files copied in with backups of
anything they replace. A manifest records what landed where.
"""

from __future__ import annotations

import logging
import shutil
import zipfile
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from modcrate.core.utils import is_within, sanitize_filename

from .files import LOOSE_BACKUP_MARKER, is_ignored, remove_quietly, rename_aside
from .host import invalidate_metadata_cache
from .manifests import ManifestStore
from .models import InstallManifest, InstallResult, LocalPlugin

if TYPE_CHECKING:
    from modcrate.core.config import Config

logger = logging.getLogger(__name__)

# (package root, root has loose files) -> target directory
TargetStrategy = Callable[[Path, bool], Path]

STRUCTURAL_DIRS = frozenset({"bepinex", "plugins", "patchers", "config"})
PACK_WRAPPER = "BepInExPack"


class InstallError(Exception):
    """The payload cannot be installed as given."""


def _depth_order(path: Path) -> tuple[int, str]:
    return len(path.parts), path.as_posix().lower()


def _subdirs(root: Path) -> dict[str, Path]:
    return {p.name.lower(): p for p in sorted(root.iterdir()) if p.is_dir()}


def extract_archive(archive: Path, dest: Path) -> int:
    """Unpack *archive* into *dest*, skipping entries that would escape it."""
    dest = dest.resolve()
    count = 0
    with zipfile.ZipFile(archive) as zf:
        for member in zf.infolist():
            if member.is_dir():
                continue
            rel = Path(member.filename.replace("\\", "/"))
            if rel.is_absolute() or ".." in rel.parts or not rel.parts:
                logger.warning("skipping unsafe archive entry %r", member.filename)
                continue
            target = (dest / rel).resolve()
            if not is_within(target, dest):
                logger.warning("skipping unsafe archive entry %r", member.filename)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(member) as src, target.open("wb") as dst:
                shutil.copyfileobj(src, dst)
            count += 1
    if count == 0:
        raise InstallError(f"archive is empty: {archive.name}")
    return count


def find_package_root(extract_root: Path) -> Path:
    """Locate the directory whose layout describes the package.

    Preference: the shallowest ``manifest.json`` (unwrapping a nested
    BepInExPack folder), then the first DLL's folder (climbing out of any
    host-structure folder on its path), then the extraction root.
    """
    files = [p for p in extract_root.rglob("*") if p.is_file()]

    manifests = sorted((p for p in files if p.name.lower() == "manifest.json"), key=_depth_order)
    if manifests:
        root = manifests[0].parent
        pack = root / PACK_WRAPPER
        if pack.is_dir():
            logger.info("unwrapping %s folder", PACK_WRAPPER)
            return pack
        return root

    dlls = sorted((p for p in files if p.suffix.lower() == ".dll"), key=_depth_order)
    if dlls:
        parts = dlls[0].parent.relative_to(extract_root).parts
        for i, part in enumerate(parts):
            if part.lower() in STRUCTURAL_DIRS:
                return extract_root.joinpath(*parts[:i])
        return dlls[0].parent

    return extract_root


class InstallPipeline:
    def __init__(self, config: Config, manifests: ManifestStore | None = None):
        self.config = config
        self.manifests = manifests or ManifestStore(config.manifest_dir)

    # ── Target strategies ───────────────────────────────────────────

    def update_strategy(self, plugin: LocalPlugin) -> TargetStrategy:
        """Updates land in the directory of the plugin being replaced."""

        def strategy(root: Path, has_loose: bool) -> Path:
            if plugin.location is not None:
                return plugin.location.parent
            return self.config.plugin_path / sanitize_filename(plugin.name)

        return strategy

    def fresh_strategy(self, name: str) -> TargetStrategy:
        """Fresh installs get a directory named after the package."""

        def strategy(root: Path, has_loose: bool) -> Path:
            return self.config.plugin_path / sanitize_filename(name)

        return strategy

    # ── Pipeline ────────────────────────────────────────────────────

    def install(
        self,
        payload: Path,
        strategy: TargetStrategy,
        manifest: InstallManifest | None = None,
        delete_payload: bool = True,
    ) -> InstallResult:
        """Install *payload*; never raises. Scratch files are always cleaned up."""
        scratch = payload.parent / f"extracted_{sanitize_filename(payload.stem)}"
        label = manifest.full_name if manifest else payload.name
        logger.info("installing %s from %s", label, payload.name)
        try:
            root = self._prepare(payload, scratch)
            source, target = self.resolve_target(root, strategy)
            if not is_within(target, self.config.game_root):
                raise InstallError(f"target directory {target} is outside the game root")
            logger.info("target directory: %s", target)

            files = self.copy_tree(source, target)
            if manifest is not None:
                manifest.files = files
                manifest.target_dir = str(target)
                self.manifests.save(manifest)
            invalidate_metadata_cache(self.config.cache_path)
        except (InstallError, OSError, zipfile.BadZipFile, RuntimeError, NotImplementedError) as e:
            logger.error("install of %s failed: %s", label, e)
            return InstallResult(success=False, error=str(e))
        finally:
            remove_quietly(scratch)
            if delete_payload:
                remove_quietly(payload)

        logger.info("installed %s: %d file(s); restart required", label, len(files))
        return InstallResult(success=True, files=files, target_dir=target)

    def _prepare(self, payload: Path, scratch: Path) -> Path:
        if not payload.is_file():
            raise InstallError(f"payload not found: {payload}")
        remove_quietly(scratch)
        scratch.mkdir(parents=True)
        if payload.suffix.lower() == ".dll":
            shutil.copy2(payload, scratch / payload.name)
            return scratch
        if not zipfile.is_zipfile(payload):
            raise InstallError(f"{payload.name} is neither a zip archive nor a DLL")
        extract_archive(payload, scratch)
        return find_package_root(scratch)

    def resolve_target(self, root: Path, strategy: TargetStrategy) -> tuple[Path, Path]:
        """Classify *root*'s layout. Returns (directory to copy from, target)."""
        dirs = _subdirs(root)
        if "bepinex" in dirs:
            return root, self.config.game_root
        if "plugins" in dirs or "config" in dirs:
            return root, self.config.bepinex_root

        patchers = dirs.pop("patchers", None)
        if patchers is not None:
            logger.info("merging patchers folder into %s", self.config.patcher_path)
            self.copy_tree(patchers, self.config.patcher_path)
            shutil.rmtree(patchers)

        has_loose = any(p.is_file() and not is_ignored(p.name) for p in root.iterdir())
        if not dirs and has_loose:
            logger.info("flat package; installing into the plugin root")
            return root, self.config.plugin_path
        if len(dirs) == 1 and not has_loose:
            inner = next(iter(dirs.values()))
            logger.info("single inner folder %r used as container", inner.name)
            return inner, self.config.plugin_path / inner.name
        return root, strategy(root, has_loose)

    # ── Copy ────────────────────────────────────────────────────────

    def copy_tree(self, source: Path, target: Path, base: Path | None = None) -> list[str]:
        """Copy *source* into *target*; returns paths relative to *base*."""
        base = base or target
        target.mkdir(parents=True, exist_ok=True)
        copied: list[str] = []
        for entry in sorted(source.iterdir()):
            dest = target / entry.name
            if entry.is_dir():
                copied.extend(self.copy_tree(entry, dest, base))
                continue
            if is_ignored(entry.name):
                continue
            if dest.exists() and rename_aside(dest) is None:
                raise InstallError(f"cannot replace {dest}: file is locked")
            if entry.suffix.lower() == ".dll":
                self._archive_loose_duplicates(dest)
            shutil.copy2(entry, dest)
            copied.append(dest.relative_to(base).as_posix())
        return copied

    def _archive_loose_duplicates(self, dest: Path) -> None:
        plugin_root = self.config.plugin_path.resolve()
        target_dir = dest.parent.resolve()
        name = dest.name.lower()
        if target_dir.parent == plugin_root:
            candidates = [plugin_root / dest.name]
        elif target_dir == plugin_root:
            candidates = [
                p for p in plugin_root.rglob("*.dll") if p.name.lower() == name and p.parent != plugin_root
            ]
        else:
            return
        for loose in candidates:
            if loose.is_file() and loose.resolve() != dest.resolve():
                if rename_aside(loose, LOOSE_BACKUP_MARKER) is not None:
                    logger.info("archived duplicate copy of %s at %s", dest.name, loose.parent)
