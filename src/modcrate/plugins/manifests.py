"""Install manifest store: one JSON file per package fullName."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

from modcrate.core.utils import sanitize_filename

from .models import InstallManifest

logger = logging.getLogger(__name__)


class ManifestStore:
    def __init__(self, directory: Path):
        self.directory = directory

    def path_for(self, full_name: str) -> Path:
        return self.directory / f"{sanitize_filename(full_name)}.json"

    def exists(self, full_name: str) -> bool:
        return self.path_for(full_name).is_file()

    def load(self, full_name: str) -> InstallManifest | None:
        return self._read(self.path_for(full_name))

    def save(self, manifest: InstallManifest) -> Path:
        """Write *manifest*, merging file lists with a previous install.

        Files from an earlier install into the same target directory are kept
        so an uninstall still removes files the new version no longer ships.
        """
        path = self.path_for(manifest.full_name)
        previous = self._read(path)
        if previous is not None and previous.target_dir == manifest.target_dir:
            manifest.files = list(dict.fromkeys([*previous.files, *manifest.files]))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(manifest.to_dict(), indent=2) + "\n", encoding="utf-8")
        logger.debug("manifest saved for %s (%d files)", manifest.full_name, len(manifest.files))
        return path

    def delete(self, full_name: str) -> None:
        path = self.path_for(full_name)
        if path.exists():
            path.unlink()

    def __iter__(self) -> Iterator[InstallManifest]:
        if not self.directory.is_dir():
            return
        for path in sorted(self.directory.glob("*.json")):
            manifest = self._read(path)
            if manifest is not None:
                yield manifest

    def find_by_file(self, file_path: Path) -> InstallManifest | None:
        """The manifest that tracks *file_path*, if any."""
        target = file_path.resolve()
        for manifest in self:
            base = Path(manifest.target_dir)
            for rel in manifest.files:
                if (base / rel).resolve() == target:
                    return manifest
        return None

    def _read(self, path: Path) -> InstallManifest | None:
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("ignoring unreadable manifest %s: %s", path, e)
            return None
        return InstallManifest.from_dict(data)
