"""File primitives shared by install and uninstall.

Nothing here overwrites or deletes a file in place: existing files are renamed
aside first (same-volume renames are atomic and work while the host still holds
the file open), then removal is attempted on a best-effort basis. Whatever
could not be removed is swept on the next startup.
"""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Iterable
from pathlib import Path

from modcrate.core.utils import timestamp_suffix

logger = logging.getLogger(__name__)

IGNORED_FILES = frozenset(
    {"manifest.json", "icon.png", "readme.md", "changelog.md", "manifest.yml"}
)

BACKUP_MARKER = ".old_"
LOOSE_BACKUP_MARKER = ".old_loose_"
DELETED_MARKER = ".deleted_"

_LEFTOVER = re.compile(r"\.(?:old|old_\d+|old_loose_\d+|deleted_\d+)$")


def is_ignored(name: str) -> bool:
    return name.lower() in IGNORED_FILES


def is_leftover(name: str) -> bool:
    return bool(_LEFTOVER.search(name))


def rename_aside(path: Path, marker: str = BACKUP_MARKER) -> Path | None:
    """Move *path* to ``<path><marker><ns>``. Returns the new path, or None."""
    target = path.with_name(f"{path.name}{marker}{timestamp_suffix()}")
    try:
        path.rename(target)
    except OSError as e:
        logger.error("could not move %s aside: %s", path, e)
        return None
    logger.debug("moved %s -> %s", path.name, target.name)
    return target


def safe_delete(path: Path) -> bool:
    """Remove a file, renaming it aside first. True once *path* is gone.

    A locked file that can be renamed but not unlinked still counts as
    removed: its renamed copy is deleted by the next startup sweep.
    """
    if not path.exists():
        return True
    staged = rename_aside(path, DELETED_MARKER)
    if staged is None:
        try:
            path.unlink()
        except OSError as e:
            logger.error("could not delete %s: %s", path, e)
            return False
        return True
    try:
        staged.unlink()
    except OSError as e:
        logger.info("%s is in use; it will be removed on next startup (%s)", path.name, e)
    return True


def remove_quietly(path: Path) -> None:
    """Cleanup that never raises; for scratch directories and payloads."""
    try:
        if path.is_dir():
            shutil.rmtree(path, ignore_errors=True)
        elif path.exists():
            path.unlink()
    except OSError as e:
        logger.debug("cleanup of %s failed: %s", path, e)


def sweep_leftovers(roots: Iterable[Path]) -> list[Path]:
    """Delete backup and staged-deletion artefacts below each root."""
    removed = []
    for root in roots:
        if not root.is_dir():
            continue
        for path in root.rglob("*"):
            if not path.is_file() or not is_leftover(path.name):
                continue
            try:
                path.unlink()
            except OSError as e:
                logger.debug("leftover %s still locked: %s", path, e)
                continue
            removed.append(path)
    if removed:
        logger.info("removed %d leftover file(s)", len(removed))
    return removed
