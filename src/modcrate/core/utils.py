"""Path helpers, filename sanitizing, human-readable sizes, timestamps."""

from __future__ import annotations

import re
import time
from pathlib import Path

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def is_within(path: Path, parent: Path) -> bool:
    """True if *path* is *parent* or lives somewhere below it."""
    try:
        p = path.resolve()
        base = parent.resolve()
    except OSError:
        return False
    return p == base or base in p.parents


def sanitize_filename(name: str) -> str:
    """Turn an arbitrary identity (e.g. 'Author-Mod Name') into a safe file stem."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", name.strip()).strip("._")
    return cleaned or "unnamed"


def human_size(size: int) -> str:
    """Format bytes to human readable."""
    for unit in ("B", "KB", "MB", "GB"):
        if abs(size) < 1024:
            return f"{size:.1f}{unit}" if unit != "B" else f"{size}{unit}"
        size /= 1024  # type: ignore
    return f"{size:.1f}TB"


def timestamp_suffix() -> str:
    """Monotonic-enough unique suffix for backup names."""
    return str(time.time_ns())


def short_path(p: Path, root: Path) -> str:
    """Return *p* relative to *root* when possible, else the full path."""
    try:
        return p.relative_to(root).as_posix()
    except ValueError:
        return str(p)
