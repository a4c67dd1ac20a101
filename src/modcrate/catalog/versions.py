"""Permissive dotted-version comparison."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def clean_version(version: str | None) -> str:
    """Drop a leading 'v'/'V' and anything after the first '-' (build metadata)."""
    if not version:
        return "0.0.0"
    version = version.strip()
    if version[:1] in ("v", "V"):
        version = version[1:]
    dash = version.find("-")
    if dash > 0:
        version = version[:dash]
    return version


def _segments(version: str) -> list[int]:
    parts = []
    for piece in version.split("."):
        try:
            parts.append(int(piece))
        except ValueError:
            parts.append(0)
    return parts


def is_newer(current: str | None, latest: str | None) -> bool:
    """True if *latest* is strictly greater than *current*.

    Handles "1.2.3", "v1.2", "1.4.2-patch1" and free-text tags: non-numeric
    segments count as 0, the shorter side is zero-padded. Never raises; on
    unexpected input it falls back to ordinal string comparison.
    """
    try:
        c = _segments(clean_version(current))
        lt = _segments(clean_version(latest))
        width = max(len(c), len(lt))
        c += [0] * (width - len(c))
        lt += [0] * (width - len(lt))
        for cv, lv in zip(c, lt):
            if lv > cv:
                return True
            if lv < cv:
                return False
        return False
    except Exception as e:  # noqa: BLE001 - comparison must never propagate
        logger.error("version comparison failed for %r vs %r: %s", current, latest, e)
        return str(latest or "") > str(current or "")


def versions_equal(a: str | None, b: str | None) -> bool:
    """Equality under the same normalization as :func:`is_newer`."""
    return not is_newer(a, b) and not is_newer(b, a)
