"""CatalogCache: durable envelope of the merged catalog with age-based expiry."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from .models import Package

logger = logging.getLogger(__name__)


@dataclass
class CacheEnvelope:
    timestamp: int  # epoch seconds
    packages: list[Package] = field(default_factory=list)

    def age(self, now: float | None = None) -> float:
        return (time.time() if now is None else now) - self.timestamp

    def is_fresh(self, duration: float, now: float | None = None) -> bool:
        return bool(self.packages) and self.age(now) < duration


class CatalogCache:
    """One JSON file on disk; single writer by construction."""

    def __init__(self, path: Path, clock: Callable[[], float] = time.time):
        self.path = path
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def load(self) -> CacheEnvelope | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("catalog cache unreadable, ignoring: %s", e)
            return None
        if not isinstance(data, dict):
            return None
        try:
            timestamp = int(data.get("timestamp") or 0)
        except (TypeError, ValueError):
            return None
        raw = data.get("packages")
        packages = []
        if isinstance(raw, list):
            for item in raw:
                pkg = Package.from_dict(item)
                if pkg is not None:
                    packages.append(pkg)
        return CacheEnvelope(timestamp=timestamp, packages=packages)

    def save(self, packages: list[Package]) -> CacheEnvelope:
        envelope = CacheEnvelope(timestamp=int(self.now()), packages=list(packages))
        payload = {
            "timestamp": envelope.timestamp,
            "packages": [p.to_dict() for p in envelope.packages],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        tmp.replace(self.path)
        logger.debug("catalog cache saved: %d packages", len(envelope.packages))
        return envelope
