"""Plugin-side data models: LocalPlugin, MatchReport, InstallManifest, results."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from modcrate.catalog.models import Package


@dataclass(frozen=True)
class LocalPlugin:
    """A plugin the host has loaded. Read-only; owned by the host."""

    id: str
    name: str
    version: str = ""
    location: Path | None = None  # the plugin's DLL

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LocalPlugin | None:
        if not isinstance(data, dict) or not data.get("id"):
            return None
        location = data.get("location")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            version=str(data.get("version") or ""),
            location=Path(location) if location else None,
        )


@dataclass
class MatchReport:
    """Signed point contributions behind one candidate's score."""

    items: list[tuple[int, str]] = field(default_factory=list)

    def add(self, points: int, reason: str) -> None:
        self.items.append((points, reason))

    @property
    def total(self) -> int:
        return sum(points for points, _ in self.items)

    def lines(self) -> list[str]:
        return [f"{points:+d}: {reason}" for points, reason in self.items]

    def __str__(self) -> str:
        return "\n".join([f"Total Score: {self.total}", *self.lines()])


@dataclass
class MatchResult:
    plugin: LocalPlugin
    package: Package
    report: MatchReport
    pinned: bool = False  # chosen through a manual mapping override


@dataclass
class InstallManifest:
    """Provenance record for one installed package, keyed by its fullName."""

    name: str
    full_name: str
    version_number: str = ""
    description: str = ""
    website_url: str = ""
    files: list[str] = field(default_factory=list)  # relative to target_dir, posix style
    target_dir: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "fullName": self.full_name,
            "description": self.description,
            "websiteUrl": self.website_url,
            "latestVersion": {"versionNumber": self.version_number},
            "files": list(self.files),
            "targetDir": self.target_dir,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InstallManifest | None:
        if not isinstance(data, dict):
            return None
        full_name = str(data.get("fullName") or "")
        if not full_name:
            return None
        latest = data.get("latestVersion")
        files = data.get("files")
        return cls(
            name=str(data.get("name") or full_name),
            full_name=full_name,
            version_number=str(latest.get("versionNumber") or "") if isinstance(latest, dict) else "",
            description=str(data.get("description") or ""),
            website_url=str(data.get("websiteUrl") or ""),
            files=[str(f) for f in files if f] if isinstance(files, list) else [],
            target_dir=str(data.get("targetDir") or ""),
        )

    @classmethod
    def for_package(cls, package: Package) -> InstallManifest:
        return cls(
            name=package.name,
            full_name=package.full_name,
            version_number=package.latest.version_number,
            description=package.description,
            website_url=package.website_url,
        )


@dataclass
class InstallResult:
    success: bool
    error: str = ""
    files: list[str] = field(default_factory=list)
    target_dir: Path | None = None


class UninstallScope(str, enum.Enum):
    TRACKED = "tracked"  # a manifest lists the files
    DISCOVERED = "discovered"  # matched to a package, no manifest
    MANUAL = "manual"  # never matched


@dataclass
class UninstallResult:
    success: bool
    error: str = ""
    scope: UninstallScope | None = None
    removed: list[Path] = field(default_factory=list)
