"""Catalog data models: Package, PackageVersion."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class PackageVersion:
    """The release of a package that the catalog considers 'latest'."""

    version_number: str
    download_url: str = ""
    file_size: int = 0
    dependencies: list[str] = field(default_factory=list)  # fullNames, in declared order

    def to_dict(self) -> dict[str, Any]:
        return {
            "versionNumber": self.version_number,
            "downloadUrl": self.download_url,
            "fileSize": self.file_size,
            "dependencies": list(self.dependencies),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PackageVersion:
        try:
            size = int(data.get("fileSize") or 0)
        except (TypeError, ValueError):
            size = 0
        deps = data.get("dependencies") or []
        return cls(
            version_number=str(data.get("versionNumber") or ""),
            download_url=str(data.get("downloadUrl") or ""),
            file_size=size,
            dependencies=[str(d) for d in deps if d] if isinstance(deps, list) else [],
        )


@dataclass
class Package:
    """A remote catalog entry. Identity is ``full_name`` ("Author-Name")."""

    name: str
    full_name: str
    latest: PackageVersion
    description: str = ""
    website_url: str = ""
    date_updated: str = ""
    categories: set[str] = field(default_factory=set)
    secondary_author: str = ""  # upstream owner when sourced from a fork

    @property
    def namespace(self) -> str:
        ns, sep, _ = self.full_name.partition("-")
        return ns if sep else ""

    @property
    def short_name(self) -> str:
        _, sep, rest = self.full_name.partition("-")
        return rest if sep and rest else self.name

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "fullName": self.full_name,
            "description": self.description,
            "websiteUrl": self.website_url,
            "dateUpdated": self.date_updated,
            "categories": sorted(self.categories),
            "latest": self.latest.to_dict(),
        }
        if self.secondary_author:
            data["secondaryAuthor"] = self.secondary_author
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Package | None:
        """Rebuild a package from its persisted form; None when unusable."""
        if not isinstance(data, dict):
            return None
        name = str(data.get("name") or "")
        full_name = str(data.get("fullName") or "")
        latest = data.get("latest")
        if not name or not full_name or not isinstance(latest, dict):
            return None
        cats = data.get("categories") or []
        return cls(
            name=name,
            full_name=full_name,
            latest=PackageVersion.from_dict(latest),
            description=str(data.get("description") or ""),
            website_url=str(data.get("websiteUrl") or ""),
            date_updated=str(data.get("dateUpdated") or ""),
            categories={str(c) for c in cats} if isinstance(cats, list) else set(),
            secondary_author=str(data.get("secondaryAuthor") or ""),
        )


def split_dependency(dependency: str) -> str:
    """Reduce a dependency string 'Namespace-Name-1.2.3' to its fullName."""
    head, sep, tail = dependency.rpartition("-")
    if sep and head and tail and tail[:1].isdigit() and all(p.isdigit() for p in tail.split(".")):
        return head
    return dependency
