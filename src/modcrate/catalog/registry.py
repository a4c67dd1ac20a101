"""Registry pass: bulk package listing from the structured registry API."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any

from .models import Package, PackageVersion, split_dependency
from .network import FetchError, NetworkClient, RateLimitError

logger = logging.getLogger(__name__)

_decoder = json.JSONDecoder()
_WHITESPACE = " \t\r\n"


def iter_array_items(text: str) -> Iterator[Any]:
    """Yield top-level array elements one at a time.

    Each element is decoded on its own, so a large listing is never held as a
    single parsed tree. Scanning stops quietly at the first malformed element;
    everything before it is kept.
    """
    pos = text.find("[")
    if pos < 0:
        return
    pos += 1
    end = len(text)
    while pos < end:
        while pos < end and text[pos] in _WHITESPACE + ",":
            pos += 1
        if pos >= end or text[pos] == "]":
            return
        try:
            item, pos = _decoder.raw_decode(text, pos)
        except json.JSONDecodeError as e:
            logger.warning("registry listing truncated at offset %d: %s", e.pos, e.msg)
            return
        yield item


def package_from_listing(item: Any) -> Package | None:
    """Build a Package from one listing entry using its first (latest) version."""
    if not isinstance(item, dict):
        return None
    name = item.get("name")
    versions = item.get("versions")
    if not isinstance(name, str) or not name or not isinstance(versions, list) or not versions:
        return None
    latest = versions[0]
    if not isinstance(latest, dict):
        return None
    version_number = latest.get("version_number")
    if not isinstance(version_number, str) or not version_number:
        return None

    owner = str(item.get("owner") or "")
    full_name = str(item.get("full_name") or "") or f"{owner}-{name}"
    deps = latest.get("dependencies") or []
    try:
        size = int(latest.get("file_size") or 0)
    except (TypeError, ValueError):
        size = 0
    cats = item.get("categories") or []

    return Package(
        name=name,
        full_name=full_name,
        description=str(latest.get("description") or ""),
        website_url=str(latest.get("website_url") or ""),
        date_updated=str(item.get("date_updated") or item.get("date_created") or ""),
        categories={str(c) for c in cats} if isinstance(cats, list) else set(),
        latest=PackageVersion(
            version_number=version_number,
            download_url=str(latest.get("download_url") or ""),
            file_size=size,
            dependencies=[split_dependency(str(d)) for d in deps if d]
            if isinstance(deps, list)
            else [],
        ),
    )


def parse_listing(text: str) -> list[Package]:
    packages = []
    for item in iter_array_items(text):
        pkg = package_from_listing(item)
        if pkg is not None:
            packages.append(pkg)
    packages.sort(key=lambda p: p.name.lower())
    return packages


class RegistrySource:
    """Bulk listing + per-package fresh-version lookups."""

    def __init__(
        self,
        client: NetworkClient,
        url: str,
        experimental_url: str = "",
        retries: int = 3,
    ):
        self.client = client
        self.url = url
        self.experimental_url = experimental_url
        self.retries = retries

    def fetch(self) -> list[Package]:
        """Fetch the whole listing, sorted case-insensitively by name.

        Network failures propagate (rate limits as RateLimitError); a payload
        that cannot be scanned yields an empty list.
        """
        logger.info("fetching registry listing from %s", self.url)
        try:
            text = self.client.get(self.url, retries=self.retries)
        except FetchError as e:
            if e.rate_limited:
                raise RateLimitError(str(e), e.status) from e
            raise
        packages = parse_listing(text)
        logger.info("registry listing: %d packages", len(packages))
        return packages

    def fetch_fresh_version(self, package: Package) -> bool:
        """Patch ``package.latest`` with the live version; True if it changed."""
        owner, name = package.namespace, package.short_name
        if not self.experimental_url or not owner or not name:
            return False
        url = f"{self.experimental_url.rstrip('/')}/{owner}/{name}/"
        try:
            data = json.loads(self.client.get(url))
        except FetchError as e:
            logger.debug("fresh version lookup failed for %s: %s", package.full_name, e)
            return False
        except json.JSONDecodeError as e:
            logger.debug("fresh version payload malformed for %s: %s", package.full_name, e)
            return False
        latest = data.get("latest") if isinstance(data, dict) else None
        if not isinstance(latest, dict):
            return False
        version = latest.get("version_number")
        if not isinstance(version, str) or not version:
            return False
        changed = version != package.latest.version_number
        package.latest.version_number = version
        if isinstance(latest.get("download_url"), str) and latest["download_url"]:
            package.latest.download_url = latest["download_url"]
        return changed
