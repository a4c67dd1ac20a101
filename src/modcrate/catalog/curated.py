"""Curated-repository pass: synthesize packages from source-host repos.

Reads an operator-maintained list of ``{repo, description}`` entries and, for
each repo, derives packages from its newest usable release (one per ZIP/DLL
asset, or zip links in the release body). Repos without a usable release fall
back to the top-level ZIP/DLL blobs of the default branch's HEAD tree.

A rate limit anywhere aborts the whole pass.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass
from typing import Any

from .models import Package, PackageVersion
from .network import FetchError, NetworkClient, RateLimitError

logger = logging.getLogger(__name__)

CATEGORY = "GitHub"
DEFAULT_VERSION = "1.0.0"
NO_DESCRIPTION = "No description provided."

_PAYLOAD_SUFFIXES = (".zip", ".dll")
_EXCLUDED_PREFIXES = ("source code", "src")
_VERSION_SUFFIX = re.compile(r"[-_ ]v?\d+(?:\.\d+)*$", re.IGNORECASE)
_BODY_ZIP_LINK = re.compile(r"https?://\S+?\.zip", re.IGNORECASE)


@dataclass
class CuratedEntry:
    repo: str  # "owner/name"
    description: str = ""

    @property
    def owner(self) -> str:
        return self.repo.partition("/")[0]


def parse_curated_list(text: str) -> list[CuratedEntry]:
    """Accept a JSON array of entries or a single entry object."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("curated list is not valid JSON: %s", e)
        return []
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        return []
    entries = []
    for item in data:
        if not isinstance(item, dict):
            continue
        repo = str(item.get("repo") or "").strip().strip("/")
        if repo.count("/") != 1:
            continue
        entries.append(CuratedEntry(repo=repo, description=str(item.get("description") or "")))
    return entries


def is_payload_name(filename: str) -> bool:
    lower = filename.lower()
    return lower.endswith(_PAYLOAD_SUFFIXES) and not lower.startswith(_EXCLUDED_PREFIXES)


def package_name_from_file(filename: str) -> str:
    """'CoolMod-v1.2.zip' -> 'CoolMod'."""
    stem = filename
    lower = stem.lower()
    for suffix in _PAYLOAD_SUFFIXES:
        if lower.endswith(suffix):
            stem = stem[: -len(suffix)]
            break
    stripped = _VERSION_SUFFIX.sub("", stem)
    return stripped or stem


def version_from_tag(tag: str | None) -> str:
    tag = (tag or "").strip()
    if tag[:1] in ("v", "V"):
        tag = tag[1:]
    return tag or DEFAULT_VERSION


class CuratedSource:
    """Fetches the curated repo list and resolves every repo concurrently."""

    def __init__(
        self,
        client: NetworkClient,
        list_url: str,
        api_url: str = "https://api.github.com",
        token: str = "",
        max_workers: int = 8,
        retries: int = 3,
    ):
        self.client = client
        self.list_url = list_url
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.max_workers = max_workers
        self.retries = retries

    # ── Public ──────────────────────────────────────────────────────

    def fetch(self, timeout: float | None = None) -> list[Package]:
        """Resolve every curated repo; packages keep completion order.

        Raises RateLimitError when the list or any repo hits a rate limit.
        Any other failure fetching the list yields no packages.
        """
        try:
            text = self.client.get(self.list_url, retries=self.retries)
        except FetchError as e:
            if e.rate_limited:
                raise RateLimitError(str(e), e.status) from e
            logger.warning("curated list unavailable: %s", e)
            return []

        entries = parse_curated_list(text)
        if not entries:
            return []
        logger.info("resolving %d curated repositories", len(entries))

        packages: list[Package] = []
        lock = threading.Lock()
        rate_limited: list[RateLimitError] = []

        def worker(entry: CuratedEntry) -> None:
            try:
                found = self.resolve_repo(entry)
            except RateLimitError as e:
                with lock:
                    rate_limited.append(e)
                return
            if found:
                with lock:
                    packages.extend(found)

        pool = ThreadPoolExecutor(max_workers=max(1, self.max_workers))
        try:
            futures = [pool.submit(worker, entry) for entry in entries]
            for future in as_completed(futures, timeout=timeout):
                future.result()
        except FuturesTimeout:
            # stragglers finish on their own; the client stays usable for the caller
            raise FetchError(f"curated pass timed out after {timeout}s") from None
        finally:
            pool.shutdown(wait=timeout is None, cancel_futures=True)

        if rate_limited:
            logger.warning("curated pass aborted: %s", rate_limited[0])
            raise rate_limited[0]
        logger.info("curated pass: %d packages", len(packages))
        return packages

    def resolve_repo(self, entry: CuratedEntry) -> list[Package]:
        """Packages for one repo. Errors other than rate limits yield []."""
        try:
            upstream = self._fork_parent(entry)
            release = self._latest_release(entry)
            packages: list[Package] = []
            if release is not None:
                packages = self._packages_from_release(entry, release)
            if not packages:
                packages = self._packages_from_tree(entry)
        except RateLimitError:
            raise
        except FetchError as e:
            if e.rate_limited:
                raise RateLimitError(str(e), e.status) from e
            logger.warning("curated repo %s skipped: %s", entry.repo, e)
            return []
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            logger.warning("curated repo %s returned an unexpected payload: %s", entry.repo, e)
            return []

        for pkg in packages:
            pkg.secondary_author = upstream
        logger.debug("curated repo %s: %d packages", entry.repo, len(packages))
        return packages

    # ── Source-host calls ───────────────────────────────────────────

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get_json(self, path: str) -> Any:
        text = self.client.get(f"{self.api_url}{path}", headers=self._headers(), retries=self.retries)
        return json.loads(text)

    def _fork_parent(self, entry: CuratedEntry) -> str:
        data = self._get_json(f"/repos/{entry.repo}")
        if not isinstance(data, dict) or not data.get("fork"):
            return ""
        parent = data.get("parent") or {}
        return str((parent.get("owner") or {}).get("login") or "")

    def _latest_release(self, entry: CuratedEntry) -> dict | None:
        data = self._get_json(f"/repos/{entry.repo}/releases")
        if not isinstance(data, list):
            return None
        for release in data:
            if not isinstance(release, dict) or release.get("draft"):
                continue
            tag = str(release.get("tag_name") or "")
            if tag.lower().startswith("untagged"):
                continue
            return release
        return None

    def _head_sha(self, entry: CuratedEntry) -> str:
        data = self._get_json(f"/repos/{entry.repo}/commits/HEAD")
        return str(data.get("sha") or "") if isinstance(data, dict) else ""

    # ── Package synthesis ───────────────────────────────────────────

    def _make_package(
        self,
        entry: CuratedEntry,
        filename: str,
        version: str,
        url: str,
        description: str,
        date: str = "",
        size: int = 0,
    ) -> Package:
        name = package_name_from_file(filename)
        return Package(
            name=name,
            full_name=f"{entry.owner}-{name}",
            description=description,
            website_url=f"https://github.com/{entry.repo}",
            date_updated=date,
            categories={CATEGORY},
            latest=PackageVersion(version_number=version, download_url=url, file_size=size),
        )

    def _packages_from_release(self, entry: CuratedEntry, release: dict) -> list[Package]:
        version = version_from_tag(release.get("tag_name"))
        body = str(release.get("body") or "")
        description = entry.description or body.strip() or NO_DESCRIPTION
        date = str(release.get("published_at") or release.get("created_at") or "")

        packages = []
        assets = release.get("assets") or []
        for asset in assets:
            if not isinstance(asset, dict):
                continue
            filename = str(asset.get("name") or "")
            url = str(asset.get("browser_download_url") or "")
            if not url or not is_payload_name(filename):
                continue
            try:
                size = int(asset.get("size") or 0)
            except (TypeError, ValueError):
                size = 0
            packages.append(
                self._make_package(entry, filename, version, url, description, date, size)
            )

        if not assets:
            for url in dict.fromkeys(_BODY_ZIP_LINK.findall(body)):
                filename = url.rsplit("/", 1)[-1]
                if is_payload_name(filename):
                    packages.append(
                        self._make_package(entry, filename, version, url, description, date)
                    )
        return packages

    def _packages_from_tree(self, entry: CuratedEntry) -> list[Package]:
        sha = self._head_sha(entry)
        if not sha:
            return []
        tree = self._get_json(f"/repos/{entry.repo}/git/trees/{sha}?recursive=1")
        items = tree.get("tree") if isinstance(tree, dict) else None
        if not isinstance(items, list):
            return []

        description = entry.description or NO_DESCRIPTION
        packages = []
        for item in items:
            if not isinstance(item, dict) or item.get("type") != "blob":
                continue
            path = str(item.get("path") or "")
            # top-level files only
            if not path or "/" in path or not is_payload_name(path):
                continue
            url = f"https://raw.githubusercontent.com/{entry.repo}/{sha}/{path}"
            try:
                size = int(item.get("size") or 0)
            except (TypeError, ValueError):
                size = 0
            packages.append(
                self._make_package(entry, path, DEFAULT_VERSION, url, description, size=size)
            )
        return packages
