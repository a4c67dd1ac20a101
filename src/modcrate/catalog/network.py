"""NetworkClient: GET with default headers, timeout, retry-with-backoff, 4xx short-circuit."""

from __future__ import annotations

import http.client
import logging
import threading
import urllib.error
import urllib.request
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

USER_AGENT = "modcrate/1.0"

TRUSTED_HOSTS = frozenset(
    {
        "thunderstore.io",
        "github.com",
        "raw.githubusercontent.com",
        "objects.githubusercontent.com",
        "github-releases.githubusercontent.com",
    }
)


class FetchError(Exception):
    """A GET that did not produce a body. ``status`` is None for transport errors."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status

    @property
    def rate_limited(self) -> bool:
        return self.status in (403, 429)

    @property
    def client_error(self) -> bool:
        return self.status is not None and 400 <= self.status < 500 and self.status != 429


class RateLimitError(FetchError):
    """A remote source refused service because of rate limiting."""


def is_trusted_url(url: str) -> bool:
    """Only http(s) URLs on the registry / source-host domains are downloaded."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https"):
        return False
    host = (parsed.hostname or "").lower()
    if host in TRUSTED_HOSTS:
        return True
    return host.endswith((".github.com", ".githubusercontent.com", ".thunderstore.io"))


class NetworkClient:
    """Blocking HTTP GET used by every remote call in the package.

    Transport failures, 5xx and 429 are retried up to ``retries`` times with a
    fixed backoff; other 4xx fail immediately. ``close()`` abandons pending
    backoff waits so in-flight work stops at the next retry boundary.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        retry_backoff: float = 1.0,
        user_agent: str = USER_AGENT,
    ):
        self.timeout = timeout
        self.retry_backoff = retry_backoff
        self.user_agent = user_agent
        self._closed = threading.Event()

    def close(self) -> None:
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def get(self, url: str, headers: dict[str, str] | None = None, retries: int = 0) -> str:
        """GET *url* and return the body decoded as UTF-8."""
        return self.get_bytes(url, headers, retries).decode("utf-8", errors="replace")

    def get_bytes(self, url: str, headers: dict[str, str] | None = None, retries: int = 0) -> bytes:
        merged = dict(headers or {})
        if not any(k.lower() == "user-agent" for k in merged):
            merged["User-Agent"] = self.user_agent

        last_error: FetchError | None = None
        for attempt in range(retries + 1):
            if self.closed:
                raise FetchError(f"client closed before fetching {url}")
            try:
                return self._open(url, merged)
            except FetchError as e:
                if e.client_error:
                    raise
                last_error = e
            if attempt < retries:
                logger.debug(
                    "GET %s failed (attempt %d/%d): %s", url, attempt + 1, retries + 1, last_error
                )
                # wait() returns True once close() is called
                if self._closed.wait(self.retry_backoff):
                    raise FetchError(f"client closed while retrying {url}")
        raise last_error or FetchError(f"no attempt made for {url}")

    def download(
        self,
        url: str,
        dest: Path,
        headers: dict[str, str] | None = None,
        retries: int = 0,
    ) -> Path:
        """Fetch *url* into *dest*, replacing any previous file."""
        if not is_trusted_url(url):
            raise FetchError(f"refusing to download from untrusted host: {url}")
        data = self.get_bytes(url, headers, retries)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            if dest.exists():
                dest.unlink()
            dest.write_bytes(data)
        except OSError as e:
            raise FetchError(f"could not write {dest.name}: {e}") from e
        logger.info("downloaded %s (%d bytes)", dest.name, len(data))
        return dest

    def _open(self, url: str, headers: dict[str, str]) -> bytes:
        req = urllib.request.Request(url, headers=headers)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as e:
            raise FetchError(f"{e.code}: {e.reason}", status=e.code) from e
        except urllib.error.URLError as e:
            raise FetchError(f"network error: {e.reason}") from e
        except (OSError, http.client.HTTPException) as e:
            raise FetchError(f"network error: {e}") from e
