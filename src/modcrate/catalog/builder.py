"""RemoteCatalogBuilder: merge both sources, honoring the cache policy."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .cache import CatalogCache
from .curated import CuratedSource
from .models import Package
from .network import NetworkClient, RateLimitError
from .registry import RegistrySource

if TYPE_CHECKING:
    from modcrate.core.config import Config

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Neither a live build nor a usable cached catalog is available."""


class CatalogBuilder:
    def __init__(
        self,
        registry: RegistrySource,
        curated: CuratedSource | None,
        cache: CatalogCache | None = None,
        cache_duration: float = 3600,
        curated_timeout: float | None = None,
    ):
        self.registry = registry
        self.curated = curated
        self.cache = cache
        self.cache_duration = cache_duration
        self.curated_timeout = curated_timeout

    def build_live(self) -> list[Package]:
        """Run both passes and concatenate: registry first, then curated."""
        packages = list(self.registry.fetch())
        if self.curated is not None:
            packages.extend(self.curated.fetch(timeout=self.curated_timeout))
        return packages

    def build(self, force_refresh: bool = False) -> list[Package]:
        """Return the catalog, reusing a fresh cache unless *force_refresh*.

        A rate-limited live build falls back to the last non-empty envelope,
        however old. Any other failure, or a rate limit with nothing cached,
        raises CatalogError.
        """
        envelope = self.cache.load() if self.cache is not None else None
        now = self.cache.now() if self.cache is not None else None

        if not force_refresh and envelope is not None and envelope.is_fresh(self.cache_duration, now):
            logger.info(
                "using cached catalog (%d packages, %ds old)",
                len(envelope.packages),
                int(envelope.age(now)),
            )
            return envelope.packages

        try:
            packages = self.build_live()
        except RateLimitError as e:
            if envelope is not None and envelope.packages:
                logger.warning(
                    "rate limited (%s); falling back to cached catalog from %ds ago",
                    e,
                    int(envelope.age(now)),
                )
                return envelope.packages
            raise CatalogError(f"rate limited and no cached catalog available: {e}") from e
        except Exception as e:
            raise CatalogError(f"catalog build failed: {e}") from e

        if self.cache is not None:
            self.cache.save(packages)
        logger.info("catalog built: %d packages", len(packages))
        return packages


def builder_from_config(config: Config, client: NetworkClient) -> CatalogBuilder:
    registry = RegistrySource(
        client,
        config.registry_url,
        config.registry_experimental_url,
        retries=config.max_retries,
    )
    curated = None
    if config.curated_list_url:
        curated = CuratedSource(
            client,
            config.curated_list_url,
            api_url=config.github_api_url,
            token=config.read_github_token(),
            max_workers=config.max_workers,
            retries=config.max_retries,
        )
    return CatalogBuilder(
        registry,
        curated,
        cache=CatalogCache(config.catalog_cache_file),
        cache_duration=config.cache_duration,
        curated_timeout=config.curated_timeout,
    )
