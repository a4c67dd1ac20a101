"""Catalog: remote package listing, caching, version comparison."""

from .builder import CatalogBuilder, CatalogError, builder_from_config
from .cache import CacheEnvelope, CatalogCache
from .curated import CuratedSource
from .models import Package, PackageVersion
from .network import FetchError, NetworkClient, RateLimitError
from .registry import RegistrySource
from .versions import is_newer, versions_equal

__all__ = [
    "CacheEnvelope",
    "CatalogBuilder",
    "CatalogCache",
    "CatalogError",
    "CuratedSource",
    "FetchError",
    "NetworkClient",
    "Package",
    "PackageVersion",
    "RateLimitError",
    "RegistrySource",
    "builder_from_config",
    "is_newer",
    "versions_equal",
]
