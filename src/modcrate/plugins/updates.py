"""Update orchestration: startup pass, update check, apply, install with dependencies."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from modcrate.catalog.curated import CATEGORY as CURATED_CATEGORY
from modcrate.catalog.models import Package, split_dependency
from modcrate.catalog.network import FetchError
from modcrate.catalog.versions import is_newer
from modcrate.core.utils import sanitize_filename

from .files import sweep_leftovers
from .host import inventory_path
from .installer import InstallPipeline
from .loop_guard import UpdateLoopGuard
from .manifests import ManifestStore
from .matcher import match_all
from .models import InstallManifest, InstallResult, LocalPlugin

if TYPE_CHECKING:
    from modcrate.catalog.builder import CatalogBuilder
    from modcrate.catalog.network import NetworkClient

    from .host import Session

logger = logging.getLogger(__name__)


@dataclass
class UpdateCandidate:
    plugin: LocalPlugin
    package: Package

    @property
    def current_version(self) -> str:
        return self.plugin.version

    @property
    def target_version(self) -> str:
        return self.package.latest.version_number

    @property
    def download_url(self) -> str:
        return self.package.latest.download_url


@dataclass
class UpdateCheck:
    auto: list[UpdateCandidate] = field(default_factory=list)
    manual: list[UpdateCandidate] = field(default_factory=list)
    skipped: list[UpdateCandidate] = field(default_factory=list)


@dataclass
class StartupReport:
    newly_ignored: list[str] = field(default_factory=list)
    removed_leftovers: list[Path] = field(default_factory=list)
    verification_deferred: bool = False


class UpdateService:
    """Ties catalog, matcher, pipelines and loop guard together for one session."""

    def __init__(
        self,
        session: Session,
        client: NetworkClient,
        builder: CatalogBuilder,
        loop_guard: UpdateLoopGuard | None = None,
        installer: InstallPipeline | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session
        self.config = session.config
        self.client = client
        self.builder = builder
        self.manifests = ManifestStore(self.config.manifest_dir)
        self.loop_guard = loop_guard or UpdateLoopGuard(self.config.loop_guard_file)
        self.installer = installer or InstallPipeline(self.config, self.manifests)
        self._sleep = sleep

    # ── Startup ─────────────────────────────────────────────────────

    def _host_reloaded(self) -> bool:
        """True if the host wrote its plugin inventory after the last pending install."""
        inventory = inventory_path(self.config)
        guard = self.loop_guard.path
        if not inventory.exists() or not guard.exists():
            return True
        return inventory.stat().st_mtime >= guard.stat().st_mtime

    def startup(self) -> StartupReport:
        report = StartupReport()
        waiting = self.loop_guard.pending or self.loop_guard.pending_uninstalls
        if waiting and not self._host_reloaded():
            logger.info("host has not reloaded plugins since the last change; verification deferred")
            report.verification_deferred = True
        else:
            report.newly_ignored = self.loop_guard.verify(self.session.plugins)
        report.removed_leftovers = sweep_leftovers(
            [self.config.plugin_path, self.config.patcher_path]
        )
        return report

    # ── Catalog + matching ──────────────────────────────────────────

    def is_pending_uninstall(self, plugin_id: str) -> bool:
        """Removed this session or a previous one the host has not reloaded since."""
        if plugin_id in self.session.pending_uninstalls:
            return True
        return self.loop_guard.is_pending_uninstall(plugin_id) and not self._host_reloaded()

    def refresh_catalog(self, force: bool = False) -> list[Package]:
        self.session.packages = self.builder.build(force_refresh=force)
        return self.session.packages

    def match(self) -> None:
        self.session.matches = match_all(
            self.session.plugins, self.session.packages, self.config.mod_map
        )
        for plugin in self.session.plugins:
            if plugin.id not in self.session.matches:
                logger.debug("no package found for %s (%s)", plugin.name, plugin.id)

    def refresh_fresh_versions(self) -> int:
        """Patch matched registry packages with their live version, concurrently."""
        unique: dict[str, Package] = {}
        for result in self.session.matches.values():
            pkg = result.package
            if CURATED_CATEGORY not in pkg.categories:
                unique.setdefault(pkg.full_name, pkg)
        if not unique:
            return 0
        with ThreadPoolExecutor(max_workers=max(1, self.config.max_workers)) as pool:
            changed = list(pool.map(self.builder.registry.fetch_fresh_version, unique.values()))
        return sum(changed)

    def check_for_updates(self, force_refresh: bool = False, wait: bool = True) -> UpdateCheck:
        if wait and self.config.startup_delay > 0:
            self._sleep(self.config.startup_delay)

        logger.info("starting update check")
        packages = self.refresh_catalog(force_refresh)
        logger.info(
            "scanning %d plugins against %d packages", len(self.session.plugins), len(packages)
        )
        self.match()
        self.refresh_fresh_versions()

        check = UpdateCheck()
        for plugin in self.session.plugins:
            result = self.session.matches.get(plugin.id)
            if result is None:
                continue
            if self.is_pending_uninstall(plugin.id):
                logger.debug("%s was uninstalled; not offering updates", plugin.id)
                continue
            candidate = UpdateCandidate(plugin=plugin, package=result.package)
            if not is_newer(plugin.version, candidate.target_version):
                continue
            if self.config.is_mod_ignored(plugin.id) or self.loop_guard.is_version_ignored(
                plugin.id, candidate.target_version
            ):
                logger.info("skipping update for ignored mod %s", plugin.name)
                check.skipped.append(candidate)
            elif self.config.is_auto_update(plugin.id):
                check.auto.append(candidate)
            else:
                check.manual.append(candidate)

        logger.info(
            "update check complete: %d manual, %d auto", len(check.manual), len(check.auto)
        )
        return check

    # ── Apply ───────────────────────────────────────────────────────

    def download(self, package: Package) -> Path:
        url = package.latest.download_url
        if not url:
            raise FetchError(f"{package.full_name} has no download URL")
        ext = ".dll" if url.lower().split("?", 1)[0].endswith(".dll") else ".zip"
        stem = sanitize_filename(f"{package.name}_{package.latest.version_number}")
        return self.client.download(
            url, self.config.cache_path / f"{stem}{ext}", retries=self.config.max_retries
        )

    def apply_updates(self, candidates: list[UpdateCandidate]) -> list[tuple[UpdateCandidate, InstallResult]]:
        """Install each candidate in turn; one failure never stops the rest."""
        results = []
        for candidate in candidates:
            name = candidate.plugin.name
            try:
                payload = self.download(candidate.package)
            except (FetchError, OSError) as e:
                logger.warning("download failed for %s: %s", name, e)
                results.append((candidate, InstallResult(success=False, error=str(e))))
                continue

            result = self.installer.install(
                payload,
                self.installer.update_strategy(candidate.plugin),
                manifest=InstallManifest.for_package(candidate.package),
            )
            if result.success:
                self.loop_guard.register_pending_install(candidate.plugin.id, candidate.target_version)
                logger.info("updated %s to %s", name, candidate.target_version)
            else:
                logger.warning("update failed for %s: %s", name, result.error)
            results.append((candidate, result))

        if results:
            self.session.restart_required = True
        return results

    # ── Fresh install ───────────────────────────────────────────────

    def find_package(self, full_name: str) -> Package | None:
        wanted = full_name.lower()
        for pkg in self.session.packages:
            if pkg.full_name.lower() == wanted:
                return pkg
        return None

    def is_satisfied(self, full_name: str) -> bool:
        wanted = full_name.lower()
        if wanted in (p.lower() for p in self.config.runtime_packages):
            return True
        if wanted in self.session.matched_full_names():
            return True
        return self.manifests.exists(full_name)

    def missing_dependencies(self, package: Package) -> list[Package]:
        """Direct dependencies not yet present, in declared order. Not transitive."""
        missing = []
        for dep in package.latest.dependencies:
            full_name = split_dependency(dep)
            if self.is_satisfied(full_name):
                continue
            found = self.find_package(full_name)
            if found is None:
                logger.warning("dependency %s of %s is not in the catalog", full_name, package.full_name)
                continue
            missing.append(found)
        return missing

    def install_package(self, full_name: str) -> list[tuple[Package, InstallResult]]:
        """Install *full_name* after its missing direct dependencies."""
        package = self.find_package(full_name)
        if package is None:
            logger.error("%s is not in the catalog", full_name)
            return []

        results = []
        for pkg in [*self.missing_dependencies(package), package]:
            logger.info("installing %s %s", pkg.full_name, pkg.latest.version_number)
            try:
                payload = self.download(pkg)
            except (FetchError, OSError) as e:
                logger.warning("download failed for %s: %s", pkg.full_name, e)
                results.append((pkg, InstallResult(success=False, error=str(e))))
                continue
            result = self.installer.install(
                payload,
                self.installer.fresh_strategy(pkg.name),
                manifest=InstallManifest.for_package(pkg),
            )
            results.append((pkg, result))

        if any(r.success for _, r in results):
            self.session.restart_required = True
        return results
