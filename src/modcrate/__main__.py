"""CLI entry point: catalog, update check, install/uninstall, startup pass."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
from rich.console import Console

from .catalog.builder import CatalogError, builder_from_config
from .catalog.network import NetworkClient
from .core.config import Config, load_config, save_settings
from .core.log import setup_logging
from .core.utils import human_size, short_path
from .plugins.host import Session
from .plugins.installer import InstallPipeline
from .plugins.matcher import MIN_MATCH_SCORE, find_best_match, rank_candidates
from .plugins.models import InstallManifest
from .plugins.uninstaller import Uninstaller
from .plugins.updates import UpdateCandidate, UpdateService

console = Console()


@contextmanager
def _service(config: Config) -> Iterator[UpdateService]:
    client = NetworkClient(timeout=config.request_timeout, retry_backoff=config.retry_backoff)
    try:
        yield UpdateService(Session.from_config(config), client, builder_from_config(config, client))
    finally:
        client.close()


def _load_catalog(service: UpdateService, refresh: bool = False) -> bool:
    try:
        service.refresh_catalog(force=refresh)
    except CatalogError as e:
        console.print(f"error: {e}", style="bold")
        return False
    return True


def _restart_notice(service: UpdateService) -> None:
    if service.session.restart_required:
        console.print("restart the game to finish applying changes", style="dim")


def _print_candidates(title: str, candidates: list[UpdateCandidate]) -> None:
    if not candidates:
        return
    console.print(f"[bold]{title}[/bold]")
    for c in candidates:
        console.print(
            f"  [bold]{c.plugin.name}[/bold]  {c.current_version} -> {c.target_version}"
            f"  [dim]{c.package.full_name}[/dim]"
        )


# ── Commands ────────────────────────────────────────────────────────


@click.group()
@click.option(
    "--game-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Game directory containing BepInEx (default: $MODCRATE_GAME_ROOT or cwd)",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def cli(ctx: click.Context, game_root: Path | None, verbose: bool):
    """modcrate: plugin catalog, updates and installs for BepInEx games."""
    config = load_config(game_root=game_root, verbose=verbose)
    setup_logging(verbose, config.log_file)
    ctx.obj = config


@cli.command()
@click.option("--refresh", is_flag=True, help="Ignore the cached catalog")
@click.option("--search", "-s", default="", help="Filter by name or description")
@click.pass_obj
def catalog(config: Config, refresh: bool, search: str):
    """List the remote package catalog."""
    with _service(config) as service:
        if not _load_catalog(service, refresh):
            sys.exit(1)
        needle = search.lower()
        shown = 0
        for pkg in service.session.packages:
            if needle and needle not in pkg.full_name.lower() and needle not in pkg.description.lower():
                continue
            size = f"  {human_size(pkg.latest.file_size)}" if pkg.latest.file_size else ""
            console.print(
                f"  [bold]{pkg.full_name}[/bold]  v{pkg.latest.version_number}{size}"
                f"  [dim]{pkg.description}[/dim]"
            )
            shown += 1
        console.print(f"{shown} package(s)", style="dim")


@cli.command()
@click.option("--apply", "apply_manual", is_flag=True, help="Also install manual updates")
@click.option("--refresh", is_flag=True, help="Ignore the cached catalog")
@click.option("--wait", is_flag=True, help="Pause for the configured startup delay first")
@click.pass_obj
def check(config: Config, apply_manual: bool, refresh: bool, wait: bool):
    """Check loaded plugins for updates. Auto-update mods are always applied."""
    with _service(config) as service:
        service.startup()
        try:
            result = service.check_for_updates(force_refresh=refresh, wait=wait)
        except CatalogError as e:
            console.print(f"error: {e}", style="bold")
            sys.exit(1)

        _print_candidates("auto updates", result.auto)
        _print_candidates("available updates", result.manual)
        if result.skipped:
            console.print(f"{len(result.skipped)} ignored update(s) skipped", style="dim")
        if not (result.auto or result.manual):
            console.print("everything is up to date", style="dim")

        to_apply = result.auto + (result.manual if apply_manual else [])
        failed = 0
        for candidate, outcome in service.apply_updates(to_apply):
            if outcome.success:
                console.print(f"updated [bold]{candidate.plugin.name}[/bold] to {candidate.target_version}")
            else:
                failed += 1
                console.print(f"could not update {candidate.plugin.name}: {outcome.error}", style="bold")
        _restart_notice(service)
        if failed:
            sys.exit(1)


@cli.command()
@click.argument("plugin_id")
@click.pass_obj
def match(config: Config, plugin_id: str):
    """Show how a loaded plugin scores against the catalog."""
    with _service(config) as service:
        if not _load_catalog(service):
            sys.exit(1)
        plugin = service.session.plugin(plugin_id)
        name = plugin.name if plugin else plugin_id
        local_id = plugin.id if plugin else plugin_id

        pinned = config.mod_map.get(local_id)
        if pinned:
            console.print(f"manual mapping: [bold]{pinned}[/bold]")

        ranked = rank_candidates(local_id, name, service.session.packages)
        eligible = [(pkg, r) for pkg, r in ranked if r.total >= MIN_MATCH_SCORE]
        for pkg, report in eligible:
            console.print(f"[bold]{pkg.full_name}[/bold]  score {report.total}")
            for line in report.lines():
                console.print(f"  {line}", style="dim")

        best = find_best_match(local_id, name, service.session.packages)
        if best is not None:
            console.print(f"match: [bold]{best.full_name}[/bold]")
        elif eligible:
            console.print("no match: candidates are too close to call", style="bold")
        else:
            console.print("no match", style="dim")


@cli.command()
@click.argument("full_name")
@click.pass_obj
def install(config: Config, full_name: str):
    """Install a catalog package and its missing dependencies."""
    with _service(config) as service:
        if not _load_catalog(service):
            sys.exit(1)
        if service.find_package(full_name) is None:
            console.print(f"{full_name} is not in the catalog", style="bold")
            sys.exit(1)
        service.match()
        results = service.install_package(full_name)
        for pkg, outcome in results:
            if outcome.success:
                console.print(
                    f"installed [bold]{pkg.full_name}[/bold] {pkg.latest.version_number}"
                    f" ({len(outcome.files)} files)"
                )
            else:
                console.print(f"could not install {pkg.full_name}: {outcome.error}", style="bold")
        _restart_notice(service)
        if not all(outcome.success for _, outcome in results):
            sys.exit(1)


@cli.command("install-file")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--name", default=None, help="Package name to track the install under")
@click.pass_obj
def install_file(config: Config, path: Path, name: str | None):
    """Install a local zip archive or DLL."""
    pipeline = InstallPipeline(config)
    label = name or path.stem
    manifest = InstallManifest(name=label, full_name=label) if name else None
    result = pipeline.install(path, pipeline.fresh_strategy(label), manifest=manifest, delete_payload=False)
    if not result.success:
        console.print(f"error: {result.error}", style="bold")
        sys.exit(1)
    target = short_path(result.target_dir, config.game_root) if result.target_dir else ""
    console.print(f"installed [bold]{label}[/bold] into {target} ({len(result.files)} files)")
    for rel in result.files:
        console.print(f"  {rel}", style="dim")
    console.print("restart the game to finish applying changes", style="dim")


@cli.command()
@click.argument("plugin_id")
@click.option("--delete-config", is_flag=True, help="Also delete the plugin's config file")
@click.pass_obj
def uninstall(config: Config, plugin_id: str, delete_config: bool):
    """Remove a loaded plugin."""
    with _service(config) as service:
        # matching only refines the scope; a missing catalog is not fatal here
        try:
            service.refresh_catalog()
            service.match()
        except CatalogError as e:
            console.print(f"catalog unavailable ({e}); uninstalling without it", style="dim")
        uninstaller = Uninstaller(config, service.session, loop_guard=service.loop_guard)
        result = uninstaller.uninstall(plugin_id, delete_config)
        if not result.success:
            console.print(f"error: {result.error}", style="bold")
            sys.exit(1)
        scope = result.scope.value if result.scope else ""
        console.print(f"uninstalled [bold]{plugin_id}[/bold] ({scope}, {len(result.removed)} files)")
        _restart_notice(service)


@cli.command()
@click.pass_obj
def startup(config: Config):
    """Verify last session's updates and sweep leftover backup files."""
    with _service(config) as service:
        report = service.startup()
        if report.verification_deferred:
            console.print("pending updates not verified yet: the game has not restarted", style="dim")
        for entry in report.newly_ignored:
            plugin_id, _, version = entry.partition("|")
            console.print(f"update to {version} failed for [bold]{plugin_id}[/bold]; it will not be offered again")
        if report.removed_leftovers:
            console.print(f"removed {len(report.removed_leftovers)} leftover file(s)", style="dim")


@cli.command()
@click.argument("plugin_id")
@click.option("--auto-update/--no-auto-update", default=None, help="Apply updates without asking")
@click.option("--ignore/--no-ignore", default=None, help="Never offer updates for this plugin")
@click.option("--map", "map_to", default=None, help="Pin to a package fullName ('' to clear)")
@click.pass_obj
def configure(config: Config, plugin_id: str, auto_update: bool | None, ignore: bool | None, map_to: str | None):
    """Change per-plugin settings."""
    if auto_update is not None:
        config.auto_update[plugin_id] = auto_update
    if ignore is not None:
        config.ignored_mods[plugin_id] = ignore
    if map_to is not None:
        if map_to:
            config.mod_map[plugin_id] = map_to
        else:
            config.mod_map.pop(plugin_id, None)
    path = save_settings(config)
    console.print(
        f"[bold]{plugin_id}[/bold]  auto-update={config.is_auto_update(plugin_id)}"
        f"  ignored={config.is_mod_ignored(plugin_id)}"
        f"  map={config.mod_map.get(plugin_id, '-')}"
    )
    console.print(f"saved to {short_path(path, config.game_root)}", style="dim")


def main():
    cli()


if __name__ == "__main__":
    main()
