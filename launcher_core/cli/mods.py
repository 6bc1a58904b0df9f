"""
Mod subcommands: list, install, delete and update mods of one game.
"""

import sys
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Optional

import click

from launcher_core.controllers.package_controller import PackageController, get_mods_path
from launcher_core.models.settings import LauncherSettings
from launcher_core.models.update_state import PackageOperationResult
from launcher_core.utils.event_bus import EventBus
from launcher_core.utils.exception import UpdateError
from launcher_core.utils.package_registry import get_community_for_repository


def mod_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every mod command, resolved into a PackageController."""

    @click.option(
        "--game-folder",
        required=True,
        help="Folder name of the game, used to locate its mods folder.",
    )
    @click.option(
        "--community",
        default=None,
        help="Package registry community of the game.",
    )
    @click.option(
        "--repository",
        default=None,
        help="Source repository of the game (owner/name), used to look up its community.",
    )
    @click.option(
        "--mods-path",
        type=click.Path(file_okay=False, path_type=Path),
        default=None,
        help="Override the mods folder.",
    )
    @click.pass_obj
    @wraps(func)
    def wrapper(
        settings: LauncherSettings,
        game_folder: str,
        community: Optional[str],
        repository: Optional[str],
        mods_path: Optional[Path],
        **kwargs: Any,
    ) -> Any:
        community = community or get_community_for_repository(repository or "")
        if not community:
            click.secho(
                "Error: No mod community known for this game. Pass --community or a known --repository.",
                fg="red",
                err=True,
            )
            sys.exit(1)
        controller = PackageController(
            community, mods_path or get_mods_path(game_folder, settings)
        )
        try:
            return func(controller, **kwargs)
        finally:
            controller.shutdown()

    return wrapper


def _echo_result(result: PackageOperationResult) -> None:
    key = f"{result.owner}/{result.name}"
    if result.succeeded:
        line = f"{key}: {result.status.value}"
        if result.version:
            line += f" ({result.version})"
        click.secho(line, fg="green")
    else:
        line = f"{key}: {result.status.value}"
        if result.error:
            line += f" - {result.error}"
        click.secho(line, fg="red", err=True)

    dependencies = result.dependencies
    if dependencies is not None and not dependencies.complete:
        if dependencies.unresolved:
            click.echo(
                f"  Dependencies not found: {', '.join(dependencies.unresolved)}", err=True
            )
        if dependencies.failed:
            click.echo(
                f"  Dependencies failed: {', '.join(dependencies.failed)}", err=True
            )


def _on_mod_status(key: str, message: str) -> None:
    click.echo(f"{key}: {message}", err=True)


@click.command("list-mods")
@mod_options
@click.option("--installed", is_flag=True, help="Only list installed mods.")
def list_mods(controller: PackageController, installed: bool) -> None:
    """List the community's mods with their install state."""
    try:
        views = controller.list_packages()
    except UpdateError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)

    for view in views:
        if installed and not view.is_installed:
            continue
        marker = " "
        if view.has_update:
            marker = "^"
        elif view.is_installed:
            marker = "*"
        click.echo(
            f"{marker} {view.package.owner}/{view.package.name} "
            f"{view.latest_version_number}"
            + (f" (installed {view.installed_version})" if view.is_installed else "")
        )


@click.command("install-mod")
@mod_options
@click.argument("owner")
@click.argument("name")
@click.option("--force", is_flag=True, help="Reinstall even if already up to date.")
def install_mod(
    controller: PackageController, owner: str, name: str, force: bool
) -> None:
    """Install or update mod OWNER/NAME together with its dependencies."""
    event_bus = EventBus()
    event_bus.mod_status_changed.connect(_on_mod_status)
    try:
        result = controller.install(owner, name, force=force)
    finally:
        event_bus.mod_status_changed.disconnect(_on_mod_status)
    _echo_result(result)
    if not result.succeeded:
        sys.exit(1)


@click.command("delete-mod")
@mod_options
@click.argument("owner")
@click.argument("name")
def delete_mod(controller: PackageController, owner: str, name: str) -> None:
    """Delete mod OWNER/NAME and the files it installed."""
    result = controller.delete(owner, name)
    _echo_result(result)
    if not result.succeeded:
        sys.exit(1)


@click.command("update-mods")
@mod_options
def update_mods(controller: PackageController) -> None:
    """Update every installed mod that has a newer version."""
    try:
        results = controller.update_all()
    except UpdateError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)

    if not results:
        click.echo("All mods are up to date.")
        return
    for result in results:
        _echo_result(result)
    if not all(result.succeeded for result in results):
        sys.exit(1)
