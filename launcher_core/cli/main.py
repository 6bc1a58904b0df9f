"""
Main CLI entry point for the launcher core.

This module defines the Click command group and registers all subcommands.
"""

import click

from launcher_core.cli.mods import delete_mod, install_mod, list_mods, update_mods
from launcher_core.cli.update import apply_update, check_update
from launcher_core.models.settings import load_settings
from launcher_core.utils.app_info import AppInfo


@click.group()
@click.version_option(version=AppInfo().app_version, prog_name=AppInfo().app_name)
@click.option(
    "--disable-updater",
    is_flag=True,
    help="Disable automatic update checks (same as LAUNCHER_DISABLE_UPDATER env var).",
)
@click.pass_context
def cli(ctx: click.Context, disable_updater: bool) -> None:
    """Recomp launcher - self-update and mod management CLI

    Headless tools for updating the launcher and installing game mods from the
    package registry.
    """
    settings = load_settings(AppInfo().app_settings_file)
    if disable_updater:
        settings.updater_disabled = True
    ctx.obj = settings


# Register subcommands
cli.add_command(check_update)
cli.add_command(apply_update)
cli.add_command(list_mods)
cli.add_command(install_mod)
cli.add_command(delete_mod)
cli.add_command(update_mods)


if __name__ == "__main__":
    cli()
