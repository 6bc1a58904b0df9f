"""
check-update and apply-update subcommands.

`apply-update` is not meant to be typed by users. The installer script runs it
once the launcher has exited.
"""

import sys
from pathlib import Path
from typing import Optional

import click

from launcher_core.controllers.atomic_installer import AtomicInstaller
from launcher_core.controllers.update_check_cache import UpdateCheckCache
from launcher_core.controllers.update_controller import UpdateController
from launcher_core.models.settings import LauncherSettings
from launcher_core.models.update_state import UpdateState
from launcher_core.utils.app_info import AppInfo
from launcher_core.utils.event_bus import ConfirmationRequest, EventBus
from launcher_core.utils.exception import (
    InstallFailure,
    RollbackFailedError,
    UpdateFailed,
    UpdateInProgressError,
)


@click.command("check-update")
@click.option(
    "--manual/--auto",
    default=True,
    show_default=True,
    help="A manual check always queries the release registry; an automatic one may answer from the last check.",
)
@click.option(
    "--yes",
    "-y",
    is_flag=True,
    help="Install an available update without asking.",
)
@click.option(
    "--check-only",
    is_flag=True,
    help="Report whether an update is available, never install it.",
)
@click.pass_obj
def check_update(
    settings: LauncherSettings, manual: bool, yes: bool, check_only: bool
) -> None:
    """Check for a newer launcher release and optionally install it.

    Exit code is 0 when up to date or the update was handed over, 1 on errors.
    """
    event_bus = EventBus()

    def on_confirmation(request: ConfirmationRequest) -> None:
        if yes:
            request.answer(True)
        elif check_only:
            request.answer(False)
        else:
            request.answer(click.confirm(request.text, default=False))

    def on_progress(percent: int, counters: str) -> None:
        click.echo(f"\rDownloading... {percent}% ({counters})", nl=False, err=True)

    event_bus.confirmation_requested.connect(on_confirmation)
    event_bus.update_progress.connect(on_progress)
    try:
        controller = UpdateController(settings)
        try:
            outcome = controller.check_for_update(manual=manual)
        except UpdateInProgressError as e:
            click.secho(f"Error: {e}", fg="red", err=True)
            sys.exit(1)

        if outcome.state == UpdateState.FAILED:
            click.secho(
                f"Could not check for launcher updates: {outcome.error}",
                fg="red",
                err=True,
            )
            sys.exit(1)
        if outcome.state == UpdateState.IDLE:
            click.echo("Update checks are disabled.")
            return
        if not outcome.update_available:
            click.echo(f"Launcher is up to date! ({outcome.current_version})")
            return

        click.echo(
            f"Launcher update {outcome.latest_version} is available (current {outcome.current_version})."
        )
        if not controller.request_confirmation(
            "Update Available", "Would you like to update now?"
        ):
            return

        applied = controller.apply_update(outcome.release, exit_process=False)
        click.echo(err=True)
        if not applied.succeeded:
            click.secho(f"Update failed: {applied.error}", fg="red", err=True)
            sys.exit(1)
        click.secho(
            "Update downloaded, the installer will finish once this process exits.",
            fg="green",
        )
    finally:
        event_bus.confirmation_requested.disconnect(on_confirmation)
        event_bus.update_progress.disconnect(on_progress)


@click.command("apply-update", hidden=True)
@click.option(
    "--source",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    required=True,
    help="Extracted update folder.",
)
@click.option(
    "--target",
    type=click.Path(file_okay=False, path_type=Path),
    required=True,
    help="Installation folder to replace.",
)
@click.option("--pid", type=int, default=None, help="Launcher process to wait for.")
@click.option(
    "--process-name",
    default=None,
    help="Executable name of the launcher, waited for alongside --pid.",
)
@click.option("--version", "version", required=True, help="Version being installed.")
@click.option(
    "--keep-source",
    is_flag=True,
    help="Leave the source folder in place, the installer script removes it.",
)
@click.option(
    "--relaunch/--no-relaunch",
    default=True,
    show_default=True,
    help="Start the launcher again after a successful update.",
)
def apply_update(
    source: Path,
    target: Path,
    pid: Optional[int],
    process_name: Optional[str],
    version: str,
    keep_source: bool,
    relaunch: bool,
) -> None:
    """Replace the installation with an extracted update.

    Exit code is 0 on success, 1 if the update failed and the previous version
    was restored or nothing was changed, 2 if restoring the previous version failed.
    """
    installer = AtomicInstaller(
        source=source,
        target=target,
        version=version,
        cache=UpdateCheckCache(AppInfo().update_check_file),
        pid=pid,
        process_name=process_name,
        relaunch=relaunch,
        cleanup_source=not keep_source,
    )
    try:
        installer.install()
    except RollbackFailedError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        click.echo(f"Your previous version is kept in {e.backup_folder}", err=True)
        sys.exit(2)
    except UpdateFailed as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)
    except InstallFailure as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        for failure in e.failures:
            click.echo(f"  {failure}", err=True)
        sys.exit(1)

    click.secho(f"✓ Updated to {version}", fg="green")
