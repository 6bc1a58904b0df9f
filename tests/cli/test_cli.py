from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner
from PySide6.QtCore import QCoreApplication

from launcher_core.cli.main import cli
from launcher_core.models.package import PackageView
from launcher_core.models.settings import LauncherSettings
from launcher_core.models.update_state import (
    PackageOperationResult,
    PackageOperationStatus,
    ResolutionResult,
    UpdateApplyOutcome,
    UpdateCheckOutcome,
    UpdateState,
)
from launcher_core.utils.exception import RollbackFailedError, UpdateFailed

from conftest import make_package


@pytest.fixture(autouse=True)
def default_settings() -> Generator[LauncherSettings, None, None]:
    settings = LauncherSettings()
    with patch("launcher_core.cli.main.load_settings", return_value=settings):
        yield settings


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestCheckUpdate:
    """Tests for the check-update command."""

    def test_up_to_date(self, qapp: QCoreApplication, runner: CliRunner) -> None:
        with patch("launcher_core.cli.update.UpdateController") as controller_cls:
            controller_cls.return_value.check_for_update.return_value = UpdateCheckOutcome(
                UpdateState.UP_TO_DATE, "v1.0"
            )
            result = runner.invoke(cli, ["check-update"])

        assert result.exit_code == 0
        assert "Launcher is up to date! (v1.0)" in result.output
        controller_cls.return_value.check_for_update.assert_called_once_with(manual=True)

    def test_failed_check(self, qapp: QCoreApplication, runner: CliRunner) -> None:
        with patch("launcher_core.cli.update.UpdateController") as controller_cls:
            controller_cls.return_value.check_for_update.return_value = UpdateCheckOutcome(
                UpdateState.FAILED, "v1.0", error="offline"
            )
            result = runner.invoke(cli, ["check-update", "--auto"])

        assert result.exit_code == 1
        controller_cls.return_value.check_for_update.assert_called_once_with(manual=False)

    def test_disable_updater_flag(
        self, qapp: QCoreApplication, runner: CliRunner, default_settings: LauncherSettings
    ) -> None:
        with patch("launcher_core.cli.update.UpdateController") as controller_cls:
            controller_cls.return_value.check_for_update.return_value = UpdateCheckOutcome(
                UpdateState.IDLE, "v1.0", skipped=True
            )
            result = runner.invoke(cli, ["--disable-updater", "check-update", "--auto"])

        assert result.exit_code == 0
        assert "disabled" in result.output
        assert controller_cls.call_args.args[0].updater_disabled is True

    def test_installs_accepted_update(self, qapp: QCoreApplication, runner: CliRunner) -> None:
        with patch("launcher_core.cli.update.UpdateController") as controller_cls:
            controller = controller_cls.return_value
            controller.check_for_update.return_value = UpdateCheckOutcome(
                UpdateState.UPDATE_AVAILABLE, "v1.0", latest_version="v2.0"
            )
            controller.request_confirmation.return_value = True
            controller.apply_update.return_value = UpdateApplyOutcome(
                UpdateState.INSTALLING, version="v2.0"
            )
            result = runner.invoke(cli, ["check-update", "--yes"])

        assert result.exit_code == 0
        assert "v2.0 is available" in result.output
        controller.apply_update.assert_called_once_with(None, exit_process=False)

    def test_declined_update(self, qapp: QCoreApplication, runner: CliRunner) -> None:
        with patch("launcher_core.cli.update.UpdateController") as controller_cls:
            controller = controller_cls.return_value
            controller.check_for_update.return_value = UpdateCheckOutcome(
                UpdateState.UPDATE_AVAILABLE, "v1.0", latest_version="v2.0"
            )
            controller.request_confirmation.return_value = False
            result = runner.invoke(cli, ["check-update", "--check-only"])

        assert result.exit_code == 0
        controller.apply_update.assert_not_called()


class TestApplyUpdateCommand:
    """Tests for the hidden apply-update command run by the installer script."""

    def invoke(self, runner: CliRunner, tmp_path: Path) -> object:
        source = tmp_path / "staged"
        source.mkdir(exist_ok=True)
        return runner.invoke(
            cli,
            [
                "apply-update",
                "--source",
                str(source),
                "--target",
                str(tmp_path / "app"),
                "--pid",
                "1234",
                "--version",
                "v2.0",
                "--keep-source",
                "--no-relaunch",
            ],
        )

    def test_success(self, runner: CliRunner, tmp_path: Path) -> None:
        with patch("launcher_core.cli.update.AtomicInstaller") as installer_cls:
            result = self.invoke(runner, tmp_path)

        assert result.exit_code == 0
        kwargs = installer_cls.call_args.kwargs
        assert kwargs["pid"] == 1234
        assert kwargs["process_name"] is None
        assert kwargs["cleanup_source"] is False
        assert kwargs["relaunch"] is False

    def test_rolled_back(self, runner: CliRunner, tmp_path: Path) -> None:
        with patch("launcher_core.cli.update.AtomicInstaller") as installer_cls:
            installer_cls.return_value.install.side_effect = UpdateFailed("restored")
            result = self.invoke(runner, tmp_path)

        assert result.exit_code == 1

    def test_rollback_failed(self, runner: CliRunner, tmp_path: Path) -> None:
        backup = tmp_path / "app" / "backup_20240601_123045"
        with patch("launcher_core.cli.update.AtomicInstaller") as installer_cls:
            installer_cls.return_value.install.side_effect = RollbackFailedError(
                "unknown state", backup
            )
            result = self.invoke(runner, tmp_path)

        assert result.exit_code == 2
        assert str(backup) in result.output

    def test_hidden_from_help(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert "check-update" in result.output
        assert "apply-update" not in result.output


class TestModCommands:
    """Tests for the mod subcommands."""

    def test_unknown_community(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["list-mods", "--game-folder", "SomeGame"])
        assert result.exit_code == 1

    def test_list_mods(self, runner: CliRunner, tmp_path: Path) -> None:
        with patch("launcher_core.cli.mods.PackageController") as controller_cls:
            controller_cls.return_value.list_packages.return_value = [
                PackageView(make_package("Alice", "BetterHud", "2.0.0"), installed_version="1.0.0"),
                PackageView(make_package("Bob", "Core")),
            ]
            result = runner.invoke(
                cli,
                [
                    "list-mods",
                    "--game-folder",
                    "Zelda64Recompiled",
                    "--repository",
                    "Zelda64Recomp/Zelda64Recomp",
                    "--mods-path",
                    str(tmp_path),
                ],
            )

        assert result.exit_code == 0
        assert "^ Alice/BetterHud 2.0.0 (installed 1.0.0)" in result.output
        assert "  Bob/Core 1.0.0" in result.output
        controller_cls.assert_called_once_with("zelda-64-recompiled", tmp_path)
        controller_cls.return_value.shutdown.assert_called_once()

    def test_install_mod(self, qapp: QCoreApplication, runner: CliRunner, tmp_path: Path) -> None:
        with patch("launcher_core.cli.mods.PackageController") as controller_cls:
            controller_cls.return_value.install.return_value = PackageOperationResult(
                "Alice",
                "BetterHud",
                PackageOperationStatus.INSTALLED,
                version="1.0.0",
                dependencies=ResolutionResult(
                    resolved=["Ghost-Mod-1.0.0"], unresolved=["Ghost-Mod-1.0.0"]
                ),
            )
            result = runner.invoke(
                cli,
                [
                    "install-mod",
                    "--game-folder",
                    "Zelda64Recompiled",
                    "--community",
                    "zelda-64-recompiled",
                    "--mods-path",
                    str(tmp_path),
                    "Alice",
                    "BetterHud",
                ],
            )

        assert result.exit_code == 0
        assert "Alice/BetterHud: installed (1.0.0)" in result.output
        assert "Dependencies not found: Ghost-Mod-1.0.0" in result.output
        controller_cls.return_value.install.assert_called_once_with(
            "Alice", "BetterHud", force=False
        )

    def test_delete_missing_mod(self, runner: CliRunner, tmp_path: Path) -> None:
        with patch("launcher_core.cli.mods.PackageController") as controller_cls:
            controller_cls.return_value.delete.return_value = PackageOperationResult(
                "Alice", "BetterHud", PackageOperationStatus.NOT_INSTALLED
            )
            result = runner.invoke(
                cli,
                [
                    "delete-mod",
                    "--game-folder",
                    "G",
                    "--community",
                    "c",
                    "--mods-path",
                    str(tmp_path),
                    "Alice",
                    "BetterHud",
                ],
            )

        assert result.exit_code == 1

    def test_update_mods_nothing_to_do(self, runner: CliRunner, tmp_path: Path) -> None:
        controller = MagicMock()
        controller.update_all.return_value = []
        with patch("launcher_core.cli.mods.PackageController", return_value=controller):
            result = runner.invoke(
                cli,
                ["update-mods", "--game-folder", "G", "--community", "c", "--mods-path", str(tmp_path)],
            )

        assert result.exit_code == 0
        assert "All mods are up to date." in result.output
