#!/usr/bin/env python3
# Compilation mode
# nuitka-project: --assume-yes-for-downloads
# nuitka-project: --output-filename=RecompLauncher
# nuitka-project: --output-dir={MAIN_DIRECTORY}/../build/
# nuitka-project: --windows-console-mode=attach
# nuitka-project: --mode=standalone

# nuitka-project-if: os.path.exists("{MAIN_DIRECTORY}/../version.txt"):
#   nuitka-project: --include-data-file={MAIN_DIRECTORY}/../version.txt=version.txt

import sys
from types import TracebackType
from typing import Type

import loguru
from loguru import logger

from launcher_core.cli.main import cli
from launcher_core.utils.app_info import AppInfo
from launcher_core.utils.obfuscate_message import obfuscate_message


def handle_exception(
    exc_type: Type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
) -> None:
    """
    This function is called (through excepthook) when a command fails with an
    uncaught exception. When this happens, the error is logged to the log file.
    """

    # Ignore KeyboardInterrupt exceptions, for when running through the terminal
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
    else:
        logger.opt(exception=(exc_type, exc_value, exc_traceback)).error(
            "The launcher has failed with an uncaught exception"
        )

    sys.exit(1)


# Uncaught exceptions are handled through the function above
sys.excepthook = handle_exception


def formatter(record: "loguru.Record") -> str:
    """Custom formatter for loguru logger"""
    format_string = (
        "[{level}]"
        "[{time:YYYY-MM-DD HH:mm:ss}]"
        "[{process.id}]"
        "[{thread.name}]"
        "[{module}]"
        "[{function}][{line}]"
        " : "
    )

    record["extra"]["obfuscated_message"] = obfuscate_message(record["message"])
    return format_string + "{extra[obfuscated_message]}\n{exception}"


def setup_logging() -> None:
    # Set the log level from the presence (or absence) of a "DEBUG" file in the app_storage_folder
    debug_file_path = AppInfo().app_storage_folder / "DEBUG"
    debug_mode = debug_file_path.exists() and debug_file_path.is_file()

    # We have log_file (foo.log) and old_log_file (foo.old.log). If old_log_file exists,
    # remove it. If log_file exists, rename it to old_log_file. When we pass log_file to
    # the logger as an argument, it will automatically be created.
    log_file = AppInfo().user_log_folder / (AppInfo().app_name + ".log")
    old_log_file = AppInfo().user_log_folder / (AppInfo().app_name + ".old.log")
    if old_log_file.exists() and old_log_file.is_file():
        old_log_file.unlink()
    if log_file.exists() and log_file.is_file():
        log_file.rename(old_log_file)

    # Remove the default stderr logger
    logger.remove()

    # Create the file logger
    logger.add(log_file, level="DEBUG" if debug_mode else "INFO", format=formatter)

    # Add a "WARNING" or higher stderr logger
    logger.add(
        sys.stderr,
        level="WARNING",
        format=formatter,
        colorize=False,
    )


def main() -> None:
    setup_logging()

    if "__compiled__" not in globals():
        logger.debug("Running using Python interpreter")
    else:
        logger.debug("Running using Nuitka bundle")

    logger.info(f"Initializing {AppInfo().app_name}: {AppInfo().app_version}")
    cli()


if __name__ == "__main__":
    main()
