# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Logging setup with rotating log files."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

__all__ = ["setup_logging", "get_log_directory"]

PACKAGE_LOGGER = "sqlrecord"


def setup_logging(
    app_name: str = "sqlrecord",
    console_level: int = logging.INFO,
    log_dir: str | os.PathLike[str] | None = None,
    *,
    to_files: bool = True,
) -> Path | None:
    """
    Configure the ``sqlrecord`` loggers.

    Creates two log files unless ``to_files`` is false:
    - sqlrecord.log: DEBUG+ messages (10 MB per file, 5 rotations)
    - errors.log: ERROR+ messages from every logger (5 MB per file, 3 rotations)

    Args:
        app_name: Application name for the platform log directory
        console_level: Minimum level for console output
        log_dir: Explicit log directory (defaults to the platform location)

    Returns:
        Path to the log directory, or ``None`` when file logging is off
    """
    root_logger = logging.getLogger()
    if root_logger.level == logging.NOTSET or root_logger.level > logging.INFO:
        root_logger.setLevel(logging.INFO)

    detailed_formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    simple_formatter = logging.Formatter("%(levelname)-8s | %(name)s | %(message)s")

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(logging.DEBUG)
    package_logger.handlers.clear()

    # stderr keeps stdout clean for CLI output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(simple_formatter)
    package_logger.addHandler(console_handler)

    if not to_files:
        return None

    directory = Path(log_dir) if log_dir is not None else get_log_directory(app_name)
    directory.mkdir(parents=True, exist_ok=True)

    app_log_path = directory / "sqlrecord.log"
    app_handler = RotatingFileHandler(
        app_log_path,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    app_handler.setLevel(logging.DEBUG)
    app_handler.setFormatter(detailed_formatter)
    package_logger.addHandler(app_handler)

    error_log_path = directory / "errors.log"
    target = error_log_path.resolve()
    for handler in list(root_logger.handlers):
        if isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename).resolve() == target:
            root_logger.removeHandler(handler)
            handler.close()
    error_handler = RotatingFileHandler(
        error_log_path,
        maxBytes=5 * 1024 * 1024,  # 5 MB
        backupCount=3,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(detailed_formatter)
    root_logger.addHandler(error_handler)

    # Schema introspection and hook traffic is only interesting in the file
    logging.getLogger("sqlrecord.storage.sqlite.events").setLevel(logging.INFO)

    log = logging.getLogger(__name__)
    log.info("%s logging initialized", app_name)
    log.info("Log directory: %s", directory)
    log.info("Platform: %s, Python: %s", sys.platform, sys.version.split()[0])
    return directory


def get_log_directory(app_name: str = "sqlrecord") -> Path:
    """
    Platform-specific log directory.

    - Windows: %LOCALAPPDATA%\\AppName\\logs
    - macOS: ~/Library/Logs/AppName
    - Linux: ~/.local/share/AppName/logs
    """
    home = Path.home()

    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", home / "AppData" / "Local"))
        return base / app_name / "logs"

    if sys.platform == "darwin":
        return home / "Library" / "Logs" / app_name

    xdg_data_home = os.environ.get("XDG_DATA_HOME", home / ".local" / "share")
    return Path(xdg_data_home) / app_name / "logs"
