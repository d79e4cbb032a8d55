# PDFBook
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Logging configuration with file rotation."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pdfbook.core.paths import DirectoryManager, PathProvider

SQL_LOGGER = "pdfbook.sql"


def setup_logging(
    paths: PathProvider | None = None,
    console_level: int = logging.INFO,
    *,
    log_dir: Path | None = None,
) -> Path:
    """
    Configure logging with file rotation.

    Creates two log files:
    - pdfbook.log: DEBUG+ messages of the ``pdfbook`` package (10 MB per file, 5 rotations)
    - errors.log: ERROR+ messages only (5 MB per file, 3 rotations)

    Args:
        paths: Path provider used to locate the logs directory
        console_level: Minimum level for console output
        log_dir: Explicit directory, overrides ``paths``

    Returns:
        Path to the log directory
    """
    if log_dir is None:
        provider = paths or DirectoryManager()
        get_logs_dir = getattr(provider, "get_logs_dir", None)
        log_dir = get_logs_dir() if callable(get_logs_dir) else provider.get_cache_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    for handler in list(root_logger.handlers):
        if getattr(handler, "_pdfbook", False):
            root_logger.removeHandler(handler)
            handler.close()

    detailed_formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    simple_formatter = logging.Formatter("%(levelname)-8s | %(name)s | %(message)s")

    pkg_logger = logging.getLogger("pdfbook")
    pkg_logger.setLevel(logging.DEBUG)
    for handler in list(pkg_logger.handlers):
        pkg_logger.removeHandler(handler)
        handler.close()

    app_log_path = log_dir / "pdfbook.log"
    app_handler = RotatingFileHandler(
        app_log_path,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    app_handler.setLevel(logging.DEBUG)
    app_handler.setFormatter(detailed_formatter)
    pkg_logger.addHandler(app_handler)

    error_log_path = log_dir / "errors.log"
    error_handler = RotatingFileHandler(
        error_log_path,
        maxBytes=5 * 1024 * 1024,  # 5 MB
        backupCount=3,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(detailed_formatter)
    error_handler._pdfbook = True  # type: ignore[attr-defined]
    root_logger.addHandler(error_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(simple_formatter)
    # Traced statements go to the file log only
    console_handler.addFilter(lambda record: not record.name.startswith(SQL_LOGGER))
    pkg_logger.addHandler(console_handler)

    # Acquire/release chatter stays out of the file log
    logging.getLogger("pdfbook.storage.connection_pool").setLevel(logging.INFO)

    log = logging.getLogger(__name__)
    log.info("=" * 70)
    log.info("PDFBook logging initialized")
    log.info("Log directory: %s", log_dir)
    log.info("Platform: %s, Python: %s", sys.platform, sys.version.split()[0])
    log.info("=" * 70)

    return log_dir
