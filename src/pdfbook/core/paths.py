# PDFBook
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Platform-specific application directories (the store's path provider)."""

from __future__ import annotations

import logging
import os
import shutil
import sys
import time
from pathlib import Path
from typing import Protocol, runtime_checkable

from pdfbook.core.config import APP_NAME

log = logging.getLogger(__name__)

HOME_ENV_VAR = "PDFBOOK_HOME"

__all__ = ["PathProvider", "DirectoryManager"]


@runtime_checkable
class PathProvider(Protocol):
    """Directories the store layer consumes; it never creates them itself."""

    def get_config_dir(self) -> Path: ...

    def get_data_dir(self) -> Path: ...

    def get_cache_dir(self) -> Path: ...

    def ensure_directories(self) -> None: ...


class DirectoryManager:
    """
    Resolve and create the application directories.

    - Linux: ~/.config/<app>, ~/.local/share/<app>, ~/.cache/<app> (XDG aware)
    - macOS: ~/Library/Preferences/<app>, ~/Library/Application Support/<app>,
      ~/Library/Caches/<app>
    - Windows: %APPDATA%\\<app>, %APPDATA%\\<app>\\data, %LOCALAPPDATA%\\<app>\\cache

    When ``base_dir`` is given (or ``PDFBOOK_HOME`` is set) every directory
    lives under that single root instead, which keeps tests isolated.
    """

    def __init__(self, app_name: str = APP_NAME, base_dir: str | Path | None = None):
        self.app_name = app_name
        if base_dir is None and os.environ.get(HOME_ENV_VAR):
            base_dir = os.environ[HOME_ENV_VAR]
        self.base_dir = Path(base_dir) if base_dir is not None else None

    # ---- Core directories --------------------------------------------------

    def get_config_dir(self) -> Path:
        if self.base_dir is not None:
            return self.base_dir / "config"
        home = Path.home()
        if sys.platform == "win32":
            return Path(os.environ.get("APPDATA", home / "AppData" / "Roaming")) / self.app_name
        if sys.platform == "darwin":
            return home / "Library" / "Preferences" / self.app_name
        return Path(os.environ.get("XDG_CONFIG_HOME", home / ".config")) / self.app_name

    def get_data_dir(self) -> Path:
        if self.base_dir is not None:
            return self.base_dir / "data"
        home = Path.home()
        if sys.platform == "win32":
            base = Path(os.environ.get("APPDATA", home / "AppData" / "Roaming"))
            return base / self.app_name / "data"
        if sys.platform == "darwin":
            return home / "Library" / "Application Support" / self.app_name
        return Path(os.environ.get("XDG_DATA_HOME", home / ".local" / "share")) / self.app_name

    def get_cache_dir(self) -> Path:
        if self.base_dir is not None:
            return self.base_dir / "cache"
        home = Path.home()
        if sys.platform == "win32":
            base = Path(os.environ.get("LOCALAPPDATA", home / "AppData" / "Local"))
            return base / self.app_name / "cache"
        if sys.platform == "darwin":
            return home / "Library" / "Caches" / self.app_name
        return Path(os.environ.get("XDG_CACHE_HOME", home / ".cache")) / self.app_name

    # ---- Derived directories -----------------------------------------------

    def get_templates_dir(self) -> Path:
        return self.get_data_dir() / "templates"

    def get_logs_dir(self) -> Path:
        return self.get_cache_dir() / "logs"

    def get_backups_dir(self) -> Path:
        return self.get_cache_dir() / "backups"

    def get_temp_dir(self) -> Path:
        return self.get_cache_dir() / "temp"

    def all_directories(self) -> list[Path]:
        return [
            self.get_config_dir(),
            self.get_data_dir(),
            self.get_templates_dir(),
            self.get_cache_dir(),
            self.get_logs_dir(),
            self.get_backups_dir(),
            self.get_temp_dir(),
        ]

    def ensure_directories(self) -> None:
        """Create every application directory; failures propagate."""

        for directory in self.all_directories():
            try:
                directory.mkdir(parents=True, exist_ok=True)
                if sys.platform.startswith("linux"):
                    directory.chmod(0o755)
            except OSError:
                log.error("Failed to create directory %s", directory, exc_info=True)
                raise
        log.debug("Application directories ready under %s", self.get_config_dir().parent)

    # ---- Maintenance -------------------------------------------------------

    def clean_cache(self, older_than_days: float = 7) -> list[Path]:
        """Remove top-level cache entries older than ``older_than_days``.

        The standard sub-directories are kept. Returns the removed paths.
        """

        cache_dir = self.get_cache_dir()
        keep = {self.get_logs_dir(), self.get_backups_dir(), self.get_temp_dir()}
        cutoff = time.time() - older_than_days * 24 * 60 * 60
        removed: list[Path] = []
        if not cache_dir.exists():
            return removed
        for item in cache_dir.iterdir():
            if item in keep:
                continue
            try:
                if item.stat().st_mtime >= cutoff:
                    continue
                if item.is_dir():
                    shutil.rmtree(item)
                else:
                    item.unlink()
                removed.append(item)
                log.info("Cleaned up cache item: %s", item.name)
            except OSError:
                log.warning("Failed to clean cache item %s", item, exc_info=True)
        return removed

    def get_directory_sizes(self) -> dict[str, int]:
        """Total bytes under the config/data/cache directories."""

        directories = {
            "config": self.get_config_dir(),
            "data": self.get_data_dir(),
            "cache": self.get_cache_dir(),
        }
        return {name: _directory_size(path) for name, path in directories.items()}


def _directory_size(path: Path) -> int:
    total = 0
    if not path.exists():
        return 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += (Path(root) / name).stat().st_size
            except OSError:
                continue
    return total
