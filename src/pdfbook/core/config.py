"""Store and pool configuration, read from ``PDFBOOK_*`` environment variables."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from pdfbook.core import flags

log = logging.getLogger(__name__)

APP_NAME = "pdfbook-editor"
DATABASE_FILENAME = "database.db"

_JOURNAL_MODES = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}
_SYNCHRONOUS = {"OFF", "NORMAL", "FULL", "EXTRA"}
_LOCKING_MODES = {"NORMAL", "EXCLUSIVE"}

__all__ = [
    "APP_NAME",
    "DATABASE_FILENAME",
    "PoolConfig",
    "StoreConfig",
    "load_pool_config",
    "load_store_config",
]


@dataclass
class PoolConfig:
    """Limits for the connection pool; durations are in seconds."""

    max_connections: int = 5
    acquire_timeout: float = 10.0
    retry_interval: float = 0.2
    destroy_timeout: float = 5.0
    idle_timeout: float = 300.0

    def __post_init__(self) -> None:
        if self.max_connections < 1:
            raise ValueError("max_connections must be >= 1")
        for name in ("acquire_timeout", "retry_interval", "destroy_timeout", "idle_timeout"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")


@dataclass
class StoreConfig:
    """How the store file is opened.

    ``path`` of ``None`` means ``<config dir>/database.db`` from the path
    provider; ``":memory:"`` opens a private in-memory store.
    """

    path: str | Path | None = None
    readonly: bool = False
    verbose: bool = False
    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"
    locking_mode: str = "NORMAL"
    cache_size: int = 10000
    busy_timeout_ms: int = 5000
    app_name: str = APP_NAME
    pool: PoolConfig = field(default_factory=PoolConfig)

    def __post_init__(self) -> None:
        self.journal_mode = self.journal_mode.upper()
        self.synchronous = self.synchronous.upper()
        self.locking_mode = self.locking_mode.upper()
        if self.journal_mode not in _JOURNAL_MODES:
            raise ValueError(f"Unsupported journal_mode: {self.journal_mode}")
        if self.synchronous not in _SYNCHRONOUS:
            raise ValueError(f"Unsupported synchronous mode: {self.synchronous}")
        if self.locking_mode not in _LOCKING_MODES:
            raise ValueError(f"Unsupported locking_mode: {self.locking_mode}")

    @property
    def in_memory(self) -> bool:
        return str(self.path) == ":memory:"

    @property
    def exclusive(self) -> bool:
        return self.locking_mode == "EXCLUSIVE"

    def pragmas(self) -> dict[str, object]:
        """Pragmas applied to every handle opened on the store."""

        return {
            "journal_mode": self.journal_mode,
            "synchronous": self.synchronous,
            "foreign_keys": True,
            "cache_size": self.cache_size,
            "temp_store": "MEMORY",
            "busy_timeout_ms": self.busy_timeout_ms,
            "locking_mode": self.locking_mode,
        }


def _env_number(env: Mapping[str, str], key: str, cast, default):
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        log.warning("Ignoring invalid %s=%r", key, raw)
        return default


def load_pool_config(env: Mapping[str, str] | None = None) -> PoolConfig:
    env = os.environ if env is None else env
    defaults = PoolConfig()
    return PoolConfig(
        max_connections=_env_number(env, "PDFBOOK_POOL_MAX", int, defaults.max_connections),
        acquire_timeout=_env_number(
            env, "PDFBOOK_POOL_ACQUIRE_TIMEOUT", float, defaults.acquire_timeout
        ),
        retry_interval=_env_number(
            env, "PDFBOOK_POOL_RETRY_INTERVAL", float, defaults.retry_interval
        ),
        destroy_timeout=_env_number(
            env, "PDFBOOK_POOL_DESTROY_TIMEOUT", float, defaults.destroy_timeout
        ),
        idle_timeout=_env_number(env, "PDFBOOK_POOL_IDLE_TIMEOUT", float, defaults.idle_timeout),
    )


def load_store_config(env: Mapping[str, str] | None = None, **overrides) -> StoreConfig:
    """Build a :class:`StoreConfig` from the environment.

    Keyword ``overrides`` win over environment values.
    """

    env = os.environ if env is None else env
    features = env.get(flags.ENV_VAR, "")
    locking_mode = env.get("PDFBOOK_LOCKING_MODE") or (
        "EXCLUSIVE" if flags.is_enabled("exclusive_lock", env_value=features) else "NORMAL"
    )
    values: dict[str, object] = {
        "path": env.get("PDFBOOK_DB_PATH") or None,
        "verbose": flags.is_enabled("sql_trace", env_value=features),
        "journal_mode": env.get("PDFBOOK_JOURNAL_MODE") or "WAL",
        "synchronous": env.get("PDFBOOK_SYNCHRONOUS") or "NORMAL",
        "locking_mode": locking_mode,
        "busy_timeout_ms": _env_number(env, "PDFBOOK_BUSY_TIMEOUT_MS", int, 5000),
        "pool": load_pool_config(env),
    }
    values.update(overrides)
    return StoreConfig(**values)  # type: ignore[arg-type]
