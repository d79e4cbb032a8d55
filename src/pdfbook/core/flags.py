"""Feature flags read from ``PDFBOOK_FEATURES``.

The value is a comma separated list: ``name`` switches a flag on, ``!name``
or ``-name`` switches it off and ``name=value`` takes a boolean spelling
such as ``on``/``off`` or ``yes``/``no``. Names are case-insensitive and
``-`` inside a name is read as ``_``, so ``SQL-Trace`` and ``sql_trace`` are
the same flag.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache

log = logging.getLogger(__name__)

ENV_VAR = "PDFBOOK_FEATURES"

# Flags the store understands. Others are parsed and kept but never consulted.
KNOWN_FLAGS = {
    "sql_trace": "log every SQL statement to the pdfbook.sql logger",
    "exclusive_lock": "open the store with locking_mode=EXCLUSIVE",
}

_SPELLINGS = {
    "1": True,
    "true": True,
    "on": True,
    "yes": True,
    "enable": True,
    "enabled": True,
    "0": False,
    "false": False,
    "off": False,
    "no": False,
    "disable": False,
    "disabled": False,
}


def flag_key(name: str) -> str:
    return name.strip().lower().replace("-", "_")


def parse_bool(value: str) -> bool | None:
    return _SPELLINGS.get(value.strip().lower())


def parse_features(raw: str) -> dict[str, bool]:
    """Turn a ``PDFBOOK_FEATURES`` string into ``{flag: enabled}``.

    Entries with an unreadable value are skipped; later entries win.
    """
    features: dict[str, bool] = {}
    for entry in filter(None, (part.strip() for part in raw.split(","))):
        name, sep, value = entry.partition("=")
        if sep:
            state = parse_bool(value)
            if state is None:
                log.debug("Ignoring feature %r: unreadable value %r", name, value)
                continue
        elif entry[0] in "!-":
            name, state = entry[1:], False
        else:
            state = True
        features[flag_key(name)] = state
    return features


@lru_cache(maxsize=1)
def _from_environment() -> dict[str, bool]:
    features = parse_features(os.environ.get(ENV_VAR, ""))
    unknown = sorted(set(features) - set(KNOWN_FLAGS))
    if unknown:
        log.debug("Unrecognised feature flags: %s", ", ".join(unknown))
    return features


def reload() -> None:
    """Forget the cached environment value (tests change it at runtime)."""

    _from_environment.cache_clear()


def is_enabled(flag: str, *, default: bool = False, env_value: str | None = None) -> bool:
    """Whether ``flag`` is switched on.

    ``env_value`` is parsed in place of the process environment and is not
    cached.
    """

    if not flag:
        raise ValueError("Flag name must be a non-empty string")
    features = parse_features(env_value) if env_value is not None else _from_environment()
    return features.get(flag_key(flag), default)
