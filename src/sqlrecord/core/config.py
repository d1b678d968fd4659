# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Connection options, optionally read from ``SQLRECORD_*`` environment variables."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, fields, replace
from functools import lru_cache

log = logging.getLogger(__name__)

__all__ = ["DatabaseConfig", "all_enabled", "is_enabled", "reload"]

FEATURES_ENV = "SQLRECORD_FEATURES"
JOURNAL_MODE_ENV = "SQLRECORD_JOURNAL_MODE"
BUSY_TIMEOUT_ENV = "SQLRECORD_BUSY_TIMEOUT_MS"

_FALSE_VALUES = {"0", "false", "off", "no", "disable", "disabled"}
_TRUE_VALUES = {"1", "true", "on", "yes", "enable", "enabled"}
_JOURNAL_MODES = {"delete", "truncate", "persist", "memory", "wal", "off"}


def _normalise(name: str) -> str:
    return name.strip().lower().replace("-", "_")


def _tokenise(raw: str) -> Iterable[str]:
    for token in raw.split(","):
        clean = token.strip()
        if clean:
            yield clean


def _parse_bool(value: str) -> bool | None:
    normalised = value.strip().lower()
    if normalised in _TRUE_VALUES:
        return True
    if normalised in _FALSE_VALUES:
        return False
    return None


def _parse_tokens(raw: str) -> dict[str, bool]:
    features: dict[str, bool] = {}
    for token in _tokenise(raw):
        if token.startswith(("!", "-")):
            features[_normalise(token[1:])] = False
            continue
        if "=" in token:
            key, value = token.split("=", 1)
            parsed = _parse_bool(value)
            if parsed is None:
                log.warning("Ignoring %s entry %r: not a boolean", FEATURES_ENV, token)
                continue
            features[_normalise(key)] = parsed
            continue
        features[_normalise(token)] = True
    return features


@lru_cache(maxsize=1)
def _cached_flags(env_value: str | None = None) -> dict[str, bool]:
    raw = env_value if env_value is not None else os.environ.get(FEATURES_ENV, "")
    return _parse_tokens(raw)


def reload() -> None:
    """Clear the cached feature map (useful for tests)."""

    _cached_flags.cache_clear()


def all_enabled(env_value: str | None = None) -> dict[str, bool]:
    """Return a copy of the parsed feature map."""

    return dict(_cached_flags(env_value))


def is_enabled(flag: str, *, default: bool = False) -> bool:
    if not flag:
        raise ValueError("Flag name must be a non-empty string")
    features = _cached_flags()
    return features.get(_normalise(flag), default)


@dataclass(frozen=True)
class DatabaseConfig:
    """Behavioral switches and pragmas applied when a database is opened.

    ``strict_encoding`` raises on values that cannot be encoded instead of
    binding NULL. ``strict_conditions`` rejects raw SQL filter strings.
    ``verbose_changes`` makes the standard change hook report table names.
    ``journal_mode`` only applies to file databases.
    """

    strict_encoding: bool = False
    strict_conditions: bool = False
    verbose_changes: bool = False
    journal_mode: str | None = "WAL"
    foreign_keys: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls, **overrides) -> DatabaseConfig:
        """Build a config from ``SQLRECORD_FEATURES`` and friends.

        Boolean fields are read from the feature list
        (``strict_encoding,!foreign_keys,verbose_changes=on``). Invalid values
        are logged and ignored. Keyword ``overrides`` win over the environment.
        """

        features = all_enabled()
        values: dict[str, object] = {}
        for f in fields(cls):
            if f.type in ("bool", bool) and f.name in features:
                values[f.name] = features[f.name]
        unknown = sorted(set(features) - {f.name for f in fields(cls)})
        if unknown:
            log.debug("Unused %s entries: %s", FEATURES_ENV, unknown)

        journal = os.environ.get(JOURNAL_MODE_ENV)
        if journal:
            if journal.strip().lower() in _JOURNAL_MODES:
                values["journal_mode"] = journal.strip().upper()
            else:
                log.warning("Ignoring %s=%r: unknown journal mode", JOURNAL_MODE_ENV, journal)

        timeout = os.environ.get(BUSY_TIMEOUT_ENV)
        if timeout:
            try:
                values["busy_timeout_ms"] = max(0, int(timeout))
            except ValueError:
                log.warning("Ignoring %s=%r: not an integer", BUSY_TIMEOUT_ENV, timeout)

        values.update(overrides)
        return cls(**values)

    def with_options(self, **changes) -> DatabaseConfig:
        return replace(self, **changes)

    def pragmas(self, *, in_memory: bool = False) -> dict[str, object]:
        """Pragmas for :func:`~sqlrecord.storage.sqlite.utils.set_pragmas`."""

        opts: dict[str, object] = {
            "foreign_keys": self.foreign_keys,
            "busy_timeout_ms": self.busy_timeout_ms,
        }
        if self.journal_mode and not in_memory:
            opts["journal_mode"] = self.journal_mode
        return opts
