"""Project configuration: ``.tierloom/config.yml`` loading with defaults."""

# tierloom:domain=config

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR = ".tierloom"
CONFIG_FILENAME = "config.yml"
DB_FILENAME = "tierloom.db"

_VALID_STORES = frozenset({"files", "sqlite"})
_VALID_FINGERPRINTS = frozenset({"stat", "hash"})


@dataclass(frozen=True)
class WorkspaceConfig:
    """Runtime knobs for a workspace; domain settings live in fragments.

    ``roots`` are relative to the project root; an empty tuple means the
    project root itself is the only workspace root.
    """

    roots: tuple[str, ...] = ()
    store: str = "files"
    cache_capacity: int = 10_000
    max_workers: int = 4
    debounce_ms: int = 500
    fingerprint: str = "stat"

    def root_paths(self, project_root: Path) -> list[Path]:
        if not self.roots:
            return [project_root]
        return [(project_root / r) for r in self.roots]


def config_path(project_root: Path) -> Path:
    return project_root / CONFIG_DIR / CONFIG_FILENAME


def db_path(project_root: Path) -> Path:
    return project_root / CONFIG_DIR / DB_FILENAME


def _positive_int(data: dict[str, object], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        logger.warning("Ignoring invalid %s=%r in config.yml", key, value)
        return default
    return value


def load_config(project_root: Path) -> WorkspaceConfig:
    """Load :class:`WorkspaceConfig` from ``.tierloom/config.yml``.

    Falls back to defaults for missing keys or missing file.
    """
    path = config_path(project_root)
    if not path.is_file():
        return WorkspaceConfig()

    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError):
        logger.warning("Failed to read config.yml, using defaults")
        return WorkspaceConfig()

    if not isinstance(data, dict):
        return WorkspaceConfig()

    defaults = WorkspaceConfig()
    kwargs: dict[str, object] = {f.name: getattr(defaults, f.name) for f in fields(defaults)}

    roots = data.get("roots")
    if isinstance(roots, list) and all(isinstance(r, str) for r in roots):
        kwargs["roots"] = tuple(roots)
    elif roots is not None:
        logger.warning("Ignoring invalid roots in config.yml")

    store = data.get("store")
    if store in _VALID_STORES:
        kwargs["store"] = store
    elif store is not None:
        logger.warning("Unknown store %r in config.yml, using 'files'", store)

    fingerprint = data.get("fingerprint")
    if fingerprint in _VALID_FINGERPRINTS:
        kwargs["fingerprint"] = fingerprint
    elif fingerprint is not None:
        logger.warning("Unknown fingerprint %r in config.yml, using 'stat'", fingerprint)

    cache_section = data.get("cache")
    if isinstance(cache_section, dict):
        kwargs["cache_capacity"] = _positive_int(
            cache_section, "capacity", defaults.cache_capacity
        )

    kwargs["max_workers"] = _positive_int(data, "max_workers", defaults.max_workers)

    watch_section = data.get("watch")
    if isinstance(watch_section, dict):
        kwargs["debounce_ms"] = _positive_int(watch_section, "debounce_ms", defaults.debounce_ms)

    return WorkspaceConfig(**kwargs)  # type: ignore[arg-type]
