"""Persistent stores of configuration fragments, one fragment per directory scope."""

# tierloom:domain=settings

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import yaml

from tierloom.errors import MalformedFragmentError
from tierloom.infrastructure.db import (
    SCHEMA_VERSION,
    create_schema,
    get_meta,
    open_db,
    set_meta,
)
from tierloom.paths import normalize_path
from tierloom.settings.models import ConfigFragment

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

# Name of the per-directory fragment file read by FileSettingsStore.
FRAGMENT_FILENAME = ".tierloom.yml"

# Directories never searched for fragment files.
_SKIP_DIRS = frozenset({".git", ".hg", ".svn", ".tierloom"})


class SettingsStore(Protocol):
    """Keyed store of configuration fragments.

    ``load_fragment`` returns ``None`` when a scope has no fragment and raises
    :class:`MalformedFragmentError` when one exists but is unusable.
    """

    def load_fragment(self, scope_path: str) -> ConfigFragment | None: ...

    def list_known_scopes(self) -> set[str]: ...

    def scope_for_path(self, path: str) -> str | None:
        """Return the scope a changed filesystem *path* configures, if any."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class WritableSettingsStore(SettingsStore, Protocol):
    """A :class:`SettingsStore` that also accepts fragment writes."""

    def save_fragment(self, fragment: ConfigFragment) -> None: ...

    def delete_fragment(self, scope_path: str) -> bool: ...


# ---------------------------------------------------------------------------
# YAML fragment files
# ---------------------------------------------------------------------------


class FileSettingsStore:
    """``.tierloom.yml`` files placed in the directories they govern."""

    def __init__(self, roots: Iterable[str | Path]) -> None:
        self._roots = [normalize_path(r) for r in roots]

    def _fragment_path(self, scope_path: str) -> Path:
        return Path(scope_path) / FRAGMENT_FILENAME

    def load_fragment(self, scope_path: str) -> ConfigFragment | None:
        path = self._fragment_path(scope_path)
        if not path.is_file():
            return None
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise MalformedFragmentError(scope_path, f"invalid YAML: {exc}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise MalformedFragmentError(scope_path, f"unreadable fragment: {exc}") from exc
        # The file's location is authoritative; a `scope:` key is informational.
        return ConfigFragment.from_mapping(scope_path, data)

    def list_known_scopes(self) -> set[str]:
        scopes: set[str] = set()
        for root in self._roots:
            root_path = Path(root)
            if not root_path.is_dir():
                continue
            for candidate in root_path.rglob(FRAGMENT_FILENAME):
                rel_parts = candidate.relative_to(root_path).parts[:-1]
                if any(part in _SKIP_DIRS for part in rel_parts):
                    continue
                if candidate.is_file():
                    scopes.add(str(candidate.parent))
        return scopes

    def scope_for_path(self, path: str) -> str | None:
        p = Path(path)
        if p.name != FRAGMENT_FILENAME:
            return None
        return str(p.parent)

    def save_fragment(self, fragment: ConfigFragment) -> None:
        """Write the fragment file for ``fragment.scope_path``."""
        path = self._fragment_path(fragment.scope_path)
        body: dict[str, object] = {}
        if fragment.defined_thresholds():
            body["thresholds"] = fragment.defined_thresholds()
        if fragment.exclude:
            body["exclude"] = list(fragment.exclude)
        if fragment.include:
            body["include"] = list(fragment.include)
        with path.open("w", encoding="utf-8") as fh:
            yaml.safe_dump(body, fh, default_flow_style=False, sort_keys=False)
        logger.debug("Wrote %s", path)

    def delete_fragment(self, scope_path: str) -> bool:
        path = self._fragment_path(scope_path)
        if not path.is_file():
            return False
        path.unlink()
        return True

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# SQLite-backed store
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


class SqliteSettingsStore:
    """Fragments kept in a single SQLite database, keyed by scope path.

    One connection is shared between threads; every statement runs under
    ``self._lock``.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = open_db(self._db_path, check_same_thread=False)
        create_schema(self._conn)
        stored = get_meta(self._conn, "schema_version")
        if stored is None:
            set_meta(self._conn, "schema_version", SCHEMA_VERSION)
        elif stored != SCHEMA_VERSION:
            # Left as recorded; fragments are still parsed and validated on load.
            logger.warning(
                "%s has schema version %s, expected %s", self._db_path, stored, SCHEMA_VERSION
            )

    @property
    def db_path(self) -> Path:
        return self._db_path

    def load_fragment(self, scope_path: str) -> ConfigFragment | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT body FROM fragments WHERE scope_path = ?", (scope_path,)
            ).fetchone()
        if row is None:
            return None
        try:
            data = json.loads(row["body"])
        except json.JSONDecodeError as exc:
            raise MalformedFragmentError(scope_path, f"invalid JSON body: {exc}") from exc
        return ConfigFragment.from_mapping(scope_path, data)

    def list_known_scopes(self) -> set[str]:
        with self._lock:
            rows = self._conn.execute("SELECT scope_path FROM fragments").fetchall()
        return {str(r["scope_path"]) for r in rows}

    def scope_for_path(self, path: str) -> str | None:
        # Writes go through save_fragment/delete_fragment, never the filesystem.
        return None

    def save_fragment(self, fragment: ConfigFragment) -> None:
        """Insert or replace the fragment for ``fragment.scope_path``."""
        body = {
            "thresholds": fragment.defined_thresholds(),
            "exclude": list(fragment.exclude),
            "include": list(fragment.include),
        }
        with self._lock:
            self._conn.execute(
                "INSERT INTO fragments (scope_path, body, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(scope_path) DO UPDATE SET "
                "body = excluded.body, updated_at = excluded.updated_at",
                (fragment.scope_path, json.dumps(body), _now_iso()),
            )
            self._conn.commit()
        logger.debug("Saved fragment for %s", fragment.scope_path)

    def delete_fragment(self, scope_path: str) -> bool:
        """Remove a scope's fragment.  Returns False if there was none."""
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM fragments WHERE scope_path = ?", (scope_path,)
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def close(self) -> None:
        with self._lock:
            self._conn.close()
