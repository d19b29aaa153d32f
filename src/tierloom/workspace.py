"""Workspace: the resolver + cache pair with an explicit open/close lifecycle.

A :class:`Workspace` is created when a project is opened and handed by
reference to every consumer.  Change events flow in through
:meth:`Workspace.handle_event`; fragment changes are queued to a single
:class:`ScopeInvalidator` thread so that version bumps are applied one at a
time.
"""

# tierloom:domain=workspace

from __future__ import annotations

import enum
import logging
import os
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING

from tierloom.cache import ClassificationCache
from tierloom.classification.engine import exclusion_for
from tierloom.config import WorkspaceConfig, db_path, load_config
from tierloom.errors import FileReadError
from tierloom.paths import normalize_path
from tierloom.settings.models import THRESHOLD_FIELDS, ConfigFragment
from tierloom.settings.resolver import ConfigResolver
from tierloom.settings.store import (
    FRAGMENT_FILENAME,
    FileSettingsStore,
    SqliteSettingsStore,
    WritableSettingsStore,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from tierloom.cache import CacheEntry, FileSystem
    from tierloom.settings.models import EffectiveSettings
    from tierloom.settings.store import SettingsStore

logger = logging.getLogger(__name__)

# Directories never walked during a scan.
_SKIP_DIRS = frozenset({".git", ".hg", ".svn", ".tierloom"})


class ChangeKind(str, enum.Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    """A create/modify/delete notification for a source file or fragment."""

    kind: ChangeKind
    path: str


# ---------------------------------------------------------------------------
# Invalidation queue
# ---------------------------------------------------------------------------


class ScopeInvalidator:
    """Single worker thread that applies queued scope version bumps in order."""

    def __init__(self, resolver: ConfigResolver) -> None:
        self._resolver = resolver
        self._queue: queue.Queue[str | None] = queue.Queue()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(
            target=self._run, name="tierloom-invalidator", daemon=True
        )
        self._thread.start()

    def submit(self, scope_path: str) -> None:
        if not self.running:
            msg = "invalidator is not running"
            raise RuntimeError(msg)
        self._queue.put(scope_path)

    def join(self) -> None:
        """Block until every submitted bump has been applied."""
        self._queue.join()

    def stop(self) -> None:
        if not self.running:
            return
        self._queue.put(None)
        assert self._thread is not None
        self._thread.join()
        self._thread = None

    def _run(self) -> None:
        while True:
            scope_path = self._queue.get()
            try:
                if scope_path is None:
                    return
                self._resolver.invalidate_scope(scope_path)
            except Exception:
                logger.exception("Failed to invalidate scope %s", scope_path)
            finally:
                self._queue.task_done()


# ---------------------------------------------------------------------------
# Scan results
# ---------------------------------------------------------------------------


@dataclass
class ScanResult:
    """Outcome of a bulk scan.  Every scanned path lands in exactly one bucket."""

    entries: list[CacheEntry] = field(default_factory=list)
    excluded: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    not_classified: list[str] = field(default_factory=list)
    cancelled: bool = False

    def tier_counts(self) -> dict[str, int]:
        counts = {"simple": 0, "moderate": 0, "complex": 0}
        for entry in self.entries:
            counts[entry.tier.value] += 1
        return counts


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------


class Workspace:
    """Process-scoped owner of the resolver, the cache and the invalidator."""

    def __init__(
        self,
        roots: Iterable[str | Path],
        store: SettingsStore,
        *,
        config: WorkspaceConfig | None = None,
        filesystem: FileSystem | None = None,
    ) -> None:
        self.config = config or WorkspaceConfig()
        self.store = store
        self.resolver = ConfigResolver(store, roots)
        self.cache = ClassificationCache(
            self.resolver,
            capacity=self.config.cache_capacity,
            filesystem=filesystem,
            fingerprint_mode=self.config.fingerprint,
        )
        self._invalidator = ScopeInvalidator(self.resolver)
        self._invalidator.start()
        self._closed = False
        logger.info("Workspace opened with roots: %s", ", ".join(self.resolver.roots))

    @classmethod
    def open(cls, project_root: Path, *, config: WorkspaceConfig | None = None) -> Workspace:
        """Open the workspace for *project_root* using ``.tierloom/config.yml``."""
        cfg = config or load_config(project_root)
        roots = cfg.root_paths(project_root)
        store: SettingsStore
        if cfg.store == "sqlite":
            store = SqliteSettingsStore(db_path(project_root))
        else:
            store = FileSettingsStore(roots)
        return cls(roots, store, config=cfg)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._invalidator.stop()
        self.cache.clear()
        self.store.close()
        logger.info("Workspace closed")

    def __enter__(self) -> Workspace:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def roots(self) -> list[str]:
        return self.resolver.roots

    # -- queries ------------------------------------------------------------

    def get_effective_settings(self, file_path: str | Path) -> EffectiveSettings:
        return self.resolver.resolve(file_path)

    def get_classification(self, file_path: str | Path) -> CacheEntry | None:
        """Return the classification for *file_path*, computing it on a miss.

        Returns None for excluded and binary files.  Raises
        :class:`FileReadError` when the file cannot be read.
        """
        return self.cache.get_or_compute(str(file_path))

    def on_scope_version_changed(self, listener: Callable[[str, int], None]) -> Callable[[], None]:
        """Register *listener* for version bumps; returns an unsubscribe callable."""
        self.resolver.add_listener(listener)

        def _unsubscribe() -> None:
            self.resolver.remove_listener(listener)

        return _unsubscribe

    # -- change events ------------------------------------------------------

    def handle_event(self, event: ChangeEvent) -> None:
        """Route a watcher notification to scope invalidation or the cache."""
        path = normalize_path(event.path)
        scope = self.store.scope_for_path(path)
        if scope is not None:
            logger.debug("Fragment %s at %s", event.kind.value, scope)
            self._invalidator.submit(scope)
            return
        # Fingerprints catch content changes on their own; dropping the entry
        # early just frees the slot.
        self.cache.discard(path)

    def flush(self) -> None:
        """Wait until all queued scope invalidations are applied."""
        self._invalidator.join()

    # -- fragment writes ----------------------------------------------------

    def _writable_store(self) -> WritableSettingsStore:
        if not isinstance(self.store, WritableSettingsStore):
            msg = f"{type(self.store).__name__} does not accept fragment writes"
            raise TypeError(msg)
        return self.store

    def _scope_in_roots(self, scope_path: str | Path) -> str:
        scope = normalize_path(scope_path)
        if self.resolver.owning_root(scope) is None:
            msg = f"scope {scope} is outside every workspace root"
            raise ValueError(msg)
        return scope

    def _bump_now(self, scope: str) -> None:
        self._invalidator.submit(scope)
        self._invalidator.join()

    def save_fragment(self, fragment: ConfigFragment) -> ConfigFragment:
        """Persist *fragment* and bump its scope before returning."""
        store = self._writable_store()
        scope = self._scope_in_roots(fragment.scope_path)
        fragment = replace(fragment, scope_path=scope)
        store.save_fragment(fragment)
        self._bump_now(scope)
        return fragment

    def delete_fragment(self, scope_path: str | Path) -> bool:
        store = self._writable_store()
        scope = self._scope_in_roots(scope_path)
        removed = store.delete_fragment(scope)
        if removed:
            self._bump_now(scope)
        return removed

    def reset_field(self, scope_path: str | Path, field_name: str) -> ConfigFragment | None:
        """Drop one field (a threshold name, ``exclude`` or ``include``) from a scope's fragment.

        The fragment is deleted once nothing is left in it.  Returns the
        remaining fragment, or None if the scope no longer has one.
        """
        if field_name not in (*THRESHOLD_FIELDS, "exclude", "include"):
            msg = f"unknown field: {field_name}"
            raise ValueError(msg)
        scope = self._scope_in_roots(scope_path)
        fragment = self.store.load_fragment(scope)
        if fragment is None:
            return None

        values = fragment.defined_thresholds()
        values.pop(field_name, None)
        remaining = ConfigFragment(
            scope_path=scope,
            simple=values.get("simple"),
            moderate=values.get("moderate"),
            complex=values.get("complex"),
            exclude=() if field_name == "exclude" else fragment.exclude,
            include=() if field_name == "include" else fragment.include,
        )
        if remaining.is_empty():
            self.delete_fragment(scope)
            return None
        return self.save_fragment(remaining)

    # -- bulk scan ----------------------------------------------------------

    def iter_files(self) -> Iterator[str]:
        """Yield every regular file under the workspace roots, once."""
        seen: set[str] = set()
        for root in self.resolver.roots:
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS)
                for name in sorted(filenames):
                    if name == FRAGMENT_FILENAME:
                        continue
                    path = os.path.join(dirpath, name)
                    if path in seen or not os.path.isfile(path):
                        continue
                    seen.add(path)
                    yield path

    def scan(
        self,
        paths: Iterable[str | Path] | None = None,
        *,
        cancel: threading.Event | None = None,
        deadline: float | None = None,
    ) -> ScanResult:
        """Classify many files in parallel.

        *deadline* is a :func:`time.monotonic` timestamp; files not finished
        by then are reported in ``not_classified``.  Setting *cancel* stops
        the scan the same way.  Per-file read errors are collected in
        ``errors`` and never abort the batch.

        Once the deadline passes the scan returns without waiting for
        workers still inside a read.  They finish in the background under
        the stop signal, commit nothing, and their late results are dropped.
        """
        files = [normalize_path(p) for p in paths] if paths is not None else list(self.iter_files())
        result = ScanResult()
        stop = threading.Event()
        done: set[str] = set()
        record_lock = threading.Lock()
        sealed = False

        def _stopped() -> bool:
            if cancel is not None and cancel.is_set():
                stop.set()
            return stop.is_set()

        def _work(path: str) -> None:
            if _stopped():
                return
            settings = self.resolver.resolve(path)
            pattern = exclusion_for(path, settings)
            if pattern is not None:
                with record_lock:
                    if not sealed:
                        result.excluded[path] = pattern
                        done.add(path)
                return
            try:
                entry = self.cache.get_or_compute(path, cancel=stop)
            except FileReadError as exc:
                logger.warning("Cannot classify %s: %s", path, exc.reason)
                with record_lock:
                    if not sealed:
                        result.errors[path] = exc.reason
                        done.add(path)
                return
            if entry is None and _stopped():
                return
            with record_lock:
                if sealed:
                    return
                if entry is None:
                    result.skipped.append(path)
                else:
                    result.entries.append(entry)
                done.add(path)

        executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="tierloom-scan"
        )
        timed_out = False
        try:
            futures = {executor.submit(_work, p): p for p in files}
            timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                for future in as_completed(futures, timeout=timeout):
                    try:
                        future.result()
                    except Exception as exc:
                        path = futures[future]
                        logger.exception("Unexpected failure classifying %s", path)
                        with record_lock:
                            result.errors[path] = str(exc)
                            done.add(path)
            except FuturesTimeoutError:
                logger.info("Scan deadline reached; stopping remaining work")
                timed_out = True
                stop.set()
        finally:
            executor.shutdown(wait=not timed_out, cancel_futures=True)

        with record_lock:
            sealed = True
        result.cancelled = stop.is_set() or (cancel is not None and cancel.is_set())
        result.not_classified = sorted(p for p in files if p not in done)
        result.entries.sort(key=lambda e: e.file_path)
        result.skipped.sort()
        return result
