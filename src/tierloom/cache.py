"""Bounded in-memory cache of per-file classifications.

An entry is valid only while the file's fingerprint and the version token of
its resolving scopes both match what was recorded at commit time.  Validity
is checked lazily on read, so a configuration edit never needs a walk over
the files beneath the edited scope.
"""

# tierloom:domain=cache

from __future__ import annotations

import hashlib
import logging
import os
import threading
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from tierloom.classification.engine import Tier, classify, exclusion_for, is_binary
from tierloom.errors import FileReadError
from tierloom.paths import normalize_path

if TYPE_CHECKING:
    from tierloom.settings.models import EffectiveSettings
    from tierloom.settings.resolver import ConfigResolver

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10_000

FINGERPRINT_MODES = frozenset({"stat", "hash"})


@dataclass(frozen=True)
class FileStat:
    size: int
    mtime_ns: int


class FileSystem(Protocol):
    """Filesystem operations the cache depends on."""

    def read_file(self, path: str) -> bytes: ...

    def stat(self, path: str) -> FileStat: ...


class LocalFileSystem:
    """:class:`FileSystem` backed by the local disk."""

    def read_file(self, path: str) -> bytes:
        return Path(path).read_bytes()

    def stat(self, path: str) -> FileStat:
        st = os.stat(path)
        return FileStat(size=st.st_size, mtime_ns=st.st_mtime_ns)


@dataclass(frozen=True)
class CacheEntry:
    """A committed classification for one file."""

    file_path: str
    fingerprint: str
    line_count: int
    tier: Tier
    resolving_scope_version: int
    resolving_scope: str | None = None
    version_token: tuple[tuple[str, int], ...] = ()
    code_lines: int = 0
    comment_lines: int = 0
    blank_lines: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_path": self.file_path,
            "fingerprint": self.fingerprint,
            "line_count": self.line_count,
            "code_lines": self.code_lines,
            "comment_lines": self.comment_lines,
            "blank_lines": self.blank_lines,
            "tier": self.tier.value,
            "resolving_scope": self.resolving_scope,
            "resolving_scope_version": self.resolving_scope_version,
        }


class _Flight:
    """One in-progress computation that concurrent requesters wait on."""

    __slots__ = ("cancelled", "done", "entry", "error")

    def __init__(self) -> None:
        self.done = threading.Event()
        self.entry: CacheEntry | None = None
        self.error: Exception | None = None
        self.cancelled = False


class ClassificationCache:
    """LRU cache of :class:`CacheEntry` objects with single-flight computation.

    At most one computation per file runs at a time; other callers asking for
    the same file wait for its result.  Entries are committed only after a
    complete, uncancelled computation.
    """

    def __init__(
        self,
        resolver: ConfigResolver,
        *,
        capacity: int = DEFAULT_CAPACITY,
        filesystem: FileSystem | None = None,
        fingerprint_mode: str = "stat",
    ) -> None:
        if capacity <= 0:
            msg = f"capacity must be positive, got {capacity}"
            raise ValueError(msg)
        if fingerprint_mode not in FINGERPRINT_MODES:
            msg = f"unknown fingerprint mode: {fingerprint_mode}"
            raise ValueError(msg)
        self._resolver = resolver
        self._capacity = capacity
        self._fs: FileSystem = filesystem or LocalFileSystem()
        self._fingerprint_mode = fingerprint_mode
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._inflight: dict[str, _Flight] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._computations = 0
        self._evictions = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    # -- fingerprints -------------------------------------------------------

    def _read(self, path: str) -> bytes:
        try:
            return self._fs.read_file(path)
        except OSError as exc:
            raise FileReadError(path, exc.strerror or str(exc)) from exc

    def _stat_fingerprint(self, path: str) -> str:
        try:
            st = self._fs.stat(path)
        except OSError as exc:
            raise FileReadError(path, exc.strerror or str(exc)) from exc
        return f"{st.size}-{st.mtime_ns}"

    @staticmethod
    def _hash_fingerprint(content: bytes) -> str:
        return "sha256:" + hashlib.sha256(content).hexdigest()

    def fingerprint(self, file_path: str) -> str:
        """Return the current fingerprint of *file_path*.

        Raises :class:`FileReadError` if the file cannot be inspected.
        """
        path = normalize_path(file_path)
        if self._fingerprint_mode == "hash":
            return self._hash_fingerprint(self._read(path))
        return self._stat_fingerprint(path)

    # -- reads --------------------------------------------------------------

    def _valid_entry(self, path: str) -> CacheEntry | None:
        """Return the committed entry for *path* if still valid, dropping it if stale."""
        with self._lock:
            entry = self._entries.get(path)
        if entry is None:
            return None

        try:
            current = self.fingerprint(path)
        except FileReadError:
            self._drop(path, entry)
            return None

        settings = self._resolver.resolve(path)
        if current != entry.fingerprint or settings.version_token != entry.version_token:
            logger.debug("Stale cache entry for %s", path)
            self._drop(path, entry)
            return None
        return entry

    def _record_hit(self, path: str) -> None:
        with self._lock:
            if path in self._entries:
                self._entries.move_to_end(path)
            self._hits += 1

    def get(self, file_path: str) -> CacheEntry | None:
        """Return the entry for *file_path* if it is still valid, else None.

        Stale entries (changed fingerprint or changed scope versions) are
        dropped on the way out.
        """
        path = normalize_path(file_path)
        entry = self._valid_entry(path)
        if entry is None:
            self._record_miss()
            return None
        self._record_hit(path)
        return entry

    def get_or_compute(
        self, file_path: str, *, cancel: threading.Event | None = None
    ) -> CacheEntry | None:
        """Return a valid entry, computing it on a miss.

        Returns None for excluded or binary files and for cancelled work.
        """
        entry = self.get(file_path)
        if entry is not None:
            return entry
        return self.compute_and_store(file_path, cancel=cancel)

    # -- computation --------------------------------------------------------

    def compute_and_store(
        self, file_path: str, *, cancel: threading.Event | None = None
    ) -> CacheEntry | None:
        """Classify *file_path* and commit the result.

        Concurrent calls for the same file share one computation, and a
        caller that takes over after another flight committed a still-valid
        entry returns that entry instead of classifying again.  Raises
        :class:`FileReadError` when the file cannot be read.
        """
        path = normalize_path(file_path)
        while True:
            with self._lock:
                flight = self._inflight.get(path)
                owner = flight is None
                if flight is None:
                    flight = _Flight()
                    self._inflight[path] = flight

            if owner:
                return self._run_flight(path, flight, cancel)

            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            if not flight.cancelled:
                return flight.entry
            # The owner was cancelled; compute ourselves unless we are too.
            if cancel is not None and cancel.is_set():
                return None

    def _run_flight(
        self, path: str, flight: _Flight, cancel: threading.Event | None
    ) -> CacheEntry | None:
        try:
            # A flight that finished between our miss and taking ownership
            # may already have committed a valid entry.
            entry = self._valid_entry(path)
            if entry is not None:
                self._record_hit(path)
            else:
                entry = self._compute(path, flight, cancel)
            flight.entry = entry
            return entry
        except Exception as exc:
            flight.error = exc
            raise
        finally:
            with self._lock:
                self._inflight.pop(path, None)
            flight.done.set()

    def _compute(
        self, path: str, flight: _Flight, cancel: threading.Event | None
    ) -> CacheEntry | None:
        # Fingerprint first: a change during the read leaves a stale entry
        # that the next get() rejects, never a fresh-looking wrong one.
        stat_fingerprint = None
        if self._fingerprint_mode == "stat":
            stat_fingerprint = self._stat_fingerprint(path)

        settings = self._resolver.resolve(path)
        if self._skip_excluded(path, settings):
            return None

        content = self._read(path)
        fingerprint = stat_fingerprint or self._hash_fingerprint(content)
        if is_binary(content):
            logger.debug("Skipping binary file %s", path)
            self._drop(path)
            return None

        result = classify(content, settings, path)
        if cancel is not None and cancel.is_set():
            flight.cancelled = True
            logger.debug("Discarding cancelled computation for %s", path)
            return None

        entry = CacheEntry(
            file_path=path,
            fingerprint=fingerprint,
            line_count=result.line_count,
            tier=result.tier,
            resolving_scope_version=settings.resolving_scope_version,
            resolving_scope=settings.resolving_scope,
            version_token=settings.version_token,
            code_lines=result.code_lines,
            comment_lines=result.comment_lines,
            blank_lines=result.blank_lines,
        )
        self._commit(entry)
        return entry

    def _skip_excluded(self, path: str, settings: EffectiveSettings) -> bool:
        pattern = exclusion_for(path, settings)
        if pattern is None:
            return False
        logger.debug("Excluded %s by pattern %r", path, pattern)
        self._drop(path)
        return True

    # -- table maintenance --------------------------------------------------

    def _commit(self, entry: CacheEntry) -> None:
        with self._lock:
            self._computations += 1
            self._entries[entry.file_path] = entry
            self._entries.move_to_end(entry.file_path)
            while len(self._entries) > self._capacity:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("Evicted %s", evicted)

    def _drop(self, path: str, expected: CacheEntry | None = None) -> None:
        with self._lock:
            current = self._entries.get(path)
            if current is None:
                return
            # Never drop an entry committed after the caller looked.
            if expected is None or current is expected:
                del self._entries[path]

    def _record_miss(self) -> None:
        with self._lock:
            self._misses += 1

    def discard(self, file_path: str) -> None:
        """Forget any entry for *file_path* (e.g. after it was deleted)."""
        self._drop(normalize_path(file_path))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, file_path: object) -> bool:
        if not isinstance(file_path, (str, Path)):
            return False
        with self._lock:
            return normalize_path(file_path) in self._entries

    def stats(self) -> dict[str, int]:
        """Return cache statistics."""
        with self._lock:
            return {
                "entries": len(self._entries),
                "capacity": self._capacity,
                "hits": self._hits,
                "misses": self._misses,
                "computations": self._computations,
                "evictions": self._evictions,
                "in_flight": len(self._inflight),
            }
