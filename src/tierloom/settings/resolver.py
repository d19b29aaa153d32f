"""Hierarchical settings resolution across one or more workspace roots.

Each directory is a :class:`ScopeNode`.  Nodes are created lazily the first
time a path beneath them is resolved, and link to their parent with a plain
(non-owning) reference.  Resolution walks from a file's directory up to the
owning root, collects the scopes that hold a valid fragment, and merges them
field by field: the nearest scope that sets a threshold wins, exclude and
include patterns accumulate root-first with duplicates dropped.
"""

# tierloom:domain=settings

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

from tierloom.errors import MalformedFragmentError
from tierloom.paths import is_within, normalize_path
from tierloom.settings.models import (
    DEFAULT_EXCLUDES,
    DEFAULT_THRESHOLDS,
    DEFAULT_VERSION,
    THRESHOLD_FIELDS,
    ConfigFragment,
    EffectiveSettings,
    Thresholds,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from tierloom.settings.store import SettingsStore

    VersionListener = Callable[[str, int], None]

logger = logging.getLogger(__name__)

# Gap applied when merged thresholds end up with simple >= complex.
_COMPLEX_REPAIR_GAP = 100

_UNLOADED = object()


class ScopeNode:
    """A directory that may own a configuration fragment."""

    __slots__ = ("_fragment", "_lock", "_version", "parent", "path", "root")

    def __init__(self, path: str, root: str, parent: ScopeNode | None) -> None:
        self.path = path
        self.root = root
        self.parent = parent
        self._version = DEFAULT_VERSION
        self._fragment: object = _UNLOADED
        self._lock = threading.Lock()

    @property
    def version(self) -> int:
        return self._version

    def bump(self) -> int:
        """Increment the version counter and drop the memoised fragment."""
        with self._lock:
            self._version += 1
            self._fragment = _UNLOADED
            return self._version

    def load(self, store: SettingsStore) -> tuple[ConfigFragment | None, int]:
        """Return the scope's fragment (memoised) and the version it was read at.

        Raises :class:`MalformedFragmentError` for unusable fragments; those
        are not memoised so that a later fix is picked up even without an
        explicit bump.
        """
        with self._lock:
            cached = self._fragment
            version = self._version
        if cached is not _UNLOADED:
            return cached, version  # type: ignore[return-value]

        fragment = store.load_fragment(self.path)
        with self._lock:
            # A bump while loading means the read may be stale; skip memoising.
            if self._version == version:
                self._fragment = fragment
        return fragment, version

    def __repr__(self) -> str:
        return f"ScopeNode({self.path!r}, version={self._version})"


class ConfigResolver:
    """Resolves :class:`EffectiveSettings` for file paths.

    The resolver owns the scope tree and is the only writer of scope
    version counters.  ``resolve`` is safe to call from many threads.
    """

    def __init__(self, store: SettingsStore, roots: Iterable[str | Path]) -> None:
        self._store = store
        # Deepest roots first so nested roots win.
        self._roots = sorted(
            {normalize_path(r) for r in roots}, key=lambda r: len(Path(r).parts), reverse=True
        )
        self._nodes: dict[str, ScopeNode] = {}
        self._nodes_lock = threading.Lock()
        self._listeners: list[VersionListener] = []

    @property
    def roots(self) -> list[str]:
        return list(self._roots)

    @property
    def store(self) -> SettingsStore:
        return self._store

    # -- scope tree ---------------------------------------------------------

    def owning_root(self, path: str | Path) -> str | None:
        """Return the deepest workspace root containing *path*, or None."""
        normalized = normalize_path(path)
        for root in self._roots:
            if is_within(normalized, root):
                return root
        return None

    def _node(self, directory: str, root: str) -> ScopeNode:
        with self._nodes_lock:
            node = self._nodes.get(directory)
            if node is not None:
                return node

        parent: ScopeNode | None = None
        if directory != root:
            parent = self._node(str(Path(directory).parent), root)

        with self._nodes_lock:
            node = self._nodes.get(directory)
            if node is None:
                node = ScopeNode(directory, root, parent)
                self._nodes[directory] = node
            return node

    def scope_node(self, scope_path: str | Path) -> ScopeNode | None:
        """Return (creating if needed) the node for a directory inside a root."""
        directory = normalize_path(scope_path)
        root = self.owning_root(directory)
        if root is None:
            return None
        return self._node(directory, root)

    def current_version(self, scope_path: str | Path) -> int:
        node = self.scope_node(scope_path)
        return DEFAULT_VERSION if node is None else node.version

    # -- resolution ---------------------------------------------------------

    def resolve_chain(
        self, file_path: str | Path
    ) -> tuple[list[tuple[ConfigFragment, int]], dict[str, str]]:
        """Collect valid fragments from the owning root down to the file's directory.

        Returns ``(chain, warnings)`` where *chain* holds ``(fragment,
        version)`` pairs ordered outermost first and *warnings* maps each
        skipped scope to the reason its fragment was rejected.
        """
        normalized = normalize_path(file_path)
        root = self.owning_root(normalized)
        if root is None:
            return [], {}

        directory = normalized if normalized == root else str(Path(normalized).parent)
        node: ScopeNode | None = self._node(directory, root)

        chain: list[tuple[ConfigFragment, int]] = []
        warnings: dict[str, str] = {}
        while node is not None:
            try:
                fragment, version = node.load(self._store)
            except MalformedFragmentError as exc:
                logger.warning("Skipping malformed fragment at %s: %s", node.path, exc.reason)
                warnings[node.path] = exc.reason
                fragment = None
                version = node.version
            if fragment is not None and not fragment.is_empty():
                chain.append((fragment, version))
            node = node.parent

        chain.reverse()
        return chain, warnings

    def resolve(self, file_path: str | Path) -> EffectiveSettings:
        """Return the effective settings for *file_path*.

        Never raises for a well-formed path: malformed fragments are skipped
        and reported in ``warnings``; paths outside every root get defaults.
        """
        chain, warnings = self.resolve_chain(file_path)
        root = self.owning_root(file_path)
        if not chain:
            return EffectiveSettings(root=root, warnings=warnings)

        values: dict[str, int] = {}
        threshold_sources: dict[str, str] = {}
        exclude_sources: dict[str, str] = {}
        include_sources: dict[str, str] = {}

        for fragment, _version in chain:
            for name, value in fragment.defined_thresholds().items():
                # Later (nearer) scopes overwrite earlier ones.
                values[name] = value
                threshold_sources[name] = fragment.scope_path
            for pattern in fragment.exclude:
                exclude_sources.setdefault(pattern, fragment.scope_path)
            for pattern in fragment.include:
                include_sources.setdefault(pattern, fragment.scope_path)

        # dicts keep first-insertion order: root-first, deduplicated.
        exclude = tuple(exclude_sources) if exclude_sources else DEFAULT_EXCLUDES

        defaults = DEFAULT_THRESHOLDS.to_dict()
        merged = {name: values.get(name, defaults[name]) for name in THRESHOLD_FIELDS}
        thresholds = Thresholds(**merged)
        if thresholds.simple >= thresholds.complex:
            repaired = thresholds.simple + _COMPLEX_REPAIR_GAP
            reason = (
                f"merged thresholds.simple ({thresholds.simple}) is not lower than "
                f"thresholds.complex ({thresholds.complex}); using complex={repaired}"
            )
            logger.warning("%s: %s", file_path, reason)
            nearest_scope = chain[-1][0].scope_path
            warnings = {**warnings, nearest_scope: reason}
            thresholds = replace(thresholds, complex=repaired)

        nearest, nearest_version = chain[-1]
        return EffectiveSettings(
            thresholds=thresholds,
            exclude=exclude,
            include=tuple(include_sources),
            resolving_scope=nearest.scope_path,
            resolving_scope_version=nearest_version,
            version_token=tuple((f.scope_path, v) for f, v in chain),
            root=root,
            threshold_sources=threshold_sources,
            exclude_sources=exclude_sources,
            include_sources=include_sources,
            warnings=warnings,
        )

    # -- invalidation -------------------------------------------------------

    def invalidate_scope(self, scope_path: str | Path) -> int | None:
        """Bump a scope's version after its fragment was created, changed, or removed.

        Returns the new version, or ``None`` when the scope lies outside
        every root.  Listeners are notified after the bump is visible.
        """
        node = self.scope_node(scope_path)
        if node is None:
            logger.debug("Ignoring invalidation outside workspace roots: %s", scope_path)
            return None
        new_version = node.bump()
        logger.debug("Scope %s bumped to version %d", node.path, new_version)
        self._notify(node.path, new_version)
        return new_version

    def add_listener(self, listener: VersionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: VersionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, scope_path: str, new_version: int) -> None:
        for listener in list(self._listeners):
            try:
                listener(scope_path, new_version)
            except Exception:
                logger.exception("Scope version listener failed for %s", scope_path)
