"""File watcher: feed filesystem changes into a workspace."""

# tierloom:domain=infrastructure

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from tierloom.settings.store import FRAGMENT_FILENAME
from tierloom.workspace import ChangeEvent, ChangeKind

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable, Iterable

    from tierloom.workspace import Workspace

DEFAULT_DEBOUNCE_MS = 500

# watchfiles.Change values: added=1, modified=2, deleted=3.
_CHANGE_KINDS: dict[int, ChangeKind] = {
    1: ChangeKind.CREATED,
    2: ChangeKind.MODIFIED,
    3: ChangeKind.DELETED,
}

_IGNORED_DIRS = frozenset({".git", ".hg", ".svn", ".tierloom"})


def _is_ignored(path: Path, roots: Iterable[str]) -> bool:
    """Temp files and anything inside VCS or tierloom state directories."""
    if path.name.startswith("~") or path.name.endswith(".tmp"):
        return True
    for root in roots:
        try:
            rel = path.relative_to(root)
        except ValueError:
            continue
        return any(part in _IGNORED_DIRS for part in rel.parts[:-1])
    # Outside every root.
    return True


def to_events(
    changes: Iterable[tuple[object, str]],
    roots: Iterable[str],
) -> list[ChangeEvent]:
    """Translate a raw watchfiles batch into :class:`ChangeEvent` objects.

    Fragment events come first so that scope bumps are queued before the
    source-file events of the same batch are handled.
    """
    root_list = list(roots)
    fragments: list[ChangeEvent] = []
    sources: list[ChangeEvent] = []
    for change_type, path_str in changes:
        kind = _CHANGE_KINDS.get(int(change_type))  # type: ignore[call-overload]
        if kind is None:
            continue
        p = Path(path_str)
        if _is_ignored(p, root_list):
            continue
        event = ChangeEvent(kind=kind, path=path_str)
        if p.name == FRAGMENT_FILENAME:
            fragments.append(event)
        else:
            sources.append(event)
    sources.sort(key=lambda e: e.path)
    fragments.sort(key=lambda e: e.path)
    return fragments + sources


def _format_time() -> str:
    """Return current time as ``HH:MM:SS`` string."""
    return datetime.now(tz=timezone.utc).strftime("%H:%M:%S")


@dataclass(frozen=True)
class WatchBatch:
    """One debounced batch of relevant events."""

    events: tuple[ChangeEvent, ...]
    fragment_changes: int
    timestamp: str


def watch(
    workspace: Workspace,
    debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    callback: Callable[[WatchBatch], None] | None = None,
    stop_event: threading.Event | None = None,
) -> None:
    """Watch the workspace roots and push change events into *workspace*.

    Blocks until interrupted or *stop_event* is set.  Requires
    ``watchfiles`` (optional dependency).
    """
    from watchfiles import watch as fs_watch

    roots = workspace.roots
    for batch in fs_watch(*roots, debounce=debounce_ms, stop_event=stop_event):
        events = to_events(batch, roots)
        if not events:
            continue
        for event in events:
            workspace.handle_event(event)
        if callback is not None:
            callback(
                WatchBatch(
                    events=tuple(events),
                    fragment_changes=sum(
                        1 for e in events if Path(e.path).name == FRAGMENT_FILENAME
                    ),
                    timestamp=_format_time(),
                )
            )
