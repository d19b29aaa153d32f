"""Path normalization helpers shared by the settings and cache layers."""

# tierloom:domain=core

from __future__ import annotations

from pathlib import Path, PurePosixPath


def normalize_path(path: str | Path) -> str:
    """Return an absolute, symlink-resolved string form of *path*.

    The path does not need to exist.
    """
    return str(Path(path).expanduser().resolve())


def relative_posix(path: str, base: str | None) -> str:
    """Return *path* relative to *base* using ``/`` separators.

    Falls back to the absolute POSIX form when *base* is ``None`` or does not
    contain *path*.
    """
    target = Path(path)
    if base is not None:
        try:
            return target.relative_to(base).as_posix()
        except ValueError:
            pass
    return PurePosixPath(target.as_posix()).as_posix()


def is_within(path: str, directory: str) -> bool:
    """Return True if *path* equals *directory* or lies beneath it."""
    try:
        Path(path).relative_to(directory)
    except ValueError:
        return False
    return True
