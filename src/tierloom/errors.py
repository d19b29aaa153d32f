"""Error types shared across tierloom."""

# tierloom:domain=core

from __future__ import annotations


class TierloomError(Exception):
    """Base class for all tierloom errors."""


class MalformedFragmentError(TierloomError, ValueError):
    """A persisted configuration fragment exists but cannot be used."""

    def __init__(self, scope_path: str, reason: str) -> None:
        self.scope_path = scope_path
        self.reason = reason
        super().__init__(f"{scope_path}: {reason}")


class FileReadError(TierloomError):
    """A source file could not be stat'ed or read."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")
