"""Classification engine: pure line counting and tier assignment."""

# tierloom:domain=classification

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import TYPE_CHECKING

from tierloom.classification.globs import match_glob
from tierloom.paths import relative_posix

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tierloom.settings.models import EffectiveSettings, Thresholds

logger = logging.getLogger(__name__)

# Bytes inspected for NUL when deciding whether content is binary.
BINARY_SNIFF_BYTES = 8192

_TERMINATOR_RE = re.compile(r"\r\n|\r|\n")

_C_STYLE = ("//", "/*", "*/")
_HASH = ("#",)
_DASH_DASH = ("--",)

# Line-comment prefixes by file extension.  Unknown extensions have none.
_COMMENT_PREFIXES: dict[str, tuple[str, ...]] = {
    **dict.fromkeys(
        (
            ".js", ".ts", ".jsx", ".tsx", ".mjs", ".cjs", ".java", ".c", ".h",
            ".cpp", ".hpp", ".cc", ".cs", ".go", ".rs", ".swift", ".kt", ".scala",
            ".dart", ".groovy", ".m", ".v",
        ),
        _C_STYLE,
    ),
    **dict.fromkeys(
        (
            ".rb", ".sh", ".bash", ".zsh", ".fish", ".r", ".ex", ".exs", ".cr",
            ".tcl", ".awk", ".toml", ".yml", ".yaml", ".graphql", ".nim", ".jl",
        ),
        _HASH,
    ),
    **dict.fromkeys((".sql", ".hs", ".ada", ".adb", ".lua"), _DASH_DASH),
    ".py": ("#", '"""', "'''"),
    ".pyi": ("#", '"""', "'''"),
    ".php": ("//", "/*", "*/", "#"),
    ".pl": ("#", "=pod", "=cut"),
    ".ini": (";", "#"),
    ".cfg": (";", "#"),
    ".clj": (";", "#_"),
    ".scm": (";",),
    ".rkt": (";", "#|", "|#"),
    ".erl": ("%",),
    ".ml": ("(*", "*)"),
    ".fs": ("//", "(*", "*)"),
    ".pas": ("//", "{", "}", "(*", "*)"),
    ".vb": ("'", "REM"),
    ".zig": ("//",),
}


class Tier(str, enum.Enum):
    """Classification outcome."""

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


@dataclass(frozen=True)
class Classification:
    """Result of classifying one file's content.

    ``code_lines + comment_lines + blank_lines == line_count``.  The tier is
    always assigned from ``line_count``.
    """

    line_count: int
    tier: Tier
    code_lines: int = 0
    comment_lines: int = 0
    blank_lines: int = 0


def _as_text(content: bytes | str) -> str:
    if isinstance(content, bytes):
        return content.decode("utf-8", errors="replace")
    return content


def split_lines(content: bytes | str) -> list[str]:
    """Split *content* into lines on ``\\r\\n``, ``\\n`` or ``\\r``.

    One terminator at the very end closes the last line instead of opening
    a new one.  Empty content is a single empty line.
    """
    segments = _TERMINATOR_RE.split(_as_text(content))
    if len(segments) > 1 and not segments[-1]:
        segments.pop()
    return segments


def count_lines(content: bytes | str) -> int:
    """Count lines the way :func:`split_lines` splits them.

    ``"a\\n"`` and ``"a"`` both count as one line, and so do ``"\\n"``
    and ``""``.
    """
    return len(split_lines(content))


def comment_prefixes(file_path: str | None) -> tuple[str, ...]:
    """Return the line-comment prefixes for *file_path*'s extension."""
    if file_path is None:
        return ()
    return _COMMENT_PREFIXES.get(PurePath(file_path).suffix.lower(), ())


def is_binary(content: bytes) -> bool:
    """Return True if *content* looks binary (NUL byte near the start)."""
    return b"\x00" in content[:BINARY_SNIFF_BYTES]


def assign_tier(line_count: int, thresholds: Thresholds) -> Tier:
    """Map a line count to a tier.

    Only ``simple`` and ``complex`` are boundaries; ``moderate`` is carried
    as configuration but does not gate a tier.
    """
    if line_count < thresholds.simple:
        return Tier.SIMPLE
    if line_count < thresholds.complex:
        return Tier.MODERATE
    return Tier.COMPLEX


def classify(
    content: bytes | str,
    settings: EffectiveSettings,
    file_path: str | None = None,
) -> Classification:
    """Count lines in *content* and assign a tier under *settings*.

    *file_path* only selects comment prefixes for the code/comment/blank
    breakdown.
    """
    lines = split_lines(content)
    prefixes = comment_prefixes(file_path)
    blank = comment = 0
    for line in lines:
        stripped = line.strip()
        if not stripped:
            blank += 1
        elif prefixes and stripped.startswith(prefixes):
            comment += 1
    return Classification(
        line_count=len(lines),
        tier=assign_tier(len(lines), settings.thresholds),
        code_lines=len(lines) - blank - comment,
        comment_lines=comment,
        blank_lines=blank,
    )


def find_exclusion(path: str, patterns: Iterable[str]) -> str | None:
    """Return the first pattern matching the POSIX *path*, or None.

    Negated (``!``) patterns are not supported and never match.
    """
    for pattern in patterns:
        if pattern.startswith("!"):
            logger.debug("Ignoring unsupported negated pattern %r", pattern)
            continue
        if match_glob(path, pattern):
            return pattern
    return None


def exclusion_for(file_path: str, settings: EffectiveSettings) -> str | None:
    """Check *file_path* against ``settings.exclude``.

    Matching uses the path relative to the owning root (the absolute POSIX
    path for files outside every root).  A path matching any
    ``settings.include`` pattern is never excluded.  Returns the matching
    exclude pattern.
    """
    if not settings.exclude:
        return None
    rel = relative_posix(file_path, settings.root)
    pattern = find_exclusion(rel, settings.exclude)
    if pattern is None:
        return None
    if settings.include and find_exclusion(rel, settings.include) is not None:
        logger.debug("%s matches an include pattern; not excluded by %r", rel, pattern)
        return None
    return pattern
