"""Glob-to-regex translation for exclude patterns.

Semantics: case-sensitive; ``*`` and ``?`` never cross a ``/``; ``**``
spans any number of path segments (including none); dotfiles are matched
like any other name.  Patterns are anchored at both ends.
"""

# tierloom:domain=classification

from __future__ import annotations

import functools
import re


def _translate_class(pattern: str, start: int) -> tuple[str, int] | None:
    """Translate a ``[...]`` class starting at *start*; None if unterminated."""
    i = start + 1
    negate = False
    if i < len(pattern) and pattern[i] in "!^":
        negate = True
        i += 1
    # A leading ']' is a literal member.
    if i < len(pattern) and pattern[i] == "]":
        i += 1
    end = pattern.find("]", i)
    if end == -1:
        return None
    body = pattern[start + 1 + (1 if negate else 0) : end].replace("\\", "\\\\")
    body = body.replace("[", "\\[").replace("]", "\\]").replace("/", "")
    if not body:
        return None
    prefix = "^/" if negate else ""
    return f"[{prefix}{body}]", end + 1


def _translate(pattern: str) -> str:
    out: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        ch = pattern[i]
        if ch == "*":
            if pattern.startswith("**", i):
                at_segment_start = i == 0 or pattern[i - 1] == "/"
                after = i + 2
                if at_segment_start and after < n and pattern[after] == "/":
                    # "**/" : zero or more leading directories.
                    out.append("(?:.*/)?")
                    i = after + 1
                    continue
                if at_segment_start and after == n and out and out[-1] == "/":
                    # "/**" at the end: the directory itself or anything below it.
                    out.pop()
                    out.append("(?:/.*)?")
                    i = after
                    continue
                out.append(".*")
                i = after
                continue
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "[":
            translated = _translate_class(pattern, i)
            if translated is None:
                out.append(re.escape(ch))
            else:
                cls, i = translated
                out.append(cls)
                continue
        else:
            out.append(re.escape(ch))
        i += 1
    return "".join(out)


@functools.lru_cache(maxsize=1024)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile *pattern* into an anchored, case-sensitive regex."""
    return re.compile(rf"\A{_translate(pattern)}\Z")


def match_glob(path: str, pattern: str) -> bool:
    """Return True if the POSIX *path* matches *pattern* in full."""
    return compile_glob(pattern).match(path) is not None
