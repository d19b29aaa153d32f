"""Tests for tierloom.classification.globs."""

from __future__ import annotations

import pytest

from tierloom.classification.globs import compile_glob, match_glob


class TestMatchGlob:
    @pytest.mark.parametrize(
        ("path", "pattern"),
        [
            ("a.py", "*.py"),
            ("src/a.py", "src/*.py"),
            ("src/a.py", "**/*.py"),
            ("a.py", "**/*.py"),
            ("src/deep/er/a.py", "src/**/*.py"),
            ("src/a.py", "src/**/*.py"),
            ("build", "build/**"),
            ("build/x/y.o", "build/**"),
            ("a1.txt", "a?.txt"),
            ("ab.c", "a[bc].c"),
            ("ad.c", "a[!bc].c"),
            (".env", "*"),
            ("node_modules/x/index.js", "**/node_modules/**"),
        ],
    )
    def test_matches(self, path: str, pattern: str) -> None:
        assert match_glob(path, pattern)

    @pytest.mark.parametrize(
        ("path", "pattern"),
        [
            ("src/a.py", "*.py"),
            ("a/b.txt", "a?b.txt"),
            ("A.py", "a.py"),
            ("a.pyc", "*.py"),
            ("ab.c", "a[!bc].c"),
            ("buildx/y", "build/**"),
            ("src/a.py", "src"),
        ],
    )
    def test_non_matches(self, path: str, pattern: str) -> None:
        assert not match_glob(path, pattern)

    def test_regex_metacharacters_are_literal(self) -> None:
        assert match_glob("a+b(1).txt", "a+b(1).txt")
        assert not match_glob("aab1.txt", "a+b(1).txt")

    def test_unterminated_class_is_literal(self) -> None:
        assert match_glob("a[b", "a[b")

    def test_double_star_alone(self) -> None:
        assert match_glob("any/depth/file", "**")

    def test_compiled_patterns_cached(self) -> None:
        assert compile_glob("src/**") is compile_glob("src/**")
