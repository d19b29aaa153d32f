"""Tests for tierloom.classification.engine: line counting and tiers."""

from __future__ import annotations

import pytest

from tierloom.classification.engine import (
    BINARY_SNIFF_BYTES,
    Tier,
    assign_tier,
    classify,
    count_lines,
    exclusion_for,
    find_exclusion,
    is_binary,
)
from tierloom.settings.models import EffectiveSettings, Thresholds


class TestCountLines:
    @pytest.mark.parametrize(
        ("content", "expected"),
        [
            (b"", 1),
            (b"a", 1),
            (b"a\n", 1),
            (b"a\nb", 2),
            (b"a\nb\n", 2),
            (b"a\r\nb\r\n", 2),
            (b"a\rb\r", 2),
            (b"a\r\nb\nc\rd", 4),
            (b"\n", 1),
            (b"\n\n", 2),
            (b"a\n\n", 2),
        ],
    )
    def test_terminators(self, content: bytes, expected: int) -> None:
        assert count_lines(content) == expected

    def test_str_content(self) -> None:
        assert count_lines("one\ntwo\r\nthree") == 3

    def test_crlf_counts_once(self) -> None:
        assert count_lines(b"x\r\n" * 10) == count_lines(b"x\n" * 10) == 10

    @pytest.mark.parametrize("content", [b"", b"a", b"a\r\nb"])
    def test_trailing_newline_adds_no_line(self, content: bytes) -> None:
        assert count_lines(content + b"\n") == count_lines(content)


class TestAssignTier:
    @pytest.mark.parametrize(
        ("lines", "tier"),
        [
            (0, Tier.SIMPLE),
            (99, Tier.SIMPLE),
            (100, Tier.MODERATE),
            (599, Tier.MODERATE),
            (600, Tier.COMPLEX),
            (10_000, Tier.COMPLEX),
        ],
    )
    def test_default_boundaries(self, lines: int, tier: Tier) -> None:
        assert assign_tier(lines, Thresholds()) is tier

    def test_moderate_threshold_does_not_gate(self) -> None:
        low = Thresholds(simple=100, moderate=101, complex=600)
        high = Thresholds(simple=100, moderate=5000, complex=600)
        for lines in (150, 400, 599):
            assert assign_tier(lines, low) is assign_tier(lines, high) is Tier.MODERATE

    def test_tier_values(self) -> None:
        assert [t.value for t in Tier] == ["simple", "moderate", "complex"]


class TestClassify:
    def test_override(self) -> None:
        settings = EffectiveSettings(thresholds=Thresholds(simple=50, complex=600))
        result = classify(b"x\n" * 75, settings)
        assert result.line_count == 75
        assert result.tier is Tier.MODERATE

    def test_deterministic(self) -> None:
        settings = EffectiveSettings()
        content = b"x\n" * 123
        assert classify(content, settings) == classify(content, settings)

    def test_breakdown_by_extension(self) -> None:
        content = b"# header\n\nimport os\n    # indented\nx = 1  # trailing\n\n"
        result = classify(content, EffectiveSettings(), "/w/a.py")
        assert result.line_count == 6
        assert result.comment_lines == 2
        assert result.blank_lines == 2
        assert result.code_lines == 2

    def test_breakdown_c_style(self) -> None:
        content = "/* block\n * body\n */\n// note\nint x;\r\n"
        result = classify(content, EffectiveSettings(), "/w/a.c")
        # " * body" is neither blank nor prefixed.
        assert (result.code_lines, result.comment_lines, result.blank_lines) == (2, 3, 0)

    def test_unknown_extension_has_no_comments(self) -> None:
        result = classify(b"# not a comment\n\n", EffectiveSettings(), "/w/notes.txt")
        assert (result.code_lines, result.comment_lines, result.blank_lines) == (1, 0, 1)

    def test_tier_uses_total_lines(self) -> None:
        settings = EffectiveSettings(thresholds=Thresholds(simple=10, complex=600))
        result = classify(b"#\n" * 12, settings, "/w/a.py")
        assert result.comment_lines == 12
        assert result.code_lines == 0
        assert result.tier is Tier.MODERATE

    def test_empty_content_is_one_blank_line(self) -> None:
        result = classify(b"", EffectiveSettings(), "/w/a.py")
        assert result.line_count == result.blank_lines == 1


class TestIsBinary:
    def test_text(self) -> None:
        assert not is_binary(b"plain text\n")

    def test_nul_byte(self) -> None:
        assert is_binary(b"abc\x00def")

    def test_nul_past_sniff_window(self) -> None:
        assert not is_binary(b"a" * BINARY_SNIFF_BYTES + b"\x00")


class TestExclusion:
    def test_first_match_wins(self) -> None:
        assert find_exclusion("build/a.py", ["*.md", "build/**", "**/*.py"]) == "build/**"

    def test_no_match(self) -> None:
        assert find_exclusion("src/a.py", ["build/**"]) is None

    def test_negated_pattern_ignored(self) -> None:
        assert find_exclusion("src/a.py", ["!src/a.py"]) is None

    def test_relative_to_root(self) -> None:
        settings = EffectiveSettings(exclude=("src/gen/**",), root="/w")
        assert exclusion_for("/w/src/gen/x.py", settings) == "src/gen/**"
        assert exclusion_for("/w/src/x.py", settings) is None

    def test_no_patterns(self) -> None:
        assert exclusion_for("/w/a.py", EffectiveSettings(exclude=(), root="/w")) is None

    def test_include_overrides_exclusion(self) -> None:
        settings = EffectiveSettings(
            exclude=("src/gen/**",), include=("src/gen/keep.py",), root="/w"
        )
        assert exclusion_for("/w/src/gen/keep.py", settings) is None
        assert exclusion_for("/w/src/gen/drop.py", settings) == "src/gen/**"

    def test_default_exclusions(self) -> None:
        settings = EffectiveSettings(root="/w")
        assert exclusion_for("/w/node_modules/x/index.js", settings) == "**/node_modules/**"
        assert exclusion_for("/w/src/debug.log", settings) == "**/*.log"
        assert exclusion_for("/w/src/a.py", settings) is None
