"""Tests for tierloom.settings.models: fragment parsing and effective settings."""

from __future__ import annotations

import pytest

from tierloom.errors import MalformedFragmentError, TierloomError
from tierloom.settings.models import (
    DEFAULT_EXCLUDES,
    DEFAULT_THRESHOLDS,
    ConfigFragment,
    EffectiveSettings,
    Thresholds,
)


class TestThresholds:
    def test_defaults(self) -> None:
        assert DEFAULT_THRESHOLDS == Thresholds(simple=100, moderate=300, complex=600)

    def test_to_dict(self) -> None:
        assert Thresholds(1, 2, 3).to_dict() == {"simple": 1, "moderate": 2, "complex": 3}


class TestFromMapping:
    def test_none_is_empty_fragment(self) -> None:
        fragment = ConfigFragment.from_mapping("/w", None)
        assert fragment.is_empty()
        assert fragment.scope_path == "/w"

    def test_partial_thresholds(self) -> None:
        fragment = ConfigFragment.from_mapping("/w", {"thresholds": {"simple": 50}})
        assert fragment.simple == 50
        assert fragment.complex is None
        assert fragment.defined_thresholds() == {"simple": 50}

    def test_exclude_keeps_order_and_duplicates(self) -> None:
        fragment = ConfigFragment.from_mapping("/w", {"exclude": ["b/**", "a", "b/**"]})
        assert fragment.exclude == ("b/**", "a", "b/**")

    def test_leading_slash_stripped(self) -> None:
        fragment = ConfigFragment.from_mapping("/w", {"exclude": ["/build/**"]})
        assert fragment.exclude == ("build/**",)

    def test_include_parsed_like_exclude(self) -> None:
        fragment = ConfigFragment.from_mapping("/w", {"include": ["/dist/keep.js", "a"]})
        assert fragment.include == ("dist/keep.js", "a")
        assert not fragment.is_empty()

    def test_include_not_a_list(self) -> None:
        with pytest.raises(MalformedFragmentError, match="include must be a list"):
            ConfigFragment.from_mapping("/w", {"include": "a"})

    def test_not_a_mapping(self) -> None:
        with pytest.raises(MalformedFragmentError, match="mapping"):
            ConfigFragment.from_mapping("/w", ["simple"])

    def test_thresholds_not_a_mapping(self) -> None:
        with pytest.raises(MalformedFragmentError):
            ConfigFragment.from_mapping("/w", {"thresholds": 5})

    def test_unknown_threshold_field(self) -> None:
        with pytest.raises(MalformedFragmentError, match="unknown threshold"):
            ConfigFragment.from_mapping("/w", {"thresholds": {"huge": 5}})

    @pytest.mark.parametrize("value", ["10", 1.5, True, 0, -3])
    def test_invalid_threshold_values(self, value: object) -> None:
        with pytest.raises(MalformedFragmentError):
            ConfigFragment.from_mapping("/w", {"thresholds": {"simple": value}})

    def test_simple_not_below_complex(self) -> None:
        with pytest.raises(MalformedFragmentError, match="lower than"):
            ConfigFragment.from_mapping("/w", {"thresholds": {"simple": 600, "complex": 600}})

    def test_exclude_not_a_list(self) -> None:
        with pytest.raises(MalformedFragmentError, match="list"):
            ConfigFragment.from_mapping("/w", {"exclude": "build/**"})

    @pytest.mark.parametrize("entry", ["", "   ", 3, None])
    def test_bad_exclude_entries(self, entry: object) -> None:
        with pytest.raises(MalformedFragmentError):
            ConfigFragment.from_mapping("/w", {"exclude": [entry]})

    def test_error_carries_scope_and_reason(self) -> None:
        with pytest.raises(MalformedFragmentError) as exc_info:
            ConfigFragment.from_mapping("/w/sub", {"exclude": "x"})
        err = exc_info.value
        assert err.scope_path == "/w/sub"
        assert "exclude" in err.reason
        assert isinstance(err, TierloomError)
        assert isinstance(err, ValueError)

    def test_to_dict_round_shape(self) -> None:
        fragment = ConfigFragment("/w", simple=10, exclude=("a",))
        assert fragment.to_dict() == {
            "scope": "/w",
            "thresholds": {"simple": 10},
            "exclude": ["a"],
            "include": [],
        }


class TestEffectiveSettings:
    def test_default_settings(self) -> None:
        settings = EffectiveSettings()
        assert settings.thresholds == DEFAULT_THRESHOLDS
        assert settings.exclude == DEFAULT_EXCLUDES
        assert settings.include == ()
        assert settings.resolving_scope is None
        assert settings.resolving_scope_version == 0

    def test_equality_ignores_diagnostics(self) -> None:
        a = EffectiveSettings(warnings={"/w": "bad"})
        b = EffectiveSettings()
        assert a == b

    def test_to_dict(self) -> None:
        data = EffectiveSettings(root="/w").to_dict()
        assert data["root"] == "/w"
        assert data["thresholds"] == {"simple": 100, "moderate": 300, "complex": 600}
        assert data["exclude"] == list(DEFAULT_EXCLUDES)
        assert data["include"] == []
