"""Settings data model: fragments, thresholds, and resolved effective settings."""

# tierloom:domain=settings

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from tierloom.errors import MalformedFragmentError

THRESHOLD_FIELDS: tuple[str, ...] = ("simple", "moderate", "complex")

# Version reported when no scope contributes; never changes.
DEFAULT_VERSION = 0

# Exclusions in effect while no scope in a file's chain defines any.
DEFAULT_EXCLUDES: tuple[str, ...] = (
    "**/node_modules/**",
    "**/out/**",
    "**/dist/**",
    "**/.git/**",
    "**/.vscode/**",
    "**/coverage/**",
    "**/*.log",
    "**/.DS_Store",
    "**/Thumbs.db",
)


@dataclass(frozen=True)
class Thresholds:
    """Line-count thresholds separating the three tiers."""

    simple: int = 100
    moderate: int = 300
    complex: int = 600

    def to_dict(self) -> dict[str, int]:
        return {"simple": self.simple, "moderate": self.moderate, "complex": self.complex}


DEFAULT_THRESHOLDS = Thresholds()


def _parse_threshold(scope_path: str, name: str, value: object) -> int:
    # bool is an int subclass; `simple: true` is never a valid threshold.
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedFragmentError(scope_path, f"thresholds.{name} must be an integer")
    if value <= 0:
        raise MalformedFragmentError(scope_path, f"thresholds.{name} must be positive")
    return value


def _parse_patterns(scope_path: str, name: str, raw: object) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise MalformedFragmentError(scope_path, f"{name} must be a list")
    patterns: list[str] = []
    for item in raw:
        if not isinstance(item, str) or not item.strip():
            raise MalformedFragmentError(scope_path, f"{name} entries must be non-empty strings")
        # Patterns are root-relative; a leading slash carries no meaning.
        patterns.append(item.strip().lstrip("/"))
    return tuple(patterns)


@dataclass(frozen=True)
class ConfigFragment:
    """One directory scope's own configuration.

    Every threshold field is optional so that a child scope can override a
    single value and inherit the rest.  ``exclude`` and ``include`` keep the
    order and any duplicates exactly as they were persisted.
    """

    scope_path: str
    simple: int | None = None
    moderate: int | None = None
    complex: int | None = None
    exclude: tuple[str, ...] = ()
    include: tuple[str, ...] = ()

    def defined_thresholds(self) -> dict[str, int]:
        """Return only the threshold fields this fragment sets."""
        values = {"simple": self.simple, "moderate": self.moderate, "complex": self.complex}
        return {name: value for name, value in values.items() if value is not None}

    def is_empty(self) -> bool:
        return not self.defined_thresholds() and not self.exclude and not self.include

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted fragment shape."""
        return {
            "scope": self.scope_path,
            "thresholds": self.defined_thresholds(),
            "exclude": list(self.exclude),
            "include": list(self.include),
        }

    @classmethod
    def from_mapping(cls, scope_path: str, data: object) -> ConfigFragment:
        """Build a fragment from parsed YAML/JSON data.

        Raises :class:`MalformedFragmentError` for anything that does not fit
        the persisted shape.  An empty document yields an empty fragment.
        """
        if data is None:
            return cls(scope_path=scope_path)
        if not isinstance(data, dict):
            raise MalformedFragmentError(scope_path, "fragment must be a mapping")

        raw_thresholds = data.get("thresholds")
        if raw_thresholds is None:
            raw_thresholds = {}
        if not isinstance(raw_thresholds, dict):
            raise MalformedFragmentError(scope_path, "thresholds must be a mapping")

        unknown = sorted(str(k) for k in raw_thresholds if k not in THRESHOLD_FIELDS)
        if unknown:
            msg = f"unknown threshold field(s): {', '.join(unknown)}"
            raise MalformedFragmentError(scope_path, msg)

        values: dict[str, int] = {}
        for name in THRESHOLD_FIELDS:
            if raw_thresholds.get(name) is not None:
                values[name] = _parse_threshold(scope_path, name, raw_thresholds[name])

        if "simple" in values and "complex" in values and values["simple"] >= values["complex"]:
            msg = (
                f"thresholds.simple ({values['simple']}) must be lower than "
                f"thresholds.complex ({values['complex']})"
            )
            raise MalformedFragmentError(scope_path, msg)

        return cls(
            scope_path=scope_path,
            simple=values.get("simple"),
            moderate=values.get("moderate"),
            complex=values.get("complex"),
            exclude=_parse_patterns(scope_path, "exclude", data.get("exclude")),
            include=_parse_patterns(scope_path, "include", data.get("include")),
        )


@dataclass(frozen=True)
class EffectiveSettings:
    """Fully resolved, read-only configuration applicable to one file.

    ``version_token`` lists ``(scope_path, version)`` for every scope that
    contributed a field, outermost first.  Its last element is the resolving
    (nearest contributing) scope, so comparing tokens also compares
    ``resolving_scope_version``.

    ``exclude`` falls back to :data:`DEFAULT_EXCLUDES` when no scope sets
    exclusions; defaulted patterns have no entry in ``exclude_sources``.
    """

    thresholds: Thresholds = DEFAULT_THRESHOLDS
    exclude: tuple[str, ...] = DEFAULT_EXCLUDES
    include: tuple[str, ...] = ()
    resolving_scope: str | None = None
    resolving_scope_version: int = DEFAULT_VERSION
    version_token: tuple[tuple[str, int], ...] = ()
    root: str | None = None
    threshold_sources: dict[str, str] = field(default_factory=dict, compare=False)
    exclude_sources: dict[str, str] = field(default_factory=dict, compare=False)
    include_sources: dict[str, str] = field(default_factory=dict, compare=False)
    warnings: dict[str, str] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": self.root,
            "thresholds": self.thresholds.to_dict(),
            "exclude": list(self.exclude),
            "include": list(self.include),
            "resolving_scope": self.resolving_scope,
            "resolving_scope_version": self.resolving_scope_version,
            "threshold_sources": dict(self.threshold_sources),
            "exclude_sources": dict(self.exclude_sources),
            "include_sources": dict(self.include_sources),
            "warnings": dict(self.warnings),
        }
