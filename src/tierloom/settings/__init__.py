"""Settings domain: fragments, persistent stores, and hierarchical resolution."""

from tierloom.settings.models import (
    DEFAULT_EXCLUDES,
    DEFAULT_THRESHOLDS,
    DEFAULT_VERSION,
    THRESHOLD_FIELDS,
    ConfigFragment,
    EffectiveSettings,
    Thresholds,
)
from tierloom.settings.resolver import ConfigResolver, ScopeNode
from tierloom.settings.store import (
    FRAGMENT_FILENAME,
    FileSettingsStore,
    SettingsStore,
    SqliteSettingsStore,
    WritableSettingsStore,
)

__all__ = [
    "DEFAULT_EXCLUDES",
    "DEFAULT_THRESHOLDS",
    "DEFAULT_VERSION",
    "FRAGMENT_FILENAME",
    "THRESHOLD_FIELDS",
    "ConfigFragment",
    "ConfigResolver",
    "EffectiveSettings",
    "FileSettingsStore",
    "ScopeNode",
    "SettingsStore",
    "SqliteSettingsStore",
    "Thresholds",
    "WritableSettingsStore",
]
