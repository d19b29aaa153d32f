"""Tierloom - per-file complexity tiers with hierarchical, cached configuration."""

__version__ = "0.3.0"
