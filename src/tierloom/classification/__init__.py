"""Classification domain: line counting, exclusion matching, and tier assignment."""

from tierloom.classification.engine import (
    Classification,
    Tier,
    assign_tier,
    classify,
    count_lines,
    exclusion_for,
    find_exclusion,
    is_binary,
)
from tierloom.classification.globs import compile_glob, match_glob

__all__ = [
    "Classification",
    "Tier",
    "assign_tier",
    "classify",
    "compile_glob",
    "count_lines",
    "exclusion_for",
    "find_exclusion",
    "is_binary",
    "match_glob",
]
