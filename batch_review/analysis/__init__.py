"""
Analysis package for the batch review pipeline.

This package contains modules for analyzing diffs including:
- Hunk parsing from unified diff text
- File pattern classification (critical, test, config files)
"""

from batch_review.analysis.diff_parser import ChangeType, Hunk, HunkParser, parse_hunks, parse_file_diffs
from batch_review.analysis.file_patterns import get_file_category, matches_any

__all__ = [
    "ChangeType",
    "Hunk",
    "HunkParser",
    "parse_hunks",
    "parse_file_diffs",
    "get_file_category",
    "matches_any",
]
