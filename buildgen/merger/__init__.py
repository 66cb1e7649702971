"""Merging generated rules into existing build files."""

from .fix import fix_file, fix_file_minor, fix_loads, label_sort_key, needs_fix, sort_labels
from .keep import KeepTable, is_keep_comment
from .merge import MergeContext, merge_file

__all__ = [
    "KeepTable",
    "MergeContext",
    "fix_file",
    "fix_file_minor",
    "fix_loads",
    "is_keep_comment",
    "label_sort_key",
    "merge_file",
    "needs_fix",
    "sort_labels",
]
