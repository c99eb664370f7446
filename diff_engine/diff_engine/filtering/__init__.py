"""Selection of the changed files worth summarising."""

from __future__ import annotations

from diff_engine.filtering.file_filter import (
    DELETED_FILE_PLACEHOLDER,
    EXCLUDED_NAME_FRAGMENTS,
    SOURCE_EXTENSIONS,
    FileFilter,
    file_extension,
)

__all__ = [
    "DELETED_FILE_PLACEHOLDER",
    "EXCLUDED_NAME_FRAGMENTS",
    "SOURCE_EXTENSIONS",
    "FileFilter",
    "file_extension",
]
