"""Changed-file filter.

Drops files that would only add noise to a pull-request summary: tests,
fixtures, mocks, package manifests, icons, files with no line changes and
anything that is not source code according to :data:`SOURCE_EXTENSIONS`.
Surviving deletions get a placeholder patch because the host API returns no
diff body for them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from diff_engine.models.files import ChangedFile, FileStatus

logger = logging.getLogger(__name__)

DELETED_FILE_PLACEHOLDER = "File deleted"

# Case-insensitive substrings that exclude a file when present anywhere in its path.
EXCLUDED_NAME_FRAGMENTS: tuple[str, ...] = (
    "test",
    "spec",
    "mock",
    "fixture",
    "package.json",
    "package-lock.json",
    "icon",
)

SOURCE_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".ts",
        ".tsx",
        ".js",
        ".jsx",
        ".mjs",
        ".cjs",
        ".vue",
        ".svelte",
        ".py",
        ".go",
        ".rs",
        ".java",
        ".kt",
        ".kts",
        ".scala",
        ".groovy",
        ".rb",
        ".php",
        ".c",
        ".h",
        ".cc",
        ".cpp",
        ".hpp",
        ".cs",
        ".fs",
        ".swift",
        ".m",
        ".mm",
        ".dart",
        ".ex",
        ".exs",
        ".erl",
        ".clj",
        ".hs",
        ".lua",
        ".pl",
        ".r",
        ".jl",
        ".sh",
        ".sql",
        ".graphql",
        ".proto",
        ".tf",
        ".sol",
    }
)


def file_extension(filename: str) -> str:
    """Return the lowercased text after the final ``.``, dot included.

    A name without a dot yields ``"." + name``, which never matches the
    allow-list.
    """
    return "." + filename.lower().rsplit(".", 1)[-1]


class FileFilter:
    """Decides which changed files are worth summarising.

    Parameters
    ----------
    extensions:
        Allow-list of source-code extensions (leading dot, lowercase).
    excluded_fragments:
        Path substrings that always exclude a file.
    """

    def __init__(
        self,
        extensions: Iterable[str] = SOURCE_EXTENSIONS,
        excluded_fragments: Iterable[str] = EXCLUDED_NAME_FRAGMENTS,
    ) -> None:
        self._extensions = frozenset(ext.lower() for ext in extensions)
        self._excluded = tuple(fragment.lower() for fragment in excluded_fragments)

    def is_relevant(self, file: ChangedFile) -> bool:
        """Return ``True`` if *file* should be kept."""
        filename = file.filename.lower()
        if any(fragment in filename for fragment in self._excluded):
            return False
        if file.changes < 1:
            return False
        return file_extension(filename) in self._extensions

    def filter(self, files: Sequence[ChangedFile]) -> list[ChangedFile]:
        """Return the relevant files in their original order.

        The input is not mutated; removed files are returned as copies
        whose ``patch`` is :data:`DELETED_FILE_PLACEHOLDER`.
        """
        result: list[ChangedFile] = []
        for file in files:
            if not self.is_relevant(file):
                continue
            if file.status == FileStatus.REMOVED:
                file = file.model_copy(update={"patch": DELETED_FILE_PLACEHOLDER})
            result.append(file)

        logger.info("Files before filter: %d", len(files))
        logger.info("Files after filter: %d", len(result))
        logger.debug("Files to process: %s", [file.filename for file in result])
        return result
