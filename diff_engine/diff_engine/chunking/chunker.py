"""Character-budget chunker.

Walks the files in order and keeps a running character total for the open
batch.  A new batch is opened when the *next* file would push the total past
the limit.  Files are never split or reordered, so a single file larger than
the limit occupies a batch of its own.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from diff_engine.models.files import ChangedFile, FileBatch, FileBatchEntry

logger = logging.getLogger(__name__)

DEFAULT_CHAR_LIMIT = 9000


class Chunker:
    """Packs files into :class:`FileBatch` objects bounded by *limit* characters."""

    def __init__(self, limit: int = DEFAULT_CHAR_LIMIT) -> None:
        if limit < 1:
            raise ValueError(f"Chunk limit must be positive, got {limit}")
        self._limit = limit

    @property
    def limit(self) -> int:
        return self._limit

    def chunk(self, files: Sequence[ChangedFile], limit: int | None = None) -> list[FileBatch]:
        """Return the batches for *files* in original order."""
        budget = self._limit if limit is None else limit
        batches: list[FileBatch] = []
        current: FileBatch | None = None
        total = 0

        for file in files:
            content = file.patch or ""
            if current is None or (current.entries and total + len(content) > budget):
                current = FileBatch()
                batches.append(current)
                total = 0
            current.entries.append(FileBatchEntry(filename=file.filename, content=content))
            total += len(content)

        logger.info("Number of chunks to send: %d", len(batches))
        return batches
