"""Changed-file and batch models.

``ChangedFile`` mirrors one entry of the host API's "list pull request
files" response.  ``FileBatch`` is the unit of work handed to the LLM: an
ordered group of ``{filename, content}`` pairs bounded by a character
budget.
"""

from __future__ import annotations

import json
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class FileStatus(str, Enum):
    """Status values the host API reports for a file in a pull request."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    COPIED = "copied"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


class ChangedFile(BaseModel):
    """A single file touched by a pull request."""

    model_config = ConfigDict(extra="ignore")

    filename: str = Field(
        ...,
        description="Full path of the file relative to the repository root.",
    )
    status: FileStatus = Field(
        ...,
        description="How the file was changed.",
    )
    changes: int = Field(
        default=0,
        description="Number of added plus deleted lines.",
    )
    patch: str | None = Field(
        default=None,
        description="Unified-diff fragment; absent for binary files and some deletions.",
    )
    additions: int = 0
    deletions: int = 0


class FileBatchEntry(BaseModel):
    """One file inside a batch, reduced to what the LLM needs to see."""

    filename: str
    content: str


class FileBatch(BaseModel):
    """An ordered, size-bounded group of files sent to the LLM together."""

    entries: list[FileBatchEntry] = Field(default_factory=list)

    @property
    def char_count(self) -> int:
        """Total characters of content held by this batch."""
        return sum(len(entry.content) for entry in self.entries)

    def serialize(self) -> str:
        """Compact JSON rendering used as the LLM user message."""
        return json.dumps(
            [entry.model_dump() for entry in self.entries],
            separators=(",", ":"),
            ensure_ascii=False,
        )

    def __len__(self) -> int:
        return len(self.entries)
