"""Validation of raw-diff submissions.

The playground accepts ``{"diff_body": "<json>"}`` where the JSON is the
array returned by the host API's "list pull request files" endpoint.
"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from diff_engine.models.files import ChangedFile

logger = logging.getLogger(__name__)

FORMAT_ERROR_MESSAGE = (
    "The diff could not be processed. Paste the JSON array returned by "
    "GET /repos/{owner}/{repo}/pulls/{pull_number}/files."
)


class DiffFormatError(ValueError):
    """Raised when a raw diff is not a non-empty array of changed files."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


def parse_diff_body(diff_body: str) -> list[ChangedFile]:
    """Parse and validate *diff_body*.

    Only the first element is checked for non-empty ``filename``,
    ``status`` and ``changes``; the rest are parsed leniently and entries
    that do not fit the :class:`ChangedFile` shape are skipped.

    Raises
    ------
    DiffFormatError
        If the body is not JSON, not an array, empty, or its first
        element lacks the required fields.
    """
    try:
        parsed = json.loads(diff_body)
    except (json.JSONDecodeError, TypeError) as exc:
        raise DiffFormatError("diff_body is not valid JSON") from exc

    if not isinstance(parsed, list) or not parsed:
        raise DiffFormatError("diff_body must be a non-empty JSON array")

    first = parsed[0]
    if not isinstance(first, dict) or not all(first.get(key) for key in ("filename", "status", "changes")):
        raise DiffFormatError("first entry must have filename, status and changes")

    files: list[ChangedFile] = []
    for index, item in enumerate(parsed):
        try:
            files.append(ChangedFile.model_validate(item))
        except ValidationError:
            logger.warning("Skipping malformed diff entry at index %d", index)
    return files
