"""Greedy packing of changed files into LLM-sized batches."""

from __future__ import annotations

from diff_engine.chunking.chunker import DEFAULT_CHAR_LIMIT, Chunker

__all__ = ["DEFAULT_CHAR_LIMIT", "Chunker"]
