"""Authentication and classification of inbound webhook payloads."""

from __future__ import annotations

from diff_engine.events.diff_payload import DiffFormatError, parse_diff_body
from diff_engine.events.router import EventRouter
from diff_engine.events.signature import compute_signature, verify_signature

__all__ = [
    "DiffFormatError",
    "EventRouter",
    "compute_signature",
    "parse_diff_body",
    "verify_signature",
]
