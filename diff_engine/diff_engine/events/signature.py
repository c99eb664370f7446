"""HMAC-SHA256 webhook signatures (``X-Hub-Signature-256``)."""

from __future__ import annotations

import hashlib
import hmac

_PREFIX = "sha256="


def compute_signature(payload: bytes, secret: str) -> str:
    """Return the ``sha256=<hex>`` header value for *payload*."""
    digest = hmac.new(
        secret.encode("utf-8"),
        payload,
        hashlib.sha256,
    ).hexdigest()
    return _PREFIX + digest


def verify_signature(payload: bytes, signature_header: str | None, secret: str) -> bool:
    """Validate a webhook HMAC-SHA256 signature in constant time.

    Parameters
    ----------
    payload:
        The raw request body bytes, exactly as received.
    signature_header:
        The ``X-Hub-Signature-256`` header value (``sha256=<hex>``).
    secret:
        The shared webhook secret.

    Returns
    -------
    bool
        ``True`` only if the header is present, well-formed and matches.
    """
    if not signature_header or not secret:
        return False
    if not signature_header.startswith(_PREFIX):
        return False
    return hmac.compare_digest(compute_signature(payload, secret), signature_header)
