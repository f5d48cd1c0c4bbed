"""Content fingerprint used for change detection."""

from __future__ import annotations

import hashlib

FINGERPRINT_LENGTH = 16


def fingerprint(text: str) -> str:
    """Truncated SHA-256 hex digest of *text* (UTF-8).

    Used only as an equality oracle between runs, never decoded.
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]
