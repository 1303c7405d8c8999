"""Content fingerprints used to detect policy changes."""

from __future__ import annotations

import hashlib


def fingerprint(text: str) -> str:
    """Return the lowercase hex SHA-256 of the UTF-8 encoded distilled text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
