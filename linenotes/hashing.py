"""
Content addressing for annotated lines.

A line is identified by the SHA-1 hex digest of its exact UTF-8 text.
Whitespace is significant. Identical lines share one identifier wherever
they appear.
"""

import hashlib


def line_identifier(text: str) -> str:
    """Compute the identifier for a line of text (40 hex chars)."""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()
