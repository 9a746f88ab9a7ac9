"""Feature identifier normalization and quoting for runner expressions."""

from __future__ import annotations

import re
import string

from tenantflags.errors import InputError

# Whitespace and ASCII punctuation (underscore included) collapse to one separator.
_SEPARATOR_RUN = re.compile(f"[\\s{re.escape(string.punctuation)}]+")


def normalize(raw: str | None) -> str:
    """Turn selected text into a lowercase, underscore-separated identifier.

    ``"  User Management!! "`` becomes ``"user_management"``. Text that has
    nothing left after normalization raises :class:`InputError`. Symbols outside
    ASCII punctuation, such as emoji or currency signs, are kept as-is.
    """
    text = (raw or "").strip().lower()
    identifier = _SEPARATOR_RUN.sub("_", text)
    identifier = identifier.removeprefix("_").removesuffix("_")
    if not identifier:
        raise InputError(
            "Selected text is empty after normalization",
            hint="Select a feature name containing letters or digits.",
        )
    return identifier


def quote(value: str | None) -> str:
    """Escape single quotes for a single-quoted literal inside ``runner "..."``."""
    return (value or "").replace("'", "\\'")
