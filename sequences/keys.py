"""
Sequence Key Derivation
=======================
Derives the URL-safe sequence key from a display name and checks it
against the server-side key format.
"""

import re

from config.settings import SEQUENCE

KEY_MAX_LENGTH = SEQUENCE["key_max_length"]

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")
_VALID_KEY = re.compile(rf"[a-z0-9-]{{1,{KEY_MAX_LENGTH}}}")


def generate_key(name: str) -> str:
    """
    Derive a sequence key from a display name.

    "Breaker Trips -- Kitchen GFCI!" -> "breaker-trips-kitchen-gfci"

    The result can be empty (e.g. an all-symbol name); check it with
    is_valid_key() before saving.
    """
    key = name.lower()
    key = _DISALLOWED.sub("", key)
    key = _WHITESPACE.sub("-", key)
    key = _HYPHENS.sub("-", key)
    key = key.strip("-")
    # Truncation can expose a hyphen at the cut
    return key[:KEY_MAX_LENGTH].strip("-")


def is_valid_key(key: str) -> bool:
    """True if the key matches the server format ^[a-z0-9-]{1,50}$."""
    return bool(_VALID_KEY.fullmatch(key))
