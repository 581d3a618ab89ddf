"""
Identity Allocator
==================
Mints process-local identities for draft sub-entities (steps, tools,
parts, reference URLs) so editing operations can address an entity
independently of its position in a list.

Identities are never reused, even after the entity is deleted.
"""

import itertools
import threading
from typing import Optional

PREFIXES = {
    "step": "STP",
    "tool": "TL",
    "part": "PRT",
    "url": "URL",
}


class IdentityAllocator:
    """Monotonic, prefixed identity source."""

    def __init__(self):
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def allocate(self, kind: str) -> str:
        """
        Allocate the next identity for an entity kind.

        Args:
            kind: One of 'step', 'tool', 'part', 'url'

        Returns:
            A string like "TL-7"
        """
        prefix = PREFIXES.get(kind)
        if prefix is None:
            raise ValueError(f"Unknown entity kind: {kind}")
        with self._lock:
            value = next(self._counter)
        return f"{prefix}-{value}"


# Module-level singleton
_allocator: Optional[IdentityAllocator] = None


def get_allocator() -> IdentityAllocator:
    """Get or create the process-wide identity allocator."""
    global _allocator
    if _allocator is None:
        _allocator = IdentityAllocator()
    return _allocator
