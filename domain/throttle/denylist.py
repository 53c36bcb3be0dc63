"""In-memory denylist of shopper references whose requests are slowed down.

Single-process only, lost on restart. Mutations and reads are serialized
through one asyncio lock so admin calls never interleave with a scan from an
in-flight cycle.
"""
from __future__ import annotations

import asyncio
from typing import Dict, List


class Denylist:
    def __init__(self) -> None:
        # dict keeps insertion order and gives set semantics
        self._entries: Dict[str, None] = {}
        self._lock = asyncio.Lock()

    async def add(self, subject: str) -> bool:
        """Add a subject. Returns False when it was already present."""
        async with self._lock:
            if subject in self._entries:
                return False
            self._entries[subject] = None
            return True

    async def remove(self, subject: str) -> bool:
        """Remove a subject. Returns False when it was not present."""
        async with self._lock:
            if subject not in self._entries:
                return False
            del self._entries[subject]
            return True

    async def contains(self, subject: str) -> bool:
        async with self._lock:
            return subject in self._entries

    async def list(self) -> List[str]:
        async with self._lock:
            return list(self._entries)
