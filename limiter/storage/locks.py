"""
Per-key asyncio locks. Read-modify-write on one document is serialized;
writes to different documents still interleave freely.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Iterable


class KeyedLock:

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def __call__(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def discard(self, keys: Iterable[str]) -> None:
        """Forget locks for removed documents (held locks are kept)."""
        for key in keys:
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
