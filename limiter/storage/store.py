"""
Document Store — async key/value store of JSON documents on SQLite.

Callers always read a whole document and filter in memory; there is no
query language and no multi-key transaction. `update()` is the only safe
read-modify-write path: it holds a per-key lock across the read and the
write so two interleaved tasks cannot lose each other's changes.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import sqlite3
from contextlib import contextmanager
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, Iterator, List, Optional

from ..errors import StoreError
from .locks import KeyedLock

log = logging.getLogger("limiter.store")

ChangeListener = Callable[[FrozenSet[str]], Awaitable[None]]


class DocumentStore:
    """SQLite-backed store; blocking I/O runs in the default executor."""

    def __init__(
        self,
        db_path: Path,
        retry_attempts: int = 3,
        retry_backoff_s: float = 0.05,
        busy_timeout_s: float = 2.0,
    ):
        self.db_path = db_path
        self._retry_attempts = max(1, retry_attempts)
        self._retry_backoff_s = retry_backoff_s
        self._busy_timeout_s = busy_timeout_s
        self._listeners: List[ChangeListener] = []
        self.locks = KeyedLock()
        self._init_db()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get(self, key: str, default: Any = None) -> Any:
        found = await self._run(self._get_many_sync, [key])
        return found.get(key, default)

    async def get_many(self, keys: Iterable[str]) -> Dict[str, Any]:
        return await self._run(self._get_many_sync, list(keys))

    async def get_all(self) -> Dict[str, Any]:
        return await self._run(self._get_all_sync)

    async def keys(self, prefix: str = "") -> List[str]:
        return await self._run(self._keys_sync, prefix)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def set(self, items: Dict[str, Any]) -> None:
        if not items:
            return
        await self._run(self._set_sync, items)
        await self._notify(frozenset(items))

    async def remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        await self._run(self._remove_sync, keys)
        self.locks.discard(keys)
        await self._notify(frozenset(keys))

    async def update(
        self,
        key: str,
        mutate: Callable[[Any], Any],
        default: Any = None,
    ) -> Any:
        """
        Serialized read-modify-write of one document.

        *mutate* receives a private copy of the current value (or *default*)
        and returns the new value. If it raises, nothing is written.
        """
        async with self.locks(key):
            found = await self._run(self._get_many_sync, [key])
            current = copy.deepcopy(found.get(key, default))
            new_value = mutate(current)
            await self._run(self._set_sync, {key: new_value})
        await self._notify(frozenset([key]))
        return new_value

    # ------------------------------------------------------------------
    # Change notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> None:
        """Register an async callback(changed_keys) run after every write."""
        self._listeners.append(listener)

    async def _notify(self, changed: FrozenSet[str]) -> None:
        for listener in list(self._listeners):
            try:
                await listener(changed)
            except Exception:
                log.exception(f"Change listener failed for keys {sorted(changed)}")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking store call off-loop with bounded retry on lock contention."""
        loop = asyncio.get_running_loop()
        delay = self._retry_backoff_s
        for attempt in range(1, self._retry_attempts + 1):
            try:
                return await loop.run_in_executor(None, partial(fn, *args))
            except sqlite3.OperationalError as exc:
                if attempt == self._retry_attempts:
                    raise StoreError(
                        f"Store operation failed after {attempt} attempts: {exc}"
                    ) from exc
                log.warning(f"Transient store error (attempt {attempt}): {exc}; retrying")
                await asyncio.sleep(delay)
                delay *= 2
            except (sqlite3.Error, ValueError) as exc:
                raise StoreError(f"Store operation failed: {exc}") from exc
        raise StoreError("Store operation failed")  # pragma: no cover

    def _get_many_sync(self, keys: List[str]) -> Dict[str, Any]:
        if not keys:
            return {}
        placeholders = ",".join("?" for _ in keys)
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT key, value FROM documents WHERE key IN ({placeholders})", keys
            ).fetchall()
        return {k: json.loads(v) for k, v in rows}

    def _get_all_sync(self) -> Dict[str, Any]:
        with self._conn() as conn:
            rows = conn.execute("SELECT key, value FROM documents").fetchall()
        return {k: json.loads(v) for k, v in rows}

    def _keys_sync(self, prefix: str) -> List[str]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT key FROM documents WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        return [r[0] for r in rows]

    def _set_sync(self, items: Dict[str, Any]) -> None:
        encoded = [(k, json.dumps(v)) for k, v in items.items()]
        with self._conn() as conn:
            conn.executemany(
                "INSERT INTO documents (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                encoded,
            )

    def _remove_sync(self, keys: List[str]) -> None:
        with self._conn() as conn:
            conn.executemany("DELETE FROM documents WHERE key = ?", [(k,) for k in keys])

    def _init_db(self) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    key   TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(
            str(self.db_path), timeout=self._busy_timeout_s, check_same_thread=False
        )
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()
