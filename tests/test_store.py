"""Tests for the SQLite document store and its per-key serialization."""

from __future__ import annotations

import asyncio
import sqlite3

import pytest

from limiter.errors import StoreError
from limiter.storage import keys
from limiter.storage.store import DocumentStore


class TestDocumentStore:
    async def test_get_missing_returns_default(self, store):
        assert await store.get("sites") is None
        assert await store.get("sites", []) == []

    async def test_set_get_roundtrip_keeps_structure(self, store):
        await store.set({"sites": [{"id": "a", "urlPattern": "example.com"}]})
        assert await store.get("sites") == [{"id": "a", "urlPattern": "example.com"}]

    async def test_get_many_omits_missing(self, store):
        await store.set({"sites": [], "groups": [{"id": "g"}]})
        found = await store.get_many(["sites", "groups", "nope"])
        assert set(found) == {"sites", "groups"}

    async def test_keys_by_prefix(self, store):
        await store.set({
            "usageStats-2024-01-01": {},
            "usageStats-2024-01-02": {},
            "extensions-2024-01-01": {},
            "sites": [],
        })
        assert await store.keys("usageStats-") == ["usageStats-2024-01-01", "usageStats-2024-01-02"]
        assert len(await store.keys()) == 4

    async def test_remove(self, store):
        await store.set({"a": 1, "b": 2})
        await store.remove(["a"])
        assert await store.get_all() == {"b": 2}

    async def test_data_survives_a_new_store_instance(self, store):
        await store.set({"groups": [{"id": "g1"}]})
        reopened = DocumentStore(store.db_path)
        assert await reopened.get("groups") == [{"id": "g1"}]


class TestUpdate:
    async def test_concurrent_updates_are_not_lost(self, store):
        def _inc(doc):
            doc["n"] = doc.get("n", 0) + 1
            return doc

        await asyncio.gather(*(store.update("counter", _inc, default={}) for _ in range(25)))
        assert (await store.get("counter"))["n"] == 25

    async def test_mutate_gets_a_private_copy(self, store):
        default = {"n": 0}

        def _inc(doc):
            doc["n"] += 1
            return doc

        await store.update("counter", _inc, default=default)
        assert default == {"n": 0}

    async def test_failed_mutation_writes_nothing(self, store):
        await store.set({"sites": [1]})

        def _boom(doc):
            doc.append(2)
            raise ValueError("nope")

        with pytest.raises(ValueError):
            await store.update("sites", _boom, default=[])
        assert await store.get("sites") == [1]


class TestChangeListeners:
    async def test_listener_receives_changed_keys(self, store):
        seen = []

        async def _listener(changed):
            seen.append(changed)

        store.subscribe(_listener)
        await store.set({"sites": []})
        await store.update("groups", lambda g: g, default=[])
        await store.remove(["sites"])
        assert seen == [frozenset({"sites"}), frozenset({"groups"}), frozenset({"sites"})]

    async def test_failing_listener_does_not_break_writes(self, store):
        async def _broken(changed):
            raise RuntimeError("listener bug")

        store.subscribe(_broken)
        await store.set({"sites": []})
        assert await store.get("sites") == []


class TestRetry:
    async def test_transient_lock_is_retried(self, store, monkeypatch):
        real = store._get_many_sync
        calls = {"n": 0}

        def _flaky(key_list):
            calls["n"] += 1
            if calls["n"] == 1:
                raise sqlite3.OperationalError("database is locked")
            return real(key_list)

        monkeypatch.setattr(store, "_get_many_sync", _flaky)
        assert await store.get("sites", []) == []
        assert calls["n"] == 2

    async def test_persistent_failure_raises_store_error(self, store, monkeypatch):
        def _locked(key_list):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(store, "_get_many_sync", _locked)
        with pytest.raises(StoreError) as info:
            await store.get("sites")
        assert info.value.retryable is True


class TestKeys:
    def test_date_partitioned_keys(self):
        assert keys.usage_key("2024-01-02") == "usageStats-2024-01-02"
        assert keys.extensions_key("2024-01-02") == "extensions-2024-01-02"
        assert keys.date_from_key("usageStats-2024-01-02") == "2024-01-02"
        assert keys.date_from_key("sites") is None

    async def test_removed_documents_release_their_locks(self, store):
        await store.update("usageStats-2024-01-01", lambda d: {**d, "s1": {}}, default={})
        assert len(store.locks) == 1
        await store.remove(["usageStats-2024-01-01"])
        assert len(store.locks) == 0
