"""
Dual-Native unit tests for the catalog store
"""

import threading
import unittest as _unittest
from typing import Any, List, Type

from dualnative_core import err, schemas
from dualnative_core.core import catalog as _catalog
from dualnative_core.core.identity import ContentIdentityComputer
from dualnative_core.misc.events import EventSink
from dualnative_core.persistence.providers import MappingResourceProvider, ResourceProvider
from dualnative_core.persistence.storage import InMemoryStorage

from . import utils


catalog_suite = _unittest.TestSuite()


def _tested(cls: Type):
    global catalog_suite
    for fixture in filter(lambda f: f.startswith("test_"), dir(cls)):
        catalog_suite.addTest(cls(fixture))
    return cls


class _FailingStorage(InMemoryStorage):
    def __init__(self):
        super().__init__()
        self.fail = False

    def set(self, key: str, value: Any) -> bool:
        if self.fail:
            return False
        return super().set(key, value)

    def delete(self, key: str) -> bool:
        if self.fail:
            return False
        return super().delete(key)


class _RaisingStorage(InMemoryStorage):
    def set(self, key: str, value: Any) -> bool:
        raise OSError("disk full")


class _RecordingSink(EventSink):
    def __init__(self):
        self.events: List[schemas.EventType] = []

    def notify(self, event, data=None):
        self.events.append(event)


class _UnreachableProvider(ResourceProvider):
    def fetch(self, rid: str):
        raise err.ResourceUnreachable(rid, "connection refused")


def _fill(store: _catalog.CatalogStore, count: int):
    for entry in utils.sample_entries(count):
        store.upsert(entry.rid, entry.hr, entry.mr, entry.content_id, entry.updated_at, entry.metadata)


@_tested
class CatalogStoreTests(_unittest.TestCase):
    def test_round_trip(self):
        store = _catalog.CatalogStore()
        self.assertIsNone(store.get("r"))
        self.assertTrue(store.upsert("r", "https://a/r/", "https://a/api/r", "sha256-1", "2024-01-01T00:00:00+00:00", {}))
        entry = store.get("r")
        self.assertEqual(
            schemas.CatalogEntry(
                rid="r",
                hr="https://a/r/",
                mr="https://a/api/r",
                content_id="sha256-1",
                updated_at="2024-01-01T00:00:00+00:00",
                profile="tct-1",
                metadata={}
            ),
            entry
        )
        self.assertEqual(1, len(store))
        self.assertIn("r", store)
        self.assertNotIn("s", store)

    def test_entries_are_replaced_as_a_whole(self):
        store = _catalog.CatalogStore(profile="custom")
        store.upsert("r", "https://a/r/", "https://a/api/r", "sha256-1", None, {"status": "draft", "x": 1})
        entry = store.get("r")
        self.assertEqual("custom", entry.profile)
        self.assertIsNotNone(_catalog.timestamps.parse_timestamp(entry.updated_at))

        store.upsert("r", "https://a/r2/", "https://a/api/r", "sha256-2", "2024-02-02T00:00:00+00:00", {"status": "x"})
        entry = store.get("r")
        self.assertEqual("https://a/r2/", entry.hr)
        self.assertEqual("sha256-2", entry.content_id)
        self.assertEqual({"status": "x"}, entry.metadata)
        self.assertEqual(1, len(store))

    def test_returned_entries_are_copies(self):
        store = _catalog.CatalogStore()
        metadata = {"tags": ["a"]}
        store.upsert("r", "https://a/r/", "https://a/api/r", "sha256-1", None, metadata)
        metadata["tags"].append("b")
        entry = store.get("r")
        self.assertEqual({"tags": ["a"]}, entry.metadata)
        entry.metadata["tags"].append("c")
        self.assertEqual({"tags": ["a"]}, store.get("r").metadata)

    def test_add_resource(self):
        store = _catalog.CatalogStore()
        self.assertTrue(store.add_resource("page", "p", "https://a/p/", "https://a/api/p", "sha256-1", None, {"a": 1}))
        self.assertEqual({"a": 1, "type": "page"}, store.get("p").metadata)
        store.add_resource("post", "q", "https://a/q/", "https://a/api/q", "sha256-2")
        self.assertEqual(["p"], [e.rid for e in store.query_for_type("page").items])
        self.assertEqual(["q"], [e.rid for e in store.query_for_type("post").items])

    def test_remove(self):
        sink = _RecordingSink()
        store = _catalog.CatalogStore(events=sink)
        _fill(store, 3)
        self.assertTrue(store.remove("r2"))
        self.assertIsNone(store.get("r2"))
        self.assertEqual(["r1", "r3"], [e.rid for e in store.query().items])
        self.assertTrue(store.remove("r2"))
        self.assertTrue(store.remove("unknown"))
        self.assertEqual(1, sink.events.count(schemas.EventType.CATALOG_ENTRY_REMOVED))
        self.assertEqual(3, sink.events.count(schemas.EventType.CATALOG_UPDATED))

    def test_pagination(self):
        store = _catalog.CatalogStore()
        _fill(store, 10)

        result = store.query(limit=3, offset=3)
        self.assertEqual(["r4", "r5", "r6"], [e.rid for e in result.items])
        self.assertEqual(schemas.Pagination(limit=3, offset=3, total=10), result.pagination)
        self.assertEqual("2024-01-10T00:00:00+00:00", result.updated_at)

        self.assertEqual(10, len(store.query().items))
        self.assertEqual(10, len(store.query(limit=0).items))
        self.assertEqual(["r9", "r10"], [e.rid for e in store.query(limit=5, offset=8).items])
        self.assertEqual(["r9", "r10"], [e.rid for e in store.query(offset=8).items])
        self.assertEqual([], store.query(limit=3, offset=10).items)
        self.assertEqual(10, store.query(limit=3, offset=10).pagination.total)
        self.assertEqual(["r1"], [e.rid for e in store.query(limit=1, offset=-4).items])

    def test_filters(self):
        store = _catalog.CatalogStore()
        _fill(store, 10)

        published = store.query(filters={"status": "publish"})
        self.assertEqual(["r1", "r3", "r5", "r7", "r9"], [e.rid for e in published.items])
        self.assertEqual(5, published.pagination.total)
        self.assertEqual("2024-01-09T00:00:00+00:00", published.updated_at)

        self.assertEqual(10, store.query(filters={"status": ["publish", "draft"]}).pagination.total)
        self.assertEqual(10, store.query(filters={"type": "post"}).pagination.total)
        self.assertEqual(0, store.query(filters={"type": "page"}).pagination.total)
        self.assertEqual(0, store.query(filters={"missing": "x"}).pagination.total)
        self.assertEqual(["r2"], [e.rid for e in store.query(filters={"rid": "r2"}).items])
        self.assertEqual(["r3"], [e.rid for e in store.query(filters={"status": "publish"}, limit=1, offset=1).items])
        self.assertEqual(5, store.query(filters={"status": "publish"}, limit=1, offset=1).pagination.total)

    def test_filters_with_unhashable_values(self):
        store = _catalog.CatalogStore()
        store.upsert("a", "https://x/a/", "https://x/api/a", "sha256-1", metadata={"tags": ["x"]})
        store.upsert("b", "https://x/b/", "https://x/api/b", "sha256-2", metadata={"tags": ["y", "z"]})
        store.upsert("c", "https://x/c/", "https://x/api/c", "sha256-3", metadata={"tags": "x"})

        self.assertEqual(["c"], [e.rid for e in store.query(filters={"tags": {"x", "y"}}).items])
        self.assertEqual(["c"], [e.rid for e in store.query(filters={"tags": frozenset({"x"})}).items])
        self.assertEqual(["a"], [e.rid for e in store.query(filters={"tags": [["x"], "w"]}).items])
        self.assertEqual(["b"], [e.rid for e in store.query(filters={"tags": (["y", "z"],)}).items])
        self.assertEqual(["c"], [e.rid for e in store.query(filters={"tags": ["x"]}).items])

    def test_batches(self):
        store = _catalog.CatalogStore()
        self.assertEqual([], list(store.batches(3)))
        _fill(store, 7)
        batches = list(store.batches(3))
        self.assertEqual([3, 3, 1], [len(b) for b in batches])
        self.assertEqual([f"r{i}" for i in range(1, 8)], [e.rid for b in batches for e in b])
        self.assertEqual(1, len(list(store.batches(100))))
        self.assertRaises(ValueError, list, store.batches(0))

        batches[0][0].metadata["status"] = "changed"
        self.assertNotEqual("changed", store.get("r1").metadata["status"])

    def test_since(self):
        store = _catalog.CatalogStore()
        _fill(store, 10)

        result = store.query(since="2024-01-05T00:00:00+00:00")
        self.assertEqual(["r6", "r7", "r8", "r9", "r10"], [e.rid for e in result.items])
        self.assertEqual("2024-01-05T00:00:00+00:00", result.since)
        self.assertEqual(10, len(store.query(since="2023-12-31T23:59:59+00:00").items))
        self.assertEqual(0, len(store.query(since="2024-01-10T00:00:00+00:00").items))
        self.assertEqual(1, len(store.query(since="2024-01-09T23:59:59+00:00").items))

        result = store.query(since="2024-01-05T00:00:00+00:00", filters={"status": "publish"}, limit=2)
        self.assertEqual(["r7", "r9"], [e.rid for e in result.items])
        self.assertEqual(2, result.pagination.total)

        self.assertIsNone(store.query().since)
        self.assertEqual(10, len(store.query(since="").items))

    def test_empty_catalog(self):
        store = _catalog.CatalogStore()
        result = store.query()
        self.assertEqual([], result.items)
        self.assertEqual(1, result.version)
        self.assertEqual("tct-1", result.profile)
        self.assertEqual(0, result.pagination.total)
        self.assertIsNotNone(_catalog.timestamps.parse_timestamp(result.updated_at))

    def test_persistence(self):
        storage = InMemoryStorage()
        store = _catalog.CatalogStore(storage)
        _fill(store, 4)
        store.remove("r1")

        raw = storage.get(_catalog.CATALOG_STORAGE_KEY)
        self.assertEqual(["r2", "r3", "r4"], list(raw.keys()))
        self.assertEqual("2024-01-02T00:00:00+00:00", raw["r2"]["updatedAt"])

        restored = _catalog.CatalogStore(storage)
        self.assertEqual(3, len(restored))
        self.assertEqual(store.get("r3"), restored.get("r3"))
        self.assertEqual(
            [e.rid for e in store.query().items],
            [e.rid for e in restored.query().items]
        )

    def test_invalid_stored_entries_are_skipped(self):
        storage = InMemoryStorage()
        storage.set(_catalog.CATALOG_STORAGE_KEY, {"ok": utils.sample_entries(1)[0].model_dump(by_alias=True), "bad": {}})
        self.assertEqual(1, len(_catalog.CatalogStore(storage)))
        storage.set(_catalog.CATALOG_STORAGE_KEY, ["no", "mapping"])
        self.assertEqual(0, len(_catalog.CatalogStore(storage)))

    def test_failed_writes_are_rolled_back(self):
        storage = _FailingStorage()
        sink = _RecordingSink()
        store = _catalog.CatalogStore(storage, sink)
        _fill(store, 2)
        self.assertEqual(2, sink.events.count(schemas.EventType.CATALOG_UPDATED))

        storage.fail = True
        self.assertFalse(store.upsert("r1", "https://a/x/", "https://a/api/x", "sha256-ff"))
        self.assertFalse(store.upsert("new", "https://a/x/", "https://a/api/x", "sha256-ff"))
        self.assertEqual(utils.sample_entries(1)[0], store.get("r1"))
        self.assertIsNone(store.get("new"))
        self.assertFalse(store.remove("r2"))
        self.assertIsNotNone(store.get("r2"))
        self.assertFalse(store.purge())
        self.assertEqual(2, len(store))
        self.assertEqual(2, sink.events.count(schemas.EventType.CATALOG_UPDATED))

        storage.fail = False
        self.assertTrue(store.purge())
        self.assertEqual(0, len(store))
        self.assertFalse(storage.has(_catalog.CATALOG_STORAGE_KEY))
        self.assertIn(schemas.EventType.CATALOG_PURGED, sink.events)
        self.assertTrue(store.purge())

    def test_raising_storage(self):
        store = _catalog.CatalogStore(_RaisingStorage())
        self.assertFalse(store.upsert("r", "https://a/r/", "https://a/api/r", "sha256-1"))
        self.assertEqual(0, len(store))

    def test_event_filters(self):
        class Sink(EventSink):
            def notify(self, event, data=None):
                pass

            def filter(self, hook, value, *args):
                if hook == schemas.FilterHook.CATALOG_ENTRY:
                    return value.model_copy(update={"metadata": {**value.metadata, "seen": True}})
                if hook == schemas.FilterHook.CATALOG:
                    return value.model_copy(update={"profile": "filtered"})
                return value

        store = _catalog.CatalogStore(events=Sink())
        store.upsert("r", "https://a/r/", "https://a/api/r", "sha256-1")
        self.assertEqual({"seen": True}, store.get("r").metadata)
        self.assertEqual("filtered", store.query().profile)

    def test_validate(self):
        computer = ContentIdentityComputer()
        provider = MappingResourceProvider({"a": {"title": "A"}, "b": {"title": "B"}})
        store = _catalog.CatalogStore(provider=provider, identity=computer)
        store.upsert("a", "https://x/a/", "https://x/api/a", computer.compute({"title": "A"}))
        store.upsert("b", "https://x/b/", "https://x/api/b", computer.compute({"title": "old"}))
        store.upsert("c", "https://x/c/", "https://x/api/c", computer.compute({"title": "C"}))

        inconsistencies = {i.rid: i for i in store.validate()}
        self.assertEqual({"b", "c"}, set(inconsistencies.keys()))
        self.assertEqual(schemas.InconsistencyStatus.CID_MISMATCH, inconsistencies["b"].status)
        self.assertEqual(computer.compute({"title": "B"}), inconsistencies["b"].live_cid)
        self.assertEqual(computer.compute({"title": "old"}), inconsistencies["b"].catalog_cid)
        self.assertEqual(schemas.InconsistencyStatus.MR_NOT_ACCESSIBLE, inconsistencies["c"].status)
        self.assertEqual(computer.compute({"title": "old"}), store.get("b").content_id)

        self.assertEqual([], store.validate([store.get("a")]))
        self.assertRaises(RuntimeError, _catalog.CatalogStore().validate)

        unreachable = _catalog.CatalogStore(provider=_UnreachableProvider())
        unreachable.upsert("a", "https://x/a/", "https://x/api/a", "sha256-1")
        unreachable.upsert("b", "https://x/b/", "https://x/api/b", "sha256-2")
        result = unreachable.validate()
        self.assertEqual(2, len(result))
        self.assertTrue(all(i.status == schemas.InconsistencyStatus.MR_NOT_ACCESSIBLE for i in result))
        self.assertEqual("connection refused", result[0].reason)

    def test_concurrent_upserts(self):
        store = _catalog.CatalogStore()

        def _work(n: int):
            for i in range(50):
                store.upsert(f"t{n}-{i}", "https://a/", "https://a/api", f"sha256-{i}")

        threads = [threading.Thread(target=_work, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(400, len(store))
        self.assertEqual(400, len(store.storage.get(_catalog.CATALOG_STORAGE_KEY)))

    def test_exclusive_blocks_other_writers(self):
        store = _catalog.CatalogStore()
        written = threading.Event()

        def _write():
            store.upsert("r", "https://a/", "https://a/api", "sha256-2")
            written.set()

        with store.exclusive():
            store.upsert("r", "https://a/", "https://a/api", "sha256-1")
            thread = threading.Thread(target=_write)
            thread.start()
            self.assertFalse(written.wait(0.2))
            self.assertEqual("sha256-1", store.get("r").content_id)
        thread.join()
        self.assertTrue(written.is_set())
        self.assertEqual("sha256-2", store.get("r").content_id)


if __name__ == '__main__':
    _unittest.main()
