from __future__ import annotations

from contextlib import contextmanager

import pytest

from docwrite.errors import StructuralError, TransportError
from docwrite.executor import MutationExecutor
from docwrite.expr import row
from docwrite.models import Get, Insert, Table, Update
from docwrite.writer import DocumentWriter


def test_unsupported_spec(store) -> None:
    executor = MutationExecutor(store)

    with pytest.raises(StructuralError):
        executor.mutate(Table("posts"), {"id": 1})


def test_unsupported_selector(store) -> None:
    executor = MutationExecutor(store)

    with pytest.raises(StructuralError):
        executor.mutate("posts", Insert({"id": 1}))


def test_default_options(store) -> None:
    result = MutationExecutor(store).mutate(Table("posts"), Insert({"id": 1}))

    assert result.inserted == 1
    assert result.changes is None


def test_config_falls_back_to_store(store_factory) -> None:
    store = store_factory(max_workers=3)

    assert MutationExecutor(store).config.max_workers == 3


class TestParallelExecution:
    @pytest.fixture
    def parallel_writer(self, store_factory) -> DocumentWriter:
        store = store_factory(max_workers=4)
        store.create_table("posts")
        return DocumentWriter(store)

    def test_generated_keys_keep_payload_order(self, parallel_writer) -> None:
        payload = [{"n": i} for i in range(40)]

        result = parallel_writer.insert("posts", payload, return_changes=True)

        assert result.inserted == 40
        numbers = [parallel_writer.get("posts", key)["n"] for key in result.generated_keys]
        assert numbers == list(range(40))
        assert [c.new_val["n"] for c in result.changes] == list(range(40))

    def test_repeated_keys_apply_in_order(self, parallel_writer) -> None:
        payload = [{"id": i % 3, "n": i} for i in range(12)]

        result = parallel_writer.insert("posts", payload, conflict="replace")

        assert result.inserted == 3
        assert result.replaced == 9
        assert [parallel_writer.get("posts", k)["n"] for k in range(3)] == [9, 10, 11]

    def test_first_error_is_first_in_resolution_order(self, parallel_writer) -> None:
        parallel_writer.insert("posts", [{"id": 5}, {"id": 30}])

        result = parallel_writer.insert("posts", [{"id": i} for i in range(40)])

        assert result.errors == 2
        assert result.first_error.endswith("5")

    def test_update_whole_table(self, parallel_writer) -> None:
        parallel_writer.insert("posts", [{"id": i, "views": i} for i in range(20)])

        result = parallel_writer.update("posts", {"views": row.field("views").add(1)})

        assert result.replaced == 20
        assert [parallel_writer.get("posts", i)["views"] for i in range(20)] == list(range(1, 21))


class TestStoreFailures:
    def test_transport_error_fails_the_document(self, store, writer, monkeypatch) -> None:
        real_locked = store.locked

        @contextmanager
        def flaky_locked(table, key):
            if key == 2:
                raise TransportError("connection reset")
            with real_locked(table, key) as slot:
                yield slot

        monkeypatch.setattr(store, "locked", flaky_locked)
        result = writer.insert("posts", [{"id": 1}, {"id": 2}, {"id": 3}])

        assert result.inserted == 2
        assert result.errors == 1
        assert result.first_error == "connection reset"

    def test_lock_timeout_is_a_document_error(self, store_factory) -> None:
        store = store_factory(lock_timeout=0.05)
        store.create_table("posts")
        writer = DocumentWriter(store)
        writer.insert("posts", {"id": 1, "views": 0})

        with store._locks.hold("posts", 1, timeout=1):
            result = writer.update(Get("posts", 1), {"views": 1})

        assert result.errors == 1
        assert "Failed to acquire lock" in result.first_error
        assert writer.get("posts", 1)["views"] == 0

    def test_failed_write_is_rolled_back(self, store, writer, monkeypatch) -> None:
        writer.insert("posts", {"id": 1, "views": 0})

        from docwrite.store import sql

        def failing_write(self, value, durability=None):
            self.session.put(self.table, self.key, value)
            raise TransportError("commit lost")

        monkeypatch.setattr(sql._SqlSlot, "write", failing_write)
        result = writer.mutate(Get("posts", 1), Update({"views": 1}))

        assert result.errors == 1
        assert writer.get("posts", 1)["views"] == 0
