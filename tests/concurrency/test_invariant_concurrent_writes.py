from __future__ import annotations

import os
import threading
from typing import Callable

import pytest

from docwrite.expr import row
from docwrite.models import Get
from docwrite.writer import DocumentWriter


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return int(raw)


def default_threads() -> int:
    return env_int("DOCWRITE_CONCURRENCY_THREADS", 5)


def default_ops_per_thread() -> int:
    return env_int("DOCWRITE_CONCURRENCY_OPS", 30)


def run_threads(count: int, worker_fn: Callable[[int], None]) -> None:
    errors: list[BaseException] = []

    def _run(worker_id: int) -> None:
        try:
            worker_fn(worker_id)
        except BaseException as exc:  # pragma: no cover
            errors.append(exc)

    threads = [threading.Thread(target=_run, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=120)

    if errors:
        raise errors[0]


@pytest.mark.concurrency
def test_invariant_no_lost_increments(writer: DocumentWriter) -> None:
    writer.insert("posts", {"id": 1})
    threads = default_threads()
    ops = default_ops_per_thread()

    def worker(worker_id: int) -> None:
        for _ in range(ops):
            result = writer.update(Get("posts", 1), {"views": row.field("views").add(1).default(0)})
            assert result.replaced == 1, result.to_dict()

    run_threads(threads, worker)

    assert writer.get("posts", 1)["views"] == threads * ops


@pytest.mark.concurrency
def test_invariant_single_insert_wins(writer: DocumentWriter) -> None:
    threads = default_threads()
    outcomes: list[dict] = []
    lock = threading.Lock()

    def worker(worker_id: int) -> None:
        result = writer.insert("posts", {"id": "shared", "winner": worker_id})
        with lock:
            outcomes.append(result.to_dict())

    run_threads(threads, worker)

    assert sum(o["inserted"] for o in outcomes) == 1
    assert sum(o["errors"] for o in outcomes) == threads - 1
    winner = writer.get("posts", "shared")["winner"]
    assert winner in range(threads)


@pytest.mark.concurrency
def test_invariant_write_hook_counts_every_write(writer: DocumentWriter) -> None:
    def write_counter(key, old, new):
        if new is None:
            return None
        previous = old.get("write_counter", 0) if old else 0
        return {**new, "write_counter": previous + 1}

    writer.set_hook("posts", write_counter)
    writer.insert("posts", {"id": 1})
    threads = default_threads()
    ops = default_ops_per_thread()

    def worker(worker_id: int) -> None:
        for i in range(ops):
            writer.update(Get("posts", 1), {"last": [worker_id, i]})

    run_threads(threads, worker)

    assert writer.get("posts", 1)["write_counter"] == 1 + threads * ops
