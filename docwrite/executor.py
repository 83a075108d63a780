from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from .config import StoreConfig
from .conflict import Action, ErrorOnConflict, generate_key
from .errors import (
    DocumentWriteError,
    ExpressionError,
    PrimaryKeyChanged,
    StructuralError,
    TargetNotFound,
)
from .expr import Expr
from .hooks import WriteHook, intercept
from .merge import apply_patch, validate_patch
from .models import (
    Delete,
    Document,
    DocumentOutcome,
    Filter,
    Get,
    GetAll,
    Insert,
    MutationOptions,
    MutationSpec,
    Outcome,
    Selector,
    Table,
    Update,
    is_valid_key,
    same_value,
    selector_table,
    validate_document,
)
from .result import ResultAggregator, WriteResult
from .store.base import DocumentSlot, DocumentStore
from .store.metrics import observe_document_write, observe_mutation
from .store.schema import encode_key

logger = logging.getLogger(__name__)


@dataclass
class _Request:
    """Per-request state shared by every document of one mutation."""
    table: str
    primary_key: str
    spec: MutationSpec
    options: MutationOptions
    hook: Optional[WriteHook]


@dataclass
class _Task:
    index: int
    key: Any
    run: Callable[[], DocumentOutcome]


class MutationExecutor:
    """
    Executes insert/update/delete requests against a DocumentStore.

    Every target document goes through Resolving -> Hooking -> Committing
    while its key lock is held, and ends as one DocumentOutcome. Failures of
    single documents are reported in the WriteResult and never abort the
    rest of the batch; malformed requests raise StructuralError before any
    document is touched.

    Usage:
        executor = MutationExecutor(store)
        result = executor.mutate(Table("posts"), Insert({"title": "Lorem"}))
        result.inserted, result.generated_keys
    """

    def __init__(self, store: DocumentStore, config: Optional[StoreConfig] = None) -> None:
        self.store = store
        self.config = config or getattr(store, "config", None) or StoreConfig()

    def mutate(
        self,
        selector: Selector,
        spec: MutationSpec,
        options: Optional[MutationOptions] = None,
    ) -> WriteResult:
        """
        Apply `spec` to the documents `selector` resolves to.

        Raises:
            StructuralError: malformed spec/options, insert on a non-table
                selector or unknown table
            TransportError: the store failed while resolving targets
        """
        if not isinstance(spec, (Insert, Update, Delete)):
            raise StructuralError(f"Unsupported mutation: {spec!r}")
        options = options or MutationOptions()
        table = selector_table(selector)
        op_type = spec.op_type.value

        start_time = time.monotonic()
        status = "error"
        try:
            request = _Request(
                table=table,
                primary_key=self.store.primary_key(table),
                spec=spec,
                options=options,
                # one snapshot per request; a concurrent set_hook applies to later requests
                hook=self.store.hooks.get(table),
            )
            if isinstance(spec, Insert):
                tasks = self._insert_tasks(request, selector, spec)
            else:
                tasks = self._target_tasks(request, selector, spec)

            outcomes = self._run(tasks)

            aggregator = ResultAggregator(options.return_changes)
            for outcome in outcomes:
                aggregator.accumulate(outcome)
                observe_document_write(table, op_type, outcome.outcome.value)
            result = aggregator.result()

            status = "partial" if result.errors else "success"
            return result
        finally:
            # metric errors must not mask the outcome of the request
            try:
                observe_mutation(table, op_type, status, time.monotonic() - start_time)
            except Exception:
                logger.debug("Failed to record mutation metrics", exc_info=True)

    # planning

    def _insert_tasks(self, request: _Request, selector: Selector, spec: Insert) -> list[_Task]:
        if not isinstance(selector, Table):
            raise StructuralError(
                f"Insert requires a table target, got {type(selector).__name__}"
            )

        pk = request.primary_key
        tasks = []
        for index, doc in enumerate(spec.documents()):
            generated = pk not in doc
            if generated:
                doc = {pk: generate_key(), **doc}
            key = doc[pk]
            if not is_valid_key(key):
                raise StructuralError(
                    f"Primary key `{pk}` must be a string or a number, got {key!r}"
                )
            tasks.append(_Task(
                index=index,
                key=key,
                run=_bind(self._insert_one, request, index, key, doc, generated),
            ))
        return tasks

    def _target_tasks(self, request: _Request, selector: Selector, spec: MutationSpec) -> list[_Task]:
        if not isinstance(request.options.conflict, ErrorOnConflict):
            raise StructuralError("The `conflict` option only applies to inserts")
        if isinstance(spec, Update):
            patch = spec.patch
            if isinstance(patch, Mapping):
                validate_patch(patch)
            elif not callable(patch) and not isinstance(patch, Expr):
                raise StructuralError(
                    f"Update patch must be a document or a function, got {type(patch).__name__}"
                )
            handler = self._update_one
        else:
            handler = self._delete_one

        tasks = []
        for index, key in enumerate(self._resolve_keys(request, selector)):
            tasks.append(_Task(index=index, key=key, run=_bind(handler, request, index, key)))
        return tasks

    def _resolve_keys(self, request: _Request, selector: Selector) -> list[Any]:
        """
        Keys of the target set in resolution order.

        Table and filter targets are snapshotted here; each document is read
        again under its lock when processed.
        """
        if isinstance(selector, Get):
            if not is_valid_key(selector.key):
                raise StructuralError(f"Invalid primary key: {selector.key!r}")
            return [selector.key]

        if isinstance(selector, GetAll):
            keys, seen = [], set()
            for key in selector.keys:
                if not is_valid_key(key):
                    raise StructuralError(f"Invalid primary key: {key!r}")
                encoded = encode_key(key)
                if encoded in seen:
                    continue
                seen.add(encoded)
                if self.store.get(request.table, key) is not None:
                    keys.append(key)
            return keys

        if isinstance(selector, Filter):
            matched = self.store.select(request.table, selector.predicate)
            return [doc[request.primary_key] for doc in matched]
        return list(self.store.keys(request.table))

    # execution

    def _run(self, tasks: list[_Task]) -> list[DocumentOutcome]:
        # Documents sharing a key (repeated keys in one insert) run in order
        # within one group; groups may run in parallel.
        groups: dict[str, list[_Task]] = {}
        for task in tasks:
            groups.setdefault(encode_key(task.key), []).append(task)

        def run_group(group: list[_Task]) -> list[DocumentOutcome]:
            return [task.run() for task in group]

        workers = self.config.max_workers
        if workers <= 1 or len(groups) <= 1:
            outcomes = [o for group in groups.values() for o in run_group(group)]
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                outcomes = [o for batch in pool.map(run_group, groups.values()) for o in batch]

        outcomes.sort(key=lambda o: o.index)
        return outcomes

    def _insert_one(
        self, request: _Request, index: int, key: Any, doc: Document, generated: bool
    ) -> DocumentOutcome:
        existing = None
        try:
            with self.store.locked(request.table, key) as slot:
                existing = slot.read()
                resolution = request.options.conflict.resolve_insert(
                    request.primary_key, key, existing, doc
                )
                if resolution.action is Action.REJECT:
                    raise resolution.error
                if resolution.action is Action.NOOP:
                    return DocumentOutcome(
                        index, Outcome.UNCHANGED, key, old_val=existing, new_val=existing
                    )
                return self._commit(request, slot, index, key, existing, resolution.value, generated)
        except DocumentWriteError as exc:
            return self._failed(request, index, key, existing, exc)

    def _update_one(self, request: _Request, index: int, key: Any) -> DocumentOutcome:
        existing = None
        try:
            with self.store.locked(request.table, key) as slot:
                existing = slot.read()
                if existing is None:
                    raise TargetNotFound(f"No document {key!r} in table {request.table}")
                candidate = apply_patch(existing, request.spec.patch)
                try:
                    candidate = validate_document(candidate)
                except StructuralError as exc:
                    raise ExpressionError(str(exc)) from exc
                return self._commit(request, slot, index, key, existing, candidate)
        except TargetNotFound:
            return DocumentOutcome(index, Outcome.SKIPPED, key)
        except DocumentWriteError as exc:
            return self._failed(request, index, key, existing, exc)

    def _delete_one(self, request: _Request, index: int, key: Any) -> DocumentOutcome:
        existing = None
        try:
            with self.store.locked(request.table, key) as slot:
                existing = slot.read()
                if existing is None:
                    raise TargetNotFound(f"No document {key!r} in table {request.table}")
                return self._commit(request, slot, index, key, existing, None)
        except TargetNotFound:
            return DocumentOutcome(index, Outcome.SKIPPED, key)
        except DocumentWriteError as exc:
            return self._failed(request, index, key, existing, exc)

    def _commit(
        self,
        request: _Request,
        slot: DocumentSlot,
        index: int,
        key: Any,
        existing: Optional[Document],
        candidate: Optional[Document],
        generated: bool = False,
    ) -> DocumentOutcome:
        pk = request.primary_key
        if candidate is not None and not same_value(candidate.get(pk), key):
            raise PrimaryKeyChanged(
                f"Primary key `{pk}` cannot be changed ({key!r} -> {candidate.get(pk)!r})"
            )

        final = intercept(request.hook, request.table, pk, key, existing, candidate)

        if final is None:
            if existing is None:
                # hook dropped a fresh insert; nothing to write
                return DocumentOutcome(index, Outcome.SKIPPED, key)
            slot.write(None, request.options.durability)
            logger.debug("Deleted %s:%r", request.table, key)
            return DocumentOutcome(index, Outcome.DELETED, key, old_val=existing, new_val=None)

        if same_value(final, existing):
            return DocumentOutcome(index, Outcome.UNCHANGED, key, old_val=existing, new_val=existing)

        slot.write(final, request.options.durability)
        outcome = Outcome.INSERTED if existing is None else Outcome.REPLACED
        logger.debug("%s %s:%r", outcome.value.capitalize(), request.table, key)
        return DocumentOutcome(
            index, outcome, key, old_val=existing, new_val=final, generated_key=generated
        )

    def _failed(
        self,
        request: _Request,
        index: int,
        key: Any,
        existing: Optional[Document],
        exc: DocumentWriteError,
    ) -> DocumentOutcome:
        logger.info(
            "%s of %s:%r failed: %s",
            request.spec.op_type.value.capitalize(), request.table, key, exc,
        )
        return DocumentOutcome(index, Outcome.ERROR, key, old_val=existing, error=exc)


def _bind(fn: Callable[..., DocumentOutcome], *args: Any) -> Callable[[], DocumentOutcome]:
    return lambda: fn(*args)
