from __future__ import annotations

from typing import Any, Optional, Union

from .executor import MutationExecutor
from .hooks import WriteHook
from .models import (
    Delete,
    Durability,
    Insert,
    MutationOptions,
    MutationSpec,
    Selector,
    Table,
    Update,
)
from .result import WriteResult
from .store.base import DocumentStore


def _as_selector(target: Union[Selector, str]) -> Selector:
    return Table(target) if isinstance(target, str) else target


class DocumentWriter:
    """
    Write API over a document store: insert, update, delete and write hooks.

    Every call returns the aggregated WriteResult; per-document failures are
    reported through `errors` and `first_error` rather than raised.

    Usage:
        writer = DocumentWriter(SqlDocumentStore(engine))
        writer.insert("posts", {"id": 1, "title": "Lorem ipsum"})
        writer.update(Get("posts", 1), {"views": row.field("views").add(1).default(0)})
        writer.delete(Filter("posts", {"status": "published"}))
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self.executor = MutationExecutor(store)

    def mutate(
        self,
        selector: Selector,
        spec: MutationSpec,
        options: Optional[MutationOptions] = None,
    ) -> WriteResult:
        return self.executor.mutate(selector, spec, options)

    def insert(
        self,
        table: Union[Table, str],
        payload: Any,
        conflict: Any = "error",
        durability: Union[Durability, str] = Durability.HARD,
        return_changes: Union[bool, str] = False,
    ) -> WriteResult:
        """
        Insert one document (a mapping or a dataclass instance) or a
        sequence of documents.

        conflict: "error", "replace", "update", a ConflictPolicy or a
        function (key, old_doc, new_doc) returning the document to keep.
        """
        options = MutationOptions(
            conflict=conflict, durability=durability, return_changes=return_changes
        )
        return self.executor.mutate(_as_selector(table), Insert(payload), options)

    def update(
        self,
        target: Union[Selector, str],
        patch: Any,
        durability: Union[Durability, str] = Durability.HARD,
        return_changes: Union[bool, str] = False,
    ) -> WriteResult:
        options = MutationOptions(durability=durability, return_changes=return_changes)
        return self.executor.mutate(_as_selector(target), Update(patch), options)

    def delete(
        self,
        target: Union[Selector, str],
        durability: Union[Durability, str] = Durability.HARD,
        return_changes: Union[bool, str] = False,
    ) -> WriteResult:
        options = MutationOptions(durability=durability, return_changes=return_changes)
        return self.executor.mutate(_as_selector(target), Delete(), options)

    def get(self, table: str, key: Any) -> Optional[dict]:
        return self.store.get(table, key)

    def set_hook(self, table: str, hook: Optional[WriteHook]) -> dict[str, bool]:
        """
        Install (or with None, remove) the write hook of `table`.

        The hook is called as hook(key, old_value, new_value) for every
        subsequent write and returns the value to commit.

        Raises:
            TableNotFound: if the table does not exist
        """
        self.store.primary_key(table)
        return self.store.hooks.set(table, hook)

    def get_hook(self, table: str) -> Optional[WriteHook]:
        self.store.primary_key(table)
        return self.store.hooks.get(table)
