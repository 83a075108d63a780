from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Iterator, Mapping, Optional

from ..errors import ExpressionError, StructuralError
from ..expr import Expr, truthy
from ..hooks import HookRegistry
from ..models import Document, Durability, same_value


def _partial_match(pattern: Mapping[str, Any], doc: Any) -> bool:
    if not isinstance(doc, dict):
        return False
    for name, expected in pattern.items():
        if name not in doc:
            return False
        actual = doc[name]
        if isinstance(expected, Mapping):
            if not _partial_match(expected, actual):
                return False
        elif not same_value(actual, expected):
            return False
    return True


def match_predicate(predicate: Any, doc: Document) -> bool:
    """
    Evaluate a filter predicate against a document.

    A mapping matches when every field it names is present and equal
    (nested mappings match partially); an expression or callable matches
    when its result is neither false nor null. Expressions that fail to
    evaluate (missing field, type mismatch) do not match; a callable that
    raises is a StructuralError.
    """
    if predicate is None:
        return True
    if isinstance(predicate, Mapping):
        return _partial_match(predicate, doc)
    if isinstance(predicate, Expr):
        try:
            return truthy(predicate.evaluate(doc))
        except ExpressionError:
            return False
    if callable(predicate):
        try:
            return truthy(predicate(dict(doc)))
        except Exception as exc:
            raise StructuralError(f"Filter predicate failed: {exc}") from exc
    raise TypeError(f"Unsupported predicate: {predicate!r}")


class DocumentSlot(ABC):
    """
    A single document held for read-modify-write.

    Obtained from `DocumentStore.locked()`; reads and writes go through the
    same transaction while the key lock is held.
    """

    @abstractmethod
    def read(self) -> Optional[Document]:
        """Current value of the document, or None if it does not exist."""
        ...

    @abstractmethod
    def write(self, value: Optional[Document], durability: Durability = Durability.HARD) -> None:
        """Replace the document; None removes it."""
        ...


class DocumentStore(ABC):
    """
    Table-addressed document set consumed by the mutation executor.

    Implementations must make `locked()` atomic with respect to concurrent
    writers of the same key, and own the per-table write hooks.
    """

    hooks: HookRegistry

    @abstractmethod
    def create_table(self, table: str, primary_key: Optional[str] = None) -> None:
        ...

    @abstractmethod
    def drop_table(self, table: str) -> None:
        ...

    @abstractmethod
    def list_tables(self) -> list[str]:
        ...

    @abstractmethod
    def primary_key(self, table: str) -> str:
        """
        Primary key field name of `table`.

        Raises:
            TableNotFound: if the table does not exist
        """
        ...

    @abstractmethod
    def get(self, table: str, key: Any) -> Optional[Document]:
        ...

    @abstractmethod
    def select(self, table: str, predicate: Any = None) -> Iterator[Document]:
        """Lazily yield matching documents in insertion order. Restartable."""
        ...

    def keys(self, table: str) -> Iterator[Any]:
        """Primary keys of `table` in insertion order."""
        pk = self.primary_key(table)
        for doc in self.select(table):
            yield doc[pk]

    @abstractmethod
    def put(
        self,
        table: str,
        key: Any,
        value: Optional[Document],
        durability: Durability = Durability.HARD,
    ) -> None:
        ...

    @abstractmethod
    def locked(self, table: str, key: Any) -> AbstractContextManager[DocumentSlot]:
        ...
