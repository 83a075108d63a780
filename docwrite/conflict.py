"""
Conflict policies decide what an insert does when a document with the same
primary key already exists.

The built-in `error`, `replace` and `update` behaviours and user supplied
resolution functions all implement the same `ConflictPolicy` interface.
"""
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from .errors import (
    ConflictRejected,
    DocumentWriteError,
    DuplicatePrimaryKey,
    PrimaryKeyChanged,
    StructuralError,
)
from .merge import apply_patch
from .models import Document, same_value, validate_document


def generate_key() -> str:
    """Random 128-bit identifier rendered as a string."""
    return str(uuid.uuid4())


class Action(str, Enum):
    COMMIT = "commit"
    REJECT = "reject"
    NOOP = "noop"


@dataclass
class Resolution:
    action: Action
    value: Optional[Document] = None
    error: Optional[DocumentWriteError] = None

    @classmethod
    def commit(cls, value: Document) -> "Resolution":
        return cls(Action.COMMIT, value=value)

    @classmethod
    def reject(cls, error: DocumentWriteError) -> "Resolution":
        return cls(Action.REJECT, error=error)

    @classmethod
    def noop(cls) -> "Resolution":
        return cls(Action.NOOP)


class _Signal:
    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return self.name


# Returned by a custom resolution function.
KEEP_OLD = _Signal("KEEP_OLD")
REJECT = _Signal("REJECT")


class ConflictPolicy(ABC):
    """
    Strategy for inserts whose primary key already exists.

    Subclasses implement `on_conflict`; `resolve_insert` handles the
    fresh-insert case common to every policy.
    """

    name: str = "custom"

    def resolve_insert(
        self,
        primary_key: str,
        key: Any,
        existing: Optional[Document],
        incoming: Document,
    ) -> Resolution:
        if existing is None:
            return Resolution.commit(incoming)
        return self.on_conflict(primary_key, key, existing, incoming)

    @abstractmethod
    def on_conflict(
        self,
        primary_key: str,
        key: Any,
        existing: Document,
        incoming: Document,
    ) -> Resolution:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class ErrorOnConflict(ConflictPolicy):
    name = "error"

    def on_conflict(self, primary_key, key, existing, incoming) -> Resolution:
        return Resolution.reject(
            DuplicatePrimaryKey(f"Duplicate primary key `{primary_key}`: {key!r}")
        )


class ReplaceOnConflict(ConflictPolicy):
    name = "replace"

    def on_conflict(self, primary_key, key, existing, incoming) -> Resolution:
        return Resolution.commit(incoming)


class UpdateOnConflict(ConflictPolicy):
    name = "update"

    def on_conflict(self, primary_key, key, existing, incoming) -> Resolution:
        return Resolution.commit(apply_patch(existing, incoming))


class CustomConflict(ConflictPolicy):
    """
    Wraps `fn(key, old_doc, new_doc)`, which returns the document to commit,
    `KEEP_OLD` to leave the stored document untouched or `REJECT` to fail the
    insert.
    """

    def __init__(self, fn: Callable[[Any, Document, Document], Any]) -> None:
        self.fn = fn

    def on_conflict(self, primary_key, key, existing, incoming) -> Resolution:
        try:
            result = self.fn(key, dict(existing), dict(incoming))
        except DocumentWriteError as exc:
            return Resolution.reject(exc)
        except Exception as exc:
            return Resolution.reject(
                ConflictRejected(f"Conflict resolution for {key!r} failed: {exc}")
            )
        if result is KEEP_OLD:
            return Resolution.noop()
        if result is REJECT:
            return Resolution.reject(
                ConflictRejected(f"Conflict resolution rejected insert of {key!r}")
            )
        try:
            value = validate_document(result, "conflict resolution result")
        except StructuralError as exc:
            return Resolution.reject(ConflictRejected(str(exc)))
        if not same_value(value.get(primary_key), key):
            return Resolution.reject(
                PrimaryKeyChanged(
                    f"Primary key `{primary_key}` cannot be changed "
                    f"({key!r} -> {value.get(primary_key)!r})"
                )
            )
        return Resolution.commit(value)

    def __repr__(self) -> str:
        return f"CustomConflict({getattr(self.fn, '__name__', self.fn)!r})"


_BUILTIN = {
    "error": ErrorOnConflict,
    "replace": ReplaceOnConflict,
    "update": UpdateOnConflict,
}


def policy_for(option: Any) -> ConflictPolicy:
    """
    Map a `conflict` option value to a policy.

    Raises:
        StructuralError: if the option is not recognized
    """
    if isinstance(option, ConflictPolicy):
        return option
    if isinstance(option, str):
        try:
            return _BUILTIN[option]()
        except KeyError:
            raise StructuralError(
                f"Conflict option `{option}` unrecognized "
                "(options are \"error\", \"replace\" and \"update\")"
            ) from None
    if callable(option):
        return CustomConflict(option)
    raise StructuralError(f"Unsupported conflict option: {option!r}")
