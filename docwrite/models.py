from __future__ import annotations

from dataclasses import asdict, dataclass, is_dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from .errors import StructuralError

Document = dict[str, Any]
Key = Union[str, int, float]

# Values a document may hold. Anything else is rejected at the boundary.
_SCALARS = (str, int, float, bool, type(None))


class OpType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class Durability(str, Enum):
    HARD = "hard"
    SOFT = "soft"


class Outcome(str, Enum):
    INSERTED = "inserted"
    REPLACED = "replaced"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    DELETED = "deleted"
    ERROR = "error"


def validate_value(value: Any, path: str) -> Any:
    """
    Check that `value` belongs to the closed set of document values:
    None, bool, number, string, list of values or a string-keyed mapping.

    Returns a normalized copy (plain dicts and lists).

    Raises:
        StructuralError: naming the offending path
    """
    if isinstance(value, _SCALARS):
        return value
    if isinstance(value, (list, tuple)):
        return [validate_value(item, f"{path}[{i}]") for i, item in enumerate(value)]
    if isinstance(value, Mapping):
        out = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise StructuralError(
                    f"Document keys must be strings, got {type(k).__name__} at {path}"
                )
            out[k] = validate_value(v, f"{path}.{k}" if path else k)
        return out
    raise StructuralError(
        f"Unsupported value of type {type(value).__name__} at {path or '<root>'}"
    )


def validate_document(doc: Any, what: str = "document") -> Document:
    if not isinstance(doc, Mapping):
        raise StructuralError(f"Expected {what} to be a mapping, got {type(doc).__name__}")
    return validate_value(doc, "")


def is_valid_key(key: Any) -> bool:
    return isinstance(key, (str, int, float)) and not isinstance(key, bool)


def same_value(a: Any, b: Any) -> bool:
    """
    Deep equality over document values where booleans and numbers never
    compare equal (`True` vs `1`, `False` vs `0`). Ints and floats compare
    numerically.
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if a.keys() != b.keys():
            return False
        return all(same_value(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(same_value(x, y) for x, y in zip(a, b))
    if isinstance(a, (Mapping, list, tuple)) or isinstance(b, (Mapping, list, tuple)):
        return False
    return a == b


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Table:
    """The whole table. The only selector an insert may target."""
    name: str


@dataclass(frozen=True)
class Get:
    table: str
    key: Key


@dataclass(frozen=True)
class GetAll:
    table: str
    keys: tuple

    def __init__(self, table: str, keys: Sequence[Key]) -> None:
        object.__setattr__(self, "table", table)
        object.__setattr__(self, "keys", tuple(keys))


@dataclass(frozen=True)
class Filter:
    """
    Documents of `table` matching `predicate`.

    The predicate is a partial document (nested partial match), a callable
    taking the document, or a row expression.
    """
    table: str
    predicate: Any


Selector = Union[Table, Get, GetAll, Filter]


def selector_table(selector: Selector) -> str:
    if isinstance(selector, Table):
        return selector.name
    if isinstance(selector, (Get, GetAll, Filter)):
        return selector.table
    raise StructuralError(f"Unsupported selector: {selector!r}")


# ---------------------------------------------------------------------------
# Mutation specs
# ---------------------------------------------------------------------------

def _is_record(value: Any) -> bool:
    # dataclass instances are inserted as their field mapping
    return is_dataclass(value) and not isinstance(value, type)


@dataclass
class Insert:
    """A document, a dataclass instance, or a sequence of either."""
    payload: Any

    op_type = OpType.INSERT

    def documents(self) -> list[Document]:
        if isinstance(self.payload, Mapping) or _is_record(self.payload):
            docs = [self.payload]
        elif isinstance(self.payload, (list, tuple)):
            docs = list(self.payload)
        else:
            raise StructuralError(
                f"Insert payload must be a document or a sequence of documents, "
                f"got {type(self.payload).__name__}"
            )
        return [
            validate_document(asdict(d) if _is_record(d) else d, "insert payload")
            for d in docs
        ]


@dataclass
class Update:
    """
    Partial document merged into each target, or a callable computing the
    patch from the current document.
    """
    patch: Union[Mapping[str, Any], Callable[[Document], Mapping[str, Any]]]

    op_type = OpType.UPDATE


@dataclass
class Delete:
    op_type = OpType.DELETE


MutationSpec = Union[Insert, Update, Delete]


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------

_RETURN_CHANGES = (False, True, "always")


@dataclass
class MutationOptions:
    conflict: Any = "error"
    durability: Union[Durability, str] = Durability.HARD
    return_changes: Union[bool, str] = False

    def __post_init__(self) -> None:
        """Validate and normalize options; invalid values are structural errors."""
        try:
            self.durability = Durability(self.durability)
        except ValueError:
            raise StructuralError(
                f"Durability option `{self.durability}` unrecognized "
                "(options are \"hard\" and \"soft\")"
            ) from None

        if self.return_changes not in _RETURN_CHANGES or (
            isinstance(self.return_changes, int)
            and not isinstance(self.return_changes, bool)
        ):
            raise StructuralError(
                f"return_changes must be True, False or \"always\", got {self.return_changes!r}"
            )

        # Deferred import: conflict policies depend on the merge resolver.
        from .conflict import policy_for

        self.conflict = policy_for(self.conflict)

    @property
    def wants_changes(self) -> bool:
        return self.return_changes is not False


@dataclass
class Change:
    old_val: Optional[Document]
    new_val: Optional[Document]
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"old_val": self.old_val, "new_val": self.new_val}
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class DocumentOutcome:
    """Result of running one target document through the executor."""
    index: int
    outcome: Outcome
    key: Any = None
    old_val: Optional[Document] = None
    new_val: Optional[Document] = None
    generated_key: bool = False
    error: Optional[BaseException] = None
