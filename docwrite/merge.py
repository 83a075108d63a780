"""
Merge resolver: computes the document an update (or an `update`-policy
insert conflict) produces from the existing document and a patch.

Rules:
- nested documents merge recursively
- every other value, lists included, replaces the existing field
- `REMOVE` deletes the field; a field absent from the patch is left alone
- `literal(value)` replaces a nested document instead of merging into it
- row expressions are evaluated against the existing document first

Neither input is mutated.
"""
from __future__ import annotations

import copy
from typing import Any, Callable, Mapping, Optional, Union

from .errors import ExpressionError, StructuralError
from .expr import Expr
from .models import Document, validate_value


class _Remove:
    _instance: Optional["_Remove"] = None

    def __new__(cls) -> "_Remove":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "REMOVE"

    def __copy__(self) -> "_Remove":
        return self

    def __deepcopy__(self, memo: dict) -> "_Remove":
        return self


REMOVE = _Remove()


class Literal:
    """Wraps a value that must replace the existing field as-is."""

    __slots__ = ("value",)

    def __init__(self, value: Any) -> None:
        self.value = value

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Literal) and other.value == self.value

    def __repr__(self) -> str:
        return f"literal({self.value!r})"


def literal(value: Any = REMOVE) -> Union[Literal, _Remove]:
    """`literal()` with no argument is the same as `REMOVE`."""
    if value is REMOVE:
        return REMOVE
    return Literal(value)


Patch = Union[Mapping[str, Any], Callable[[Document], Mapping[str, Any]]]


def _evaluate(value: Any, existing: Optional[Document]) -> Any:
    if isinstance(value, Expr):
        return copy.deepcopy(value.evaluate(existing))
    if isinstance(value, Literal):
        return Literal(_evaluate(value.value, existing))
    if value is REMOVE:
        return value
    if isinstance(value, Mapping):
        return {k: _evaluate(v, existing) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_evaluate(v, existing) for v in value]
    return value


def validate_patch(patch: Any, path: str = "") -> None:
    """
    Check a literal patch up front: document values plus expressions,
    `REMOVE` and `literal(...)`.

    Raises:
        StructuralError: on any other value
    """
    if isinstance(patch, Expr) or patch is REMOVE:
        return
    if isinstance(patch, Literal):
        validate_patch(patch.value, path)
    elif isinstance(patch, Mapping):
        for k, v in patch.items():
            if not isinstance(k, str):
                raise StructuralError(f"Document keys must be strings, got {type(k).__name__}")
            validate_patch(v, f"{path}.{k}" if path else k)
    elif isinstance(patch, (list, tuple)):
        for i, item in enumerate(patch):
            validate_patch(item, f"{path}[{i}]")
    else:
        validate_value(patch, path)


def evaluate_patch(existing: Optional[Document], patch: Patch) -> dict[str, Any]:
    """
    Resolve a patch against the existing document.

    A callable patch is invoked with a deep copy of the document; any row
    expressions in the (resulting) patch are then evaluated.

    Raises:
        ExpressionError: if an expression cannot be evaluated or the callable
            does not return a mapping
    """
    if callable(patch) and not isinstance(patch, (Mapping, Expr)):
        try:
            patch = patch(copy.deepcopy(existing))
        except ExpressionError:
            raise
        except Exception as exc:
            raise ExpressionError(f"Update function failed: {exc}") from exc
    if isinstance(patch, Expr):
        patch = patch.evaluate(existing)
    if not isinstance(patch, Mapping):
        raise ExpressionError(
            f"Update patch must evaluate to an object, got {type(patch).__name__}"
        )
    return _evaluate(patch, existing)


def _strip(value: Any) -> Any:
    """Unwrap literals and drop removed fields from a value written wholesale."""
    if isinstance(value, Literal):
        return _strip(value.value)
    if isinstance(value, Mapping):
        return {k: _strip(v) for k, v in value.items() if v is not REMOVE}
    if isinstance(value, (list, tuple)):
        return [_strip(v) for v in value]
    return copy.deepcopy(value)


def merge(existing: Optional[Document], patch: Mapping[str, Any]) -> Document:
    """
    Deep-merge an already evaluated patch into `existing`.

    >>> merge({"a": 1, "c": {"x": 1, "y": 2}}, {"c": {"y": 3}})
    {'a': 1, 'c': {'x': 1, 'y': 3}}
    """
    result: Document = copy.deepcopy(dict(existing)) if existing else {}
    for key, value in patch.items():
        if value is REMOVE:
            result.pop(key, None)
        elif isinstance(value, Literal):
            result[key] = _strip(value.value)
        elif isinstance(value, Mapping) and isinstance(result.get(key), dict):
            result[key] = merge(result[key], value)
        else:
            result[key] = _strip(value)
    return result


def apply_patch(existing: Document, patch: Patch) -> Document:
    """Evaluate `patch` against `existing` and merge the result."""
    return merge(existing, evaluate_patch(existing, patch))
