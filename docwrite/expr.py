"""
Row-relative expressions.

A small tagged expression tree evaluated against the current document. It is
used in update patches ("views = views + 1, defaulting to 0") and as filter
predicates:

    from docwrite.expr import row, branch

    Update({"views": row.field("views").add(1).default(0)})
    Filter("posts", row.field("status").eq("published"))

Only the operators needed by the write path exist: field access, arithmetic,
comparison, boolean logic, default and branch.

`default(fallback)` stands in for fields the wrapped expression reads that are
absent (or null): `row.field("views").add(1).default(0)` gives 1 for a
document without `views` and 6 for one with `views == 5`. A field that is
present with a falsy value such as 0 is used as is.
"""
from __future__ import annotations

import operator
from typing import Any, Callable, Optional

from .errors import ExpressionError
from .models import same_value

# Field nodes replaced by a default fallback, keyed by id(node)
_Subs = dict


class FieldMissing(ExpressionError):
    """A referenced field is absent (or null). Caught by `default`."""

    def __init__(self, message: str, node: Optional["Field"] = None) -> None:
        super().__init__(message)
        self.node = node


def truthy(value: Any) -> bool:
    # Only false and null are falsy; 0 and "" are true.
    return value is not None and value is not False


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class Expr:
    """Base class of all expression nodes."""

    def evaluate(self, doc: Any) -> Any:
        return self._eval(doc, {})

    def _eval(self, doc: Any, subs: _Subs) -> Any:
        raise NotImplementedError

    # builders

    def field(self, name: str) -> "Field":
        return Field(self, name)

    def add(self, other: Any) -> "BinOp":
        return BinOp("add", self, other)

    def sub(self, other: Any) -> "BinOp":
        return BinOp("sub", self, other)

    def mul(self, other: Any) -> "BinOp":
        return BinOp("mul", self, other)

    def div(self, other: Any) -> "BinOp":
        return BinOp("div", self, other)

    def mod(self, other: Any) -> "BinOp":
        return BinOp("mod", self, other)

    def eq(self, other: Any) -> "BinOp":
        return BinOp("eq", self, other)

    def ne(self, other: Any) -> "BinOp":
        return BinOp("ne", self, other)

    def lt(self, other: Any) -> "BinOp":
        return BinOp("lt", self, other)

    def le(self, other: Any) -> "BinOp":
        return BinOp("le", self, other)

    def gt(self, other: Any) -> "BinOp":
        return BinOp("gt", self, other)

    def ge(self, other: Any) -> "BinOp":
        return BinOp("ge", self, other)

    def and_(self, other: Any) -> "BinOp":
        return BinOp("and", self, other)

    def or_(self, other: Any) -> "BinOp":
        return BinOp("or", self, other)

    def not_(self) -> "Not":
        return Not(self)

    def default(self, fallback: Any) -> "Default":
        return Default(self, fallback)

    def has_fields(self, *names: str) -> "HasFields":
        return HasFields(self, names)


def as_expr(value: Any) -> Expr:
    return value if isinstance(value, Expr) else Const(value)


class Row(Expr):
    """The document currently being written."""

    def _eval(self, doc: Any, subs: _Subs) -> Any:
        return doc

    def __repr__(self) -> str:
        return "row"


class Const(Expr):
    def __init__(self, value: Any) -> None:
        self.value = value

    def _eval(self, doc: Any, subs: _Subs) -> Any:
        return self.value

    def __repr__(self) -> str:
        return f"const({self.value!r})"


class Field(Expr):
    def __init__(self, base: Expr, name: str) -> None:
        self.base = base
        self.name = name

    def _eval(self, doc: Any, subs: _Subs) -> Any:
        if id(self) in subs:
            return subs[id(self)]
        try:
            container = self.base._eval(doc, subs)
        except FieldMissing as exc:
            # report the outermost field so a default replaces the whole path
            raise FieldMissing(str(exc), self) from None
        if container is None:
            raise FieldMissing(f"Cannot read field `{self.name}` of null", self)
        if not isinstance(container, dict):
            raise ExpressionError(
                f"Cannot read field `{self.name}` of non-object {type(container).__name__}"
            )
        if self.name not in container:
            raise FieldMissing(f"No attribute `{self.name}` in object", self)
        return container[self.name]

    def __repr__(self) -> str:
        return f"{self.base!r}.field({self.name!r})"


def _add(left: Any, right: Any) -> Any:
    if _is_number(left) and _is_number(right):
        return left + right
    if isinstance(left, str) and isinstance(right, str):
        return left + right
    if isinstance(left, list) and isinstance(right, list):
        return left + right
    raise ExpressionError(
        f"Cannot add {type(left).__name__} and {type(right).__name__}"
    )


def _numeric(fn: Callable[[Any, Any], Any], name: str) -> Callable[[Any, Any], Any]:
    def apply(left: Any, right: Any) -> Any:
        if not (_is_number(left) and _is_number(right)):
            raise ExpressionError(
                f"Cannot {name} {type(left).__name__} and {type(right).__name__}"
            )
        try:
            return fn(left, right)
        except ZeroDivisionError:
            raise ExpressionError("Cannot divide by zero") from None
    return apply


def _compare(fn: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def apply(left: Any, right: Any) -> bool:
        try:
            return fn(left, right)
        except TypeError as exc:
            raise ExpressionError(str(exc)) from exc
    return apply


_ARITH = {
    "add": _add,
    "sub": _numeric(operator.sub, "subtract"),
    "mul": _numeric(operator.mul, "multiply"),
    "div": _numeric(operator.truediv, "divide"),
    "mod": _numeric(operator.mod, "take modulo of"),
}

_COMPARE = {
    "eq": same_value,
    "ne": lambda left, right: not same_value(left, right),
    "lt": _compare(operator.lt),
    "le": _compare(operator.le),
    "gt": _compare(operator.gt),
    "ge": _compare(operator.ge),
}


class BinOp(Expr):
    def __init__(self, op: str, left: Any, right: Any) -> None:
        if op not in _ARITH and op not in _COMPARE and op not in ("and", "or"):
            raise ValueError(f"Unknown operator: {op}")
        self.op = op
        self.left = as_expr(left)
        self.right = as_expr(right)

    def _eval(self, doc: Any, subs: _Subs) -> Any:
        left = self.left._eval(doc, subs)
        # and/or short-circuit on the left operand
        if self.op == "and":
            return self.right._eval(doc, subs) if truthy(left) else left
        if self.op == "or":
            return left if truthy(left) else self.right._eval(doc, subs)

        right = self.right._eval(doc, subs)
        if self.op in _COMPARE:
            return _COMPARE[self.op](left, right)
        for operand, value in ((self.left, left), (self.right, right)):
            if value is None:
                # a null field counts as missing so that `default` can recover
                node = operand if isinstance(operand, Field) else None
                raise FieldMissing(f"Expected a value for `{self.op}` but found null", node)
        return _ARITH[self.op](left, right)

    def __repr__(self) -> str:
        return f"{self.left!r}.{self.op}({self.right!r})"


class Not(Expr):
    def __init__(self, inner: Any) -> None:
        self.inner = as_expr(inner)

    def _eval(self, doc: Any, subs: _Subs) -> bool:
        return not truthy(self.inner._eval(doc, subs))


class Default(Expr):
    """
    Evaluates `inner`, substituting the fallback for each missing field it
    reads. Falls back entirely when the missing value cannot be traced to a
    single field, or when `inner` yields null.
    """

    def __init__(self, inner: Expr, fallback: Any) -> None:
        self.inner = inner
        self.fallback = as_expr(fallback)

    def _eval(self, doc: Any, subs: _Subs) -> Any:
        local = dict(subs)
        while True:
            try:
                value = self.inner._eval(doc, local)
            except FieldMissing as exc:
                if exc.node is None or id(exc.node) in local:
                    return self.fallback._eval(doc, subs)
                local[id(exc.node)] = self.fallback._eval(doc, subs)
                continue
            if value is None:
                return self.fallback._eval(doc, subs)
            return value

    def __repr__(self) -> str:
        return f"{self.inner!r}.default({self.fallback!r})"


class HasFields(Expr):
    def __init__(self, base: Expr, names: tuple) -> None:
        self.base = base
        self.names = names

    def _eval(self, doc: Any, subs: _Subs) -> bool:
        container = self.base._eval(doc, subs)
        if not isinstance(container, dict):
            return False
        return all(container.get(name) is not None for name in self.names)


class Branch(Expr):
    def __init__(self, arms: list, otherwise: Any) -> None:
        self.arms = [(as_expr(cond), as_expr(value)) for cond, value in arms]
        self.otherwise = as_expr(otherwise)

    def _eval(self, doc: Any, subs: _Subs) -> Any:
        for cond, value in self.arms:
            if truthy(cond._eval(doc, subs)):
                return value._eval(doc, subs)
        return self.otherwise._eval(doc, subs)


def branch(*args: Any) -> Branch:
    """
    branch(cond, value, [cond, value, ...], otherwise)

    Returns the value of the first arm whose condition is true, otherwise the
    last argument.
    """
    if len(args) < 3 or len(args) % 2 == 0:
        raise ValueError("branch() takes an odd number of arguments, at least 3")
    pairs = list(zip(args[:-1:2], args[1:-1:2]))
    return Branch(pairs, args[-1])


def const(value: Any) -> Const:
    return Const(value)


row = Row()
