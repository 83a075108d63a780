from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from .errors import HookAborted, PrimaryKeyChanged, StructuralError
from .models import Document, same_value, validate_document

logger = logging.getLogger(__name__)

WriteHook = Callable[[Any, Optional[Document], Optional[Document]], Any]


class _Abort:
    def __repr__(self) -> str:
        return "ABORT"


# Returned by a hook to veto the write.
ABORT = _Abort()


class HookRegistry:
    """
    Per-table write hooks.

    One hook per table. Replacing or clearing a hook is atomic: a request
    takes a snapshot with `get()` once and uses it for every document, so no
    document sees a half-installed hook.

    Usage:
        registry = HookRegistry()
        registry.set("posts", stamp_counter)   # {"created": True, ...}
        hook = registry.get("posts")
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hooks: dict[str, WriteHook] = {}

    def set(self, table: str, hook: Optional[WriteHook]) -> dict[str, bool]:
        """
        Install, replace or (with None) remove the hook of `table`.

        Returns:
            {"created": bool, "replaced": bool, "deleted": bool}
        """
        if hook is not None and not callable(hook):
            raise StructuralError(f"Write hook must be callable, got {type(hook).__name__}")

        with self._lock:
            previous = self._hooks.get(table)
            if hook is None:
                self._hooks.pop(table, None)
            else:
                self._hooks[table] = hook

        status = {
            "created": previous is None and hook is not None,
            "replaced": previous is not None and hook is not None,
            "deleted": previous is not None and hook is None,
        }
        logger.info("Write hook for table %s updated: %s", table, status)
        return status

    def get(self, table: str) -> Optional[WriteHook]:
        with self._lock:
            return self._hooks.get(table)

    def drop_table(self, table: str) -> None:
        with self._lock:
            self._hooks.pop(table, None)


def intercept(
    hook: Optional[WriteHook],
    table: str,
    primary_key: str,
    key: Any,
    old_value: Optional[Document],
    new_value: Optional[Document],
) -> Optional[Document]:
    """
    Run the candidate write of one document through the table's hook.

    Returns the value to commit (None means "no document"). Deletes may only
    be confirmed (None) or vetoed; they cannot be rewritten into a value.

    Raises:
        HookAborted: the hook vetoed the write, failed, or returned an
            invalid value
        PrimaryKeyChanged: the hook changed the primary key
    """
    if hook is None:
        return new_value

    try:
        result = hook(
            key,
            dict(old_value) if old_value is not None else None,
            dict(new_value) if new_value is not None else None,
        )
    except HookAborted:
        raise
    except Exception as exc:
        raise HookAborted(f"Write hook on table {table} failed: {exc}") from exc

    if result is ABORT:
        raise HookAborted(f"Write hook on table {table} aborted write of {key!r}")

    if new_value is None:
        if result is not None:
            raise HookAborted(
                f"Write hook on table {table} returned a value for a deletion of {key!r}"
            )
        return None

    if result is None:
        return None

    try:
        value = validate_document(result, "write hook result")
    except StructuralError as exc:
        raise HookAborted(f"Write hook on table {table} returned {exc}") from exc

    if not same_value(value.get(primary_key), key):
        raise PrimaryKeyChanged(
            f"Primary key `{primary_key}` cannot be changed by a write hook "
            f"({key!r} -> {value.get(primary_key)!r})"
        )
    return value
