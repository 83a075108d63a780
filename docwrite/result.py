from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .models import Change, DocumentOutcome, Outcome

_COUNTERS = ("inserted", "replaced", "unchanged", "skipped", "deleted", "errors")


@dataclass
class WriteResult:
    """
    Aggregated report of one mutation request.

    `changes` is None unless change reporting was requested, and
    `first_error` is None unless at least one document failed.
    """
    inserted: int = 0
    replaced: int = 0
    unchanged: int = 0
    skipped: int = 0
    deleted: int = 0
    errors: int = 0
    generated_keys: list[str] = field(default_factory=list)
    changes: Optional[list[Change]] = None
    first_error: Optional[str] = None

    @property
    def total(self) -> int:
        return sum(getattr(self, name) for name in _COUNTERS)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {name: getattr(self, name) for name in _COUNTERS}
        out["generated_keys"] = list(self.generated_keys)
        if self.changes is not None:
            out["changes"] = [change.to_dict() for change in self.changes]
        if self.errors > 0:
            out["first_error"] = self.first_error
        return out


class ResultAggregator:
    """
    Folds per-document outcomes into a WriteResult.

    Outcomes must be accumulated in target-resolution order; the lists in the
    report keep that order.
    """

    def __init__(self, return_changes: Union[bool, str] = False) -> None:
        self.return_changes = return_changes
        self._result = WriteResult(changes=[] if return_changes is not False else None)

    def accumulate(self, outcome: DocumentOutcome) -> None:
        result = self._result
        kind = outcome.outcome

        if kind is Outcome.ERROR:
            result.errors += 1
            if result.first_error is None:
                result.first_error = str(outcome.error)
        else:
            counter = kind.value
            setattr(result, counter, getattr(result, counter) + 1)

        if kind is Outcome.INSERTED and outcome.generated_key:
            result.generated_keys.append(outcome.key)

        if result.changes is not None:
            change = self._change_for(outcome)
            if change is not None:
                result.changes.append(change)

    def _change_for(self, outcome: DocumentOutcome) -> Optional[Change]:
        kind = outcome.outcome
        if kind in (Outcome.INSERTED, Outcome.REPLACED, Outcome.DELETED):
            return Change(old_val=outcome.old_val, new_val=outcome.new_val)
        if self.return_changes != "always":
            return None
        if kind is Outcome.ERROR:
            return Change(
                old_val=outcome.old_val,
                new_val=outcome.old_val,
                error=str(outcome.error),
            )
        # unchanged and skipped documents report their (unmodified) state
        return Change(old_val=outcome.old_val, new_val=outcome.old_val)

    def result(self) -> WriteResult:
        return self._result
