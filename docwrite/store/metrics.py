from __future__ import annotations

from ..metrics.registry import (
    DOCUMENT_WRITES_TOTAL,
    KEY_LOCK_ACQUIRE_LATENCY_SECONDS,
    MUTATION_LATENCY_SECONDS,
    MUTATIONS_TOTAL,
)


def observe_document_write(table: str, op_type: str, outcome: str) -> None:
    DOCUMENT_WRITES_TOTAL.labels(table=table, op_type=op_type, outcome=outcome).inc()


def observe_mutation(table: str, op_type: str, status: str, latency_s: float) -> None:
    """
    status: "success" when every document succeeded, "partial" when some
    failed, "error" when the request itself was rejected.
    """
    MUTATIONS_TOTAL.labels(table=table, op_type=op_type, status=status).inc()
    MUTATION_LATENCY_SECONDS.labels(table=table, op_type=op_type).observe(latency_s)


def observe_lock_acquisition(table: str, latency_s: float, success: bool) -> None:
    # Timeouts are reported as errors, not as latency samples.
    if success:
        KEY_LOCK_ACQUIRE_LATENCY_SECONDS.labels(table=table).observe(latency_s)
