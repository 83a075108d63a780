from .registry import (
    DOCUMENT_WRITES_TOTAL,
    KEY_LOCK_ACQUIRE_LATENCY_SECONDS,
    MUTATION_LATENCY_SECONDS,
    MUTATIONS_TOTAL,
)

__all__ = [
    "DOCUMENT_WRITES_TOTAL",
    "KEY_LOCK_ACQUIRE_LATENCY_SECONDS",
    "MUTATION_LATENCY_SECONDS",
    "MUTATIONS_TOTAL",
]
