from prometheus_client import Counter, Histogram

DOCUMENT_WRITES_TOTAL = Counter(
    "docwrite_document_writes_total",
    "Per-document write outcomes",
    ["table", "op_type", "outcome"],
)

MUTATIONS_TOTAL = Counter(
    "docwrite_mutations_total",
    "Mutation requests executed",
    ["table", "op_type", "status"],
)

MUTATION_LATENCY_SECONDS = Histogram(
    "docwrite_mutation_latency_seconds",
    "End-to-end latency of a mutation request",
    ["table", "op_type"],
)

KEY_LOCK_ACQUIRE_LATENCY_SECONDS = Histogram(
    "docwrite_key_lock_acquire_latency_seconds",
    "Time spent waiting for a document key lock",
    ["table"],
)
