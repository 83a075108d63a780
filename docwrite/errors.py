class DocwriteError(Exception):
    """Base exception for docwrite errors."""


class StructuralError(DocwriteError):
    """Malformed mutation request; raised before any document is processed."""


class TableNotFound(StructuralError):
    """The target table does not exist."""


class TargetNotFound(DocwriteError):
    """Point update/delete on a missing document. Classified as skipped, never reported."""


class DocumentWriteError(DocwriteError):
    """Any failure of a single document within a batch."""


class DuplicatePrimaryKey(DocumentWriteError):
    """Insert conflicts with an existing primary key under the `error` policy."""


class ConflictRejected(DocumentWriteError):
    """A custom conflict resolution refused the insert."""


class HookAborted(DocumentWriteError):
    """The table's write hook vetoed the write."""


class PrimaryKeyChanged(DocumentWriteError):
    """A write attempted to change a document's primary key."""


class ExpressionError(DocumentWriteError):
    """A row expression could not be evaluated against the document."""


class TransportError(DocumentWriteError):
    """Failure reported by the backing store while reading or committing."""


class LockTimeoutError(TransportError):
    """Failed to acquire a document's key lock within the timeout period."""
