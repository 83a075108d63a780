from .config import StoreConfig
from .conflict import KEEP_OLD, REJECT, ConflictPolicy, CustomConflict
from .executor import MutationExecutor
from .expr import branch, row
from .hooks import ABORT, HookRegistry
from .merge import REMOVE, literal
from .models import (
    Delete,
    Durability,
    Filter,
    Get,
    GetAll,
    Insert,
    MutationOptions,
    Table,
    Update,
)
from .result import WriteResult
from .store import SqlDocumentStore
from .writer import DocumentWriter

__all__ = [
    "DocumentWriter",
    "MutationExecutor",
    "SqlDocumentStore",
    "StoreConfig",
    "HookRegistry",
    "MutationOptions",
    "WriteResult",
    "Durability",
    "Insert",
    "Update",
    "Delete",
    "Table",
    "Get",
    "GetAll",
    "Filter",
    "ConflictPolicy",
    "CustomConflict",
    "KEEP_OLD",
    "REJECT",
    "ABORT",
    "REMOVE",
    "literal",
    "row",
    "branch",
]
