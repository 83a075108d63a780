from .base import DocumentSlot, DocumentStore, match_predicate
from .locking import KeyLock, KeyLockTable
from .session import StoreSession
from .sql import SqlDocumentStore

__all__ = [
    "DocumentStore",
    "DocumentSlot",
    "SqlDocumentStore",
    "StoreSession",
    "KeyLock",
    "KeyLockTable",
    "match_predicate",
]
