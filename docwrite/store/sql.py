from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..config import StoreConfig
from ..errors import StructuralError, TableNotFound, TransportError
from ..hooks import HookRegistry
from ..models import Document, Durability
from .base import DocumentSlot, DocumentStore, match_predicate
from .locking import KeyLockTable
from .schema import build_schema
from .session import StoreSession

logger = logging.getLogger(__name__)

_PAGE_SIZE = 500


class _SqlSlot(DocumentSlot):
    def __init__(self, session: StoreSession, table: str, key: Any) -> None:
        self.session = session
        self.table = table
        self.key = key

    def read(self) -> Optional[Document]:
        return self.session.fetch(self.table, self.key, for_update=True)

    def write(self, value: Optional[Document], durability: Durability = Durability.HARD) -> None:
        # The transaction commits synchronously either way; soft durability
        # only relaxes what the caller may assume.
        logger.debug(
            "Writing %s:%r (durability=%s, delete=%s)",
            self.table, self.key, durability.value, value is None,
        )
        self.session.put(self.table, self.key, value)


class SqlDocumentStore(DocumentStore):
    """
    Document store on top of any SQLAlchemy Engine.

    Documents are kept as JSON bodies in a single table keyed by
    (table name, encoded primary key). Each write runs in its own
    transaction while holding the document's key lock; the row is also
    locked with SELECT ... FOR UPDATE where the dialect supports it.

    Usage:
        store = SqlDocumentStore(create_engine("sqlite:///docs.db"))
        store.create_table("posts")
        with store.locked("posts", 1) as slot:
            doc = slot.read()
            slot.write({"id": 1, "title": "Lorem ipsum"})
    """

    def __init__(self, engine: Engine, config: Optional[StoreConfig] = None) -> None:
        self.engine = engine
        self.config = config or StoreConfig()
        self.schema = build_schema(self.config.table_prefix)
        self.hooks = HookRegistry()
        self._locks = KeyLockTable()
        try:
            self.schema.metadata.create_all(engine, checkfirst=True)
        except SQLAlchemyError as exc:
            raise TransportError(f"Failed to prepare document store: {exc}") from exc

    @contextmanager
    def _session(self) -> Iterator[StoreSession]:
        try:
            with StoreSession(self.engine, self.schema) as session:
                yield session
        except SQLAlchemyError as exc:
            logger.warning("Document store operation failed: %s", exc)
            raise TransportError(str(exc)) from exc

    # tables

    def create_table(self, table: str, primary_key: Optional[str] = None) -> None:
        if not isinstance(table, str) or not table:
            raise StructuralError(f"Invalid table name: {table!r}")
        primary_key = primary_key or self.config.default_primary_key
        try:
            with StoreSession(self.engine, self.schema) as session:
                session.add_table(table, primary_key)
        except IntegrityError:
            raise StructuralError(f"Table `{table}` already exists") from None
        except SQLAlchemyError as exc:
            raise TransportError(str(exc)) from exc
        logger.info("Created table %s (primary key %s)", table, primary_key)

    def drop_table(self, table: str) -> None:
        with self._session() as session:
            removed = session.remove_table(table)
        if not removed:
            raise TableNotFound(f"Table `{table}` does not exist")
        self.hooks.drop_table(table)
        logger.info("Dropped table %s", table)

    def list_tables(self) -> list[str]:
        with self._session() as session:
            return session.table_names()

    def primary_key(self, table: str) -> str:
        with self._session() as session:
            pk = session.table_primary_key(table)
        if pk is None:
            raise TableNotFound(f"Table `{table}` does not exist")
        return pk

    # documents

    def get(self, table: str, key: Any) -> Optional[Document]:
        with self._session() as session:
            return session.fetch(table, key)

    def select(self, table: str, predicate: Any = None) -> Iterator[Document]:
        # Pages are read in short transactions so that no read lock is held
        # while the caller writes.
        after = 0
        while True:
            with self._session() as session:
                page = session.fetch_page(table, after, _PAGE_SIZE)
            for seq, doc in page:
                after = seq
                if match_predicate(predicate, doc):
                    yield doc
            if len(page) < _PAGE_SIZE:
                return

    def put(
        self,
        table: str,
        key: Any,
        value: Optional[Document],
        durability: Durability = Durability.HARD,
    ) -> None:
        with self.locked(table, key) as slot:
            slot.write(value, durability)

    @contextmanager
    def locked(self, table: str, key: Any) -> Iterator[DocumentSlot]:
        with self._locks.hold(table, key, self.config.lock_timeout):
            with self._session() as session:
                yield _SqlSlot(session, table, key)
