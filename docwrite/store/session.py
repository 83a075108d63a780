from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.engine import Connection, Engine

from ..models import Document
from .schema import StoreSchema, encode_key


class StoreSession:
    """
    Transactional wrapper around a SQLAlchemy Engine connection, addressing
    documents by (table, primary key).

    Use as:
        with StoreSession(engine, schema) as session:
            doc = session.fetch("posts", 1, for_update=True)
            session.put("posts", 1, {**doc, "status": "draft"})

    Commits on clean exit, rolls back when the block raises.
    """

    def __init__(self, engine: Engine, schema: StoreSchema) -> None:
        self.engine = engine
        self.schema = schema
        self._conn: Connection | None = None
        self._tx = None

    def __enter__(self) -> "StoreSession":
        if self._conn is not None:
            raise RuntimeError("StoreSession is already active; nested sessions are not allowed")
        self._conn = self.engine.connect()
        self._tx = self._conn.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self._tx is not None:
                if exc_type:
                    self._tx.rollback()
                else:
                    self._tx.commit()
        finally:
            if self._conn is not None:
                self._conn.close()

            self._conn = None
            self._tx = None

        # propagate exceptions (if any)
        return False

    def _connection(self) -> Connection:
        if self._conn is None:
            raise RuntimeError("StoreSession is not active; use within a context manager")
        return self._conn

    def fetch(self, table: str, key: Any, for_update: bool = False) -> Optional[Document]:
        """
        Return the document stored under `key`, or None.

        With for_update the row is locked until the transaction ends on
        dialects that support SELECT ... FOR UPDATE; others ignore it.
        """
        docs = self.schema.documents
        stmt = select(docs.c.body).where(
            docs.c.table_name == table,
            docs.c.doc_key == encode_key(key),
        )
        if for_update:
            stmt = stmt.with_for_update()
        body = self._connection().execute(stmt).scalar_one_or_none()
        return dict(body) if body is not None else None

    def fetch_page(self, table: str, after_seq: int, limit: int) -> list[tuple[int, Document]]:
        """Documents of `table` with seq > after_seq, in insertion order."""
        docs = self.schema.documents
        stmt = (
            select(docs.c.seq, docs.c.body)
            .where(docs.c.table_name == table, docs.c.seq > after_seq)
            .order_by(docs.c.seq)
            .limit(limit)
        )
        return [(seq, dict(body)) for seq, body in self._connection().execute(stmt)]

    def put(self, table: str, key: Any, value: Optional[Document]) -> int:
        """
        Store `value` under `key`, or remove the document when value is None.

        Returns the affected row count.
        """
        docs = self.schema.documents
        conn = self._connection()
        doc_key = encode_key(key)
        where = (docs.c.table_name == table, docs.c.doc_key == doc_key)

        if value is None:
            return int(conn.execute(delete(docs).where(*where)).rowcount)

        result = conn.execute(update(docs).where(*where).values(body=value))
        if result.rowcount:
            return int(result.rowcount)
        conn.execute(insert(docs).values(table_name=table, doc_key=doc_key, body=value))
        return 1

    def table_primary_key(self, table: str) -> Optional[str]:
        tables = self.schema.tables
        stmt = select(tables.c.primary_key).where(tables.c.name == table)
        return self._connection().execute(stmt).scalar_one_or_none()

    def table_names(self) -> list[str]:
        tables = self.schema.tables
        return list(self._connection().execute(select(tables.c.name).order_by(tables.c.name)).scalars())

    def add_table(self, table: str, primary_key: str) -> None:
        self._connection().execute(
            insert(self.schema.tables).values(name=table, primary_key=primary_key)
        )

    def remove_table(self, table: str) -> int:
        conn = self._connection()
        conn.execute(delete(self.schema.documents).where(self.schema.documents.c.table_name == table))
        return int(
            conn.execute(delete(self.schema.tables).where(self.schema.tables.c.name == table)).rowcount
        )
