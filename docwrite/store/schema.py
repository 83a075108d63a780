from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from sqlalchemy import JSON, Column, Index, Integer, MetaData, String, Table, UniqueConstraint


@dataclass
class StoreSchema:
    """SQLAlchemy Core tables backing a document store."""
    metadata: MetaData
    tables: Table
    documents: Table


def build_schema(prefix: str) -> StoreSchema:
    metadata = MetaData()

    tables = Table(
        f"{prefix}_tables",
        metadata,
        Column("name", String(128), primary_key=True),
        Column("primary_key", String(128), nullable=False),
    )

    # seq keeps insertion order for table scans
    documents = Table(
        f"{prefix}_documents",
        metadata,
        Column("seq", Integer, primary_key=True, autoincrement=True),
        Column("table_name", String(128), nullable=False),
        Column("doc_key", String(512), nullable=False),
        Column("body", JSON, nullable=False),
        UniqueConstraint("table_name", "doc_key", name=f"uq_{prefix}_table_key"),
        Index(f"ix_{prefix}_table_seq", "table_name", "seq"),
    )

    return StoreSchema(metadata=metadata, tables=tables, documents=documents)


def encode_key(key: Any) -> str:
    """
    Encode a primary key for the doc_key column.

    JSON keeps 1 and "1" distinct; integral floats collapse onto ints so that
    1 and 1.0 address the same document.
    """
    if isinstance(key, float) and key.is_integer():
        key = int(key)
    return json.dumps(key, separators=(",", ":"))
