"""
core/datastore.py -- Key/JSON document store on top of Database.

Holds small configuration documents that must survive restarts, most
importantly the per-install identifier seeds (see auth/manager.py). Documents
are append-friendly: several rows may share a key and select_latest() returns
the most recently modified one.

Pattern: Repository + Data Mapper (same as auth/store.py).
DataStore is the repository; _row_to_document is the mapper.

Usage:
    ds = DataStore(db)
    doc = ds.insert("sets", {"user_seed": 123})
    latest = ds.select_latest("sets")
    ds.update(latest.id, "sets", {"user_seed": 456})
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import Column, Integer, LargeBinary, MetaData, String, Table, func, select

from core.codec import encode_payload, from_micros, now_utc, to_micros
from core.database import Database
from core.errors import NotFoundError
from core.models import Document, Record

logger = logging.getLogger("gatehouse.db")

DEFAULT_TABLE = "datastore"


class DataStore:
    """Repository for Document entities."""

    def __init__(self, db: Database, table_name: str = DEFAULT_TABLE) -> None:
        if not table_name:
            raise ValueError("table name is empty")
        self.db = db
        self._metadata = MetaData()
        self._table = Table(
            table_name,
            self._metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("key", String(255), nullable=False),
            Column("data", LargeBinary, nullable=False),
            Column("created", Integer, nullable=False, server_default="0"),
            Column("modified", Integer, nullable=False, server_default="0"),
        )
        db.create_tables(self._metadata)
        db.create_index(table_name, "key")
        db.create_index(table_name, "created", descending=True)
        db.create_index(table_name, "modified", descending=True)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, key: str, data: Any) -> Document:
        """Marshal data to JSON and store it under key. Returns the new Document."""
        doc = Document(key=key, data=encode_payload(data) or b"null", record=Record.new())
        with self.db.writer() as conn:
            result = conn.execute(
                self._table.insert().values(
                    key=doc.key,
                    data=doc.data,
                    created=to_micros(doc.record.created),
                    modified=to_micros(doc.record.modified),
                )
            )
            doc.id = result.inserted_primary_key[0]
        return doc

    def update(self, doc_id: int, key: str, data: Any) -> None:
        """Replace key and data of an existing document and re-stamp modified.

        Raises NotFoundError if doc_id does not exist.
        """
        t = self._table
        with self.db.writer() as conn:
            result = conn.execute(
                t.update()
                .where(t.c.id == doc_id)
                .values(key=key, data=encode_payload(data) or b"null", modified=to_micros(now_utc()))
            )
        if result.rowcount == 0:
            raise NotFoundError(f"document {doc_id} not found")

    def delete(self, doc_id: int) -> None:
        with self.db.writer() as conn:
            conn.execute(self._table.delete().where(self._table.c.id == doc_id))

    def delete_all(self, key: str) -> int:
        with self.db.writer() as conn:
            result = conn.execute(self._table.delete().where(self._table.c.key == key))
        return result.rowcount

    def delete_older_than(self, cutoff: datetime, key: str) -> int:
        """Delete documents under key last modified before cutoff. Returns rows removed."""
        t = self._table
        with self.db.writer() as conn:
            result = conn.execute(t.delete().where((t.c.modified < to_micros(cutoff)) & (t.c.key == key)))
        return result.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select(self, doc_id: int) -> Document:
        with self.db.reader() as conn:
            row = conn.execute(self._table.select().where(self._table.c.id == doc_id)).fetchone()
        if row is None:
            raise NotFoundError(f"document {doc_id} not found")
        return _row_to_document(row)

    def select_latest(self, key: str) -> Document:
        """Return the most recently modified document under key.

        Ties on modified (same microsecond) resolve to the higher id.
        """
        t = self._table
        with self.db.reader() as conn:
            row = conn.execute(
                t.select().where(t.c.key == key).order_by(t.c.modified.desc(), t.c.id.desc()).limit(1)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"no document under key {key!r}")
        return _row_to_document(row)

    def select_all(self, key: str) -> list[Document]:
        """Return every document under key, newest first. Empty list if none."""
        t = self._table
        with self.db.reader() as conn:
            rows = conn.execute(
                t.select().where(t.c.key == key).order_by(t.c.modified.desc(), t.c.id.desc())
            ).fetchall()
        return [_row_to_document(r) for r in rows]

    def count(self) -> int:
        with self.db.reader() as conn:
            result = conn.execute(select(func.count()).select_from(self._table)).scalar()
        return result or 0


def _row_to_document(row) -> Document:
    return Document(
        id=row.id,
        key=row.key,
        data=row.data,
        record=Record(created=from_micros(row.created), modified=from_micros(row.modified)),
    )
