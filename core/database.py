"""
core/database.py -- The two SQLAlchemy access disciplines Gatehouse relies on.

SQLite serializes writers at the file level. Instead of letting every request
race for the write lock, Database exposes two handles:

  reader()  -- a connection from a pooled engine. Many concurrent readers.
               Used for every select and count.
  writer()  -- the single connection of a one-slot engine, held under a
               process-wide lock for the duration of the block and committed
               on exit (rolled back on exception). Used for every insert,
               update, delete and for DDL at boot.

All mutations therefore run strictly in program order within one process.
Reads may observe the state before or after an in-flight write; no snapshot
isolation is promised beyond what the storage engine provides.

Plain ':memory:' SQLite URLs give every connection its own private database,
so two engines cannot share one. For those URLs a single StaticPool engine
backs both handles and reads are routed through the write lock as well.

Security:
  All data values use bound parameters. Identifiers (table, column, index
  names) come from configuration, never from request input, and are always
  quoted through the dialect's identifier preparer.

Layer rule: core/ is the kernel. No imports from auth/.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager, nullcontext
from pathlib import Path

from sqlalchemy import MetaData, Table, create_engine, event, select, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.pool import StaticPool

from core.lcg import LCG, LCG48, to_signed64

logger = logging.getLogger("gatehouse.db")

_IDLE_CONNS = 20


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    WAL (Write-Ahead Logging) allows readers to proceed without blocking
    during writes. Set per-connection because SQLite PRAGMAs are not
    inherited by new connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _is_private_memory(url) -> bool:
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


class Database:
    """Pooled read engine plus serialized write engine over one database.

    Usage:
        db = Database("sqlite:///data/manager.db")
        with db.writer() as conn:
            conn.execute(table.insert().values(...))
        with db.reader() as conn:
            rows = conn.execute(table.select()).fetchall()
        db.close()
    """

    def __init__(self, db_url: str, max_open_conns: int = 120, echo: bool = False) -> None:
        url = make_url(db_url)
        self.url = db_url
        is_sqlite = url.get_backend_name() == "sqlite"
        connect_args: dict = {"check_same_thread": False} if is_sqlite else {}

        self._write_lock = threading.RLock()

        if _is_private_memory(url):
            engine = create_engine(db_url, connect_args=connect_args, poolclass=StaticPool, echo=echo)
            self._reader_engine: Engine = engine
            self._writer_engine: Engine = engine
            self._read_guard = self._write_lock
        else:
            if is_sqlite and url.database and not url.database.startswith("file:"):
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)
            idle = min(_IDLE_CONNS, max_open_conns)
            self._reader_engine = create_engine(
                db_url,
                connect_args=connect_args,
                pool_size=idle,
                max_overflow=max(0, max_open_conns - idle),
                echo=echo,
            )
            self._writer_engine = create_engine(
                db_url,
                connect_args=connect_args,
                pool_size=1,
                max_overflow=0,
                echo=echo,
            )
            self._read_guard = nullcontext()
            if is_sqlite:
                event.listen(self._reader_engine, "connect", _set_wal_mode)
                event.listen(self._writer_engine, "connect", _set_wal_mode)
        logger.debug("Database opened: %s", url.render_as_string(hide_password=True))

    # ------------------------------------------------------------------
    # Access disciplines
    # ------------------------------------------------------------------

    @contextmanager
    def reader(self) -> Iterator[Connection]:
        """Yield a pooled connection for read-only statements."""
        with self._read_guard:
            with self._reader_engine.connect() as conn:
                yield conn

    @contextmanager
    def writer(self) -> Iterator[Connection]:
        """Yield the single write connection inside a transaction.

        The lock is held for the whole block, so anything computed inside it
        (for example the next generated ID) is serialized with the write.
        """
        with self._write_lock:
            with self._writer_engine.begin() as conn:
                yield conn

    # ------------------------------------------------------------------
    # Schema helpers
    # ------------------------------------------------------------------

    def quote_table_name(self, name: str) -> str:
        return self._writer_engine.dialect.identifier_preparer.quote_identifier(name)

    def create_tables(self, metadata: MetaData, tables: list[Table] | None = None) -> None:
        """Create the tables in metadata (or just `tables`) that do not exist yet."""
        with self.writer() as conn:
            metadata.create_all(conn, tables=tables)

    def create_index(self, table: str, column: str, unique: bool = False, descending: bool = False) -> None:
        """Create a (unique) index on table(column) if absent.

        Index name: <table>_<column>_idx, or <table>_<column>_uidx when unique.
        """
        suffix = "uidx" if unique else "idx"
        index_name = self.quote_table_name(f"{table}_{column}_{suffix}")
        col = self.quote_table_name(column) + (" DESC" if descending else "")
        ddl = (
            f"CREATE {'UNIQUE ' if unique else ''}INDEX IF NOT EXISTS {index_name} "
            f"ON {self.quote_table_name(table)} ({col})"
        )
        with self.writer() as conn:
            conn.execute(text(ddl))

    def count_rows(self, table: str) -> int:
        with self.reader() as conn:
            result = conn.execute(text(f"SELECT COUNT(*) FROM {self.quote_table_name(table)}")).scalar()  # noqa: S608
        return result or 0

    def close(self) -> None:
        self._reader_engine.dispose()
        if self._writer_engine is not self._reader_engine:
            self._writer_engine.dispose()


def allocate_id(conn: Connection, generator: LCG | LCG48, id_column) -> int:
    """Draw the next generator value that is not already a primary key.

    Must be called with the connection yielded by Database.writer(), which
    serializes the generator together with the insert that follows.

    The boot-time skip(row_count) lands exactly past every issued ID only while
    no rows have been deleted. After deletions the count is smaller than the
    number of IDs issued, so a drawn value can still belong to a live row;
    those values are skipped here.
    """
    while True:
        candidate = to_signed64(generator.next())
        taken = conn.execute(select(id_column).where(id_column == candidate)).first()
        if taken is None:
            return candidate
        logger.debug("Generated id %d already in use, drawing again", candidate)
