"""
SQL Storage Backend for ABLedger.

This module owns the SQLAlchemy engine and session factory shared by every
store component. It creates the schema, seeds the runtime enumeration and
tunes SQLite connections (WAL journal, foreign keys, busy timeout).
"""

import logging
import threading
from contextlib import contextmanager, nullcontext
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker, scoped_session
from sqlalchemy.pool import StaticPool

from abledger.core.types import RuntimeKind
from abledger.config.settings import settings
from abledger.storage.models import Base, RuntimeModel

logger = logging.getLogger(__name__)


class SqlStorageBackend:
    """
    Persistent storage backend using a SQL database.
    """

    def __init__(self, connection_string: Optional[str] = None, echo: Optional[bool] = None):
        """
        Initialize the SQL Storage Backend.

        Args:
            connection_string: SQL connection string (e.g., sqlite:///abledger.db)
                               Defaults to settings.DATABASE_URL
            echo: Log emitted SQL. Defaults to settings.SQL_ECHO
        """
        self.db_url = connection_string or settings.DATABASE_URL
        self.is_sqlite = self.db_url.startswith("sqlite")
        echo = settings.SQL_ECHO if echo is None else echo

        self._local = threading.local()
        # Serializes transactions when every thread shares one connection
        self._connection_lock = None

        engine_kwargs = {}
        if self.is_sqlite and self._is_memory_url(self.db_url):
            # One shared connection, otherwise every thread sees its own empty database
            engine_kwargs = {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            }
            self._connection_lock = threading.Lock()
        self.engine = create_engine(self.db_url, echo=echo, **engine_kwargs)

        if self.is_sqlite:
            self._install_sqlite_hooks()

        # Create all tables (if they don't exist)
        Base.metadata.create_all(self.engine)

        # Create thread-safe session factory
        self.Session = scoped_session(sessionmaker(bind=self.engine, expire_on_commit=False))

        self._seed_runtimes()

        logger.info(f"SqlStorageBackend initialized with {self.db_url}")

    @staticmethod
    def _is_memory_url(url: str) -> bool:
        return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url

    def _install_sqlite_hooks(self) -> None:
        sqlite_config = settings.get_storage_config()["sqlite"]

        @event.listens_for(self.engine, "connect")
        def _on_connect(dbapi_connection, _connection_record):
            # Let SQLAlchemy emit BEGIN itself, pysqlite would defer it
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute(f"PRAGMA journal_mode = {sqlite_config['journal_mode']}")
                cursor.execute(f"PRAGMA synchronous = {sqlite_config['synchronous']}")
                cursor.execute(f"PRAGMA busy_timeout = {int(sqlite_config['busy_timeout_ms'])}")
                cursor.execute(f"PRAGMA foreign_keys = {'ON' if sqlite_config['foreign_keys'] else 'OFF'}")
            finally:
                cursor.close()

        @event.listens_for(self.engine, "begin")
        def _on_begin(conn):
            # Writers take the write lock up front; a deferred transaction that
            # later upgrades can fail with SQLITE_BUSY instead of waiting.
            # Readers stay deferred so WAL lets them run beside a writer.
            if getattr(self._local, "write", False):
                conn.exec_driver_sql("BEGIN IMMEDIATE")
            else:
                conn.exec_driver_sql("BEGIN")

    def _seed_runtimes(self) -> None:
        with self.session_scope(write=True) as session:
            for kind in RuntimeKind:
                session.merge(RuntimeModel(id=int(kind), name=kind.label))
        logger.debug("Runtime enumeration seeded")

    @contextmanager
    def session_scope(self, write: bool = False) -> Iterator[Session]:
        """
        Provide a transactional scope: commit on success, roll back on any error.

        Scopes opened while another scope is active on the same thread join the
        outer transaction through a savepoint, so a failing inner write only
        undoes its own work and the outer scope decides whether to commit. The
        outermost scope decides the transaction mode.

        Args:
            write: Open the transaction with BEGIN IMMEDIATE on SQLite. Read
                   scopes use a deferred BEGIN.
        """
        depth = getattr(self._local, "depth", 0)

        if depth:
            session = self.Session()
            self._local.depth = depth + 1
            try:
                with session.begin_nested():
                    yield session
            finally:
                self._local.depth = depth
            return

        with self._connection_lock or nullcontext():
            self._local.depth = 1
            self._local.write = write
            session = self.Session()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                self._local.depth = 0
                self._local.write = False
                self.Session.remove()

    def close(self):
        """Close connection pool."""
        self.Session.remove()
        self.engine.dispose()
