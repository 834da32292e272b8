# identitydb/database.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from identitydb.config import DATA_DIR, DATABASE_URL
from identitydb.errors import ProgramError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    # SQLite ignores ON DELETE clauses unless this is set on every connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def is_unique_violation(error: IntegrityError) -> bool:
    # sqlite: "UNIQUE constraint failed", postgres: "duplicate key value", mysql: "Duplicate entry"
    message = str(error.orig).lower()
    return "unique" in message or "duplicate" in message


def create_db_engine(url: str = DATABASE_URL, **kwargs: Any) -> Engine:
    connect_args: dict[str, Any] = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if url == DATABASE_URL:
            DATA_DIR.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, connect_args=connect_args, future=True, **kwargs)

    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    return engine


class Database:
    """
    Database handle shared by the admins.

    A plain handle runs every `session()` block in its own short transaction.
    A handle produced by `transaction()` is bound to one open transaction and
    hands out that same ORM session until the transaction ends.
    """

    def __init__(self, engine: Engine, session: Session | None = None) -> None:
        self.engine = engine
        self._session = session
        self._factory = sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )
        self._closed = False

    @classmethod
    def from_url(cls, url: str = DATABASE_URL, **kwargs: Any) -> Database:
        return cls(create_db_engine(url, **kwargs))

    @property
    def is_transaction(self) -> bool:
        return self._session is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def _require_open(self) -> None:
        if not self._closed:
            return
        if self.is_transaction:
            raise ProgramError(
                "Database handle used outside of its atomic operation: the transaction has already ended."
            )
        raise ProgramError("Database handle used after it was disposed.")

    @contextmanager
    def session(self) -> Iterator[Session]:
        self._require_open()

        if self._session is not None:
            yield self._session
            return

        with self._factory.begin() as db:
            yield db

    @contextmanager
    def transaction(self) -> Iterator[Database]:
        self._require_open()

        if self.is_transaction:
            raise ProgramError("A transaction-scoped database handle cannot open another transaction.")

        with self._factory.begin() as db:
            scoped = Database(self.engine, db)
            try:
                yield scoped
            finally:
                scoped._closed = True

    def dispose(self) -> None:
        if self.is_transaction:
            raise ProgramError("Dispose the parent handle, not the transaction-scoped one.")
        self._closed = True
        self.engine.dispose()
        logger.debug("Disposed engine for %s", self.engine.url.render_as_string(hide_password=True))
