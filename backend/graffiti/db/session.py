from __future__ import annotations

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from graffiti.core.settings import Settings, settings

logger = logging.getLogger(__name__)


def create_db_engine(
    url: str,
    *,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    busy_timeout: float = 30.0,
    **kwargs,
) -> Engine:
    """Build the engine for ``url``.

    On SQLite every transaction starts with ``BEGIN IMMEDIATE``, read-only
    ones included, so reads queue behind an open writer for up to
    ``busy_timeout`` seconds. Engine and view reads are single short
    transactions, so the wait is bounded by one write. PostgreSQL keeps its
    default ``BEGIN`` and relies on the pair lock and ``FOR UPDATE`` instead.
    """
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": busy_timeout}
        engine = create_engine(url, connect_args=connect_args, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, _connection_record):
            # Hand transaction control to SQLAlchemy so "begin" below emits BEGIN IMMEDIATE.
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        # Writers take the database lock up front and queue on the busy timeout,
        # instead of failing when two readers both try to upgrade.
        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    if pool_size is not None:
        kwargs.setdefault("pool_size", pool_size)
    if max_overflow is not None:
        kwargs.setdefault("max_overflow", max_overflow)
    return create_engine(url, pool_pre_ping=True, **kwargs)


class Database:
    """Owns the connection pool shared by every relationship operation.

    Open it once at service start and close it at shutdown. Engine and views
    receive the handle explicitly instead of importing a module-level pool.
    """

    def __init__(self, url: str, **engine_kwargs) -> None:
        self.url = url
        self._engine_kwargs = engine_kwargs
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "Database":
        return cls(
            config.DATABASE_URL,
            pool_size=config.DB_POOL_SIZE,
            max_overflow=config.DB_MAX_OVERFLOW,
            busy_timeout=config.SQLITE_BUSY_TIMEOUT,
        )

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not open")
        return self._engine

    def open(self) -> "Database":
        if self._engine is None:
            self._engine = create_db_engine(self.url, **self._engine_kwargs)
            self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
            logger.info("Opened database pool for %s", self._engine.url.render_as_string(hide_password=True))
        return self

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            logger.info("Closed database pool")
        self._engine = None
        self._session_factory = None

    def session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError("Database is not open")
        return self._session_factory()

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()
