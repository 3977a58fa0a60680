from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, declarative_base
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)


def _configure_sqlite(engine: Engine) -> None:
    """
    SQLite only runs in tests and local development. pysqlite's implicit
    transaction handling is disabled so every transaction is opened with
    BEGIN IMMEDIATE, which takes the write lock up front and serializes
    concurrent terminals the way row locks do on PostgreSQL.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, timeout: Optional[float] = None, echo: bool = False) -> Engine:
    """Create an engine whose store calls are bounded by ``timeout`` seconds."""
    timeout = timeout or settings.STORE_TIMEOUT_SECONDS
    backend = make_url(database_url).get_backend_name()

    if backend == "sqlite":
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": timeout, "check_same_thread": False},
        )
        _configure_sqlite(engine)
        return engine

    connect_args = {}
    if backend == "postgresql":
        timeout_ms = int(timeout * 1000)
        connect_args = {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={timeout_ms} -c lock_timeout={timeout_ms}",
        }

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=timeout,
        isolation_level="READ COMMITTED",
        connect_args=connect_args,
        echo=echo,
    )


engine = build_engine(settings.database_url, echo=settings.DEBUG)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

Base = declarative_base()


def get_db():
    """Genera una sesión de base de datos por request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
