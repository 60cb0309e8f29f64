import logging
import threading
import uuid
from pathlib import Path
from typing import Any, Dict

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from auction_board.config.loader import get_database_url, get_sqlite_settings

DEFAULT_DATABASE_URL = "sqlite:///./auction_board.db"

logger = logging.getLogger("database")

# The store has a single writer path; SQLite handles one writer at a time.
_WRITE_LOCK = threading.RLock()


def is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def is_memory_database(database_url: str) -> bool:
    if not is_sqlite(database_url):
        return False
    database = make_url(database_url).database
    return not database or database == ":memory:"


def _ensure_sqlite_directory(database_url: str) -> None:
    db_path = Path(make_url(database_url).database)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _install_sqlite_pragmas(target: Engine, settings: Dict[str, Any]) -> None:
    @event.listens_for(target, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA journal_mode={settings['journal_mode']}")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={settings['busy_timeout_ms']}")
        cursor.close()


def build_engine(database_url: str) -> Engine:
    """
    Create the engine for the configuration store.

    SQLite files get their directory created and the configured pragmas;
    an in-memory database shares one connection so every session sees the
    same tables. Other URLs are passed through to SQLAlchemy unchanged.
    """
    if not is_sqlite(database_url):
        return create_engine(database_url, pool_pre_ping=True)

    settings = get_sqlite_settings()
    connect_args = {
        "check_same_thread": False,
        "timeout": max(1, settings["busy_timeout_ms"] / 1000),
    }
    if is_memory_database(database_url):
        sqlite_engine = create_engine(
            database_url, connect_args=connect_args, poolclass=StaticPool
        )
    else:
        _ensure_sqlite_directory(database_url)
        sqlite_engine = create_engine(database_url, connect_args=connect_args)
    _install_sqlite_pragmas(sqlite_engine, settings)
    return sqlite_engine


class SerializedSession(Session):
    """Session whose flushes and commits hold the process-wide write lock."""

    def commit(self) -> None:
        with _WRITE_LOCK:
            return super().commit()

    def flush(self, objects=None) -> None:
        with _WRITE_LOCK:
            return super().flush(objects)


DATABASE_URL = get_database_url(DEFAULT_DATABASE_URL)
engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    class_=SerializedSession,
)

Base = declarative_base()


def get_db():
    req_id = uuid.uuid4()
    logger.debug(f"[DB_SESSION_START][{req_id}] Creating database session.")
    db = SessionLocal()
    try:
        yield db
    finally:
        logger.debug(f"[DB_SESSION_END][{req_id}] Closing database session.")
        db.close()
