"""SQLAlchemy engine and session lifecycle for the job and match stores.

One engine per process: ``init_database`` builds it (and the tables),
``get_session`` hands out transactional sessions, ``close_database``
disposes it on shutdown.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from talentmatch.logging import get_logger

from .exceptions import DatabaseConnectionError

logger = get_logger(__name__, component="database")

_engine: Engine | None = None
_session_factory: sessionmaker | None = None

# Scheduler workers and the dispatcher write from different threads
SQLITE_PRAGMAS = ("PRAGMA foreign_keys=ON", "PRAGMA journal_mode=WAL")
SQLITE_BUSY_TIMEOUT_SECONDS = 30


def init_database(database_url: str) -> None:
    """
    Build the engine for ``database_url`` and create missing tables.

    File-backed SQLite URLs get their parent directory created.

    Raises:
        DatabaseConnectionError: If the URL is empty or unusable, or the
            database cannot be reached
    """
    global _engine, _session_factory

    if not isinstance(database_url, str) or not database_url.strip():
        raise DatabaseConnectionError("Database URL must be a non-empty string")

    safe_url = _redact_url(database_url)
    logger.info(
        f"Connecting to {safe_url}",
        extra={"event": "database.initializing", "database_url": safe_url},
    )

    try:
        url = make_url(database_url)
        sqlite = url.get_backend_name() == "sqlite"
        if sqlite:
            _ensure_parent_directory(url.database)

        engine = create_engine(url, pool_pre_ping=True, **_engine_options(sqlite))
        if sqlite:
            event.listen(engine, "connect", _apply_sqlite_pragmas)

        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))

        from .schema import create_schema

        create_schema(engine)
    except (ArgumentError, SQLAlchemyError, OSError) as e:
        logger.error(
            f"Database initialisation failed: {e}",
            extra={"event": "database.init_failed", "database_url": safe_url},
            exc_info=True,
        )
        raise DatabaseConnectionError(f"Failed to initialize database {safe_url}: {e}") from e

    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    logger.info(
        "Database ready",
        extra={"event": "database.initialised", "database_url": safe_url},
    )


def _engine_options(sqlite: bool) -> Dict[str, Any]:
    if not sqlite:
        return {}
    return {
        "connect_args": {
            "check_same_thread": False,
            "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
        }
    }


def _ensure_parent_directory(database: str | None) -> None:
    if not database or database == ":memory:":
        return
    directory = Path(database).parent
    if not directory.exists():
        logger.info(
            f"Creating database directory {directory}",
            extra={"event": "database.directory_created", "path": str(directory)},
        )
        directory.mkdir(parents=True, exist_ok=True)


def _apply_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(pragma)
    finally:
        cursor.close()


def _redact_url(url: str) -> str:
    """Mask the password in a server URL; SQLite URLs carry none."""
    if url.startswith("sqlite") or "@" not in url:
        return url

    credentials, _, host = url.rpartition("@")
    scheme, _, userinfo = credentials.partition("://")
    username = userinfo.partition(":")[0]
    return f"{scheme}://{username}:***@{host}"


def _require(resource, caller: str):
    if resource is None:
        raise DatabaseConnectionError(
            f"Database not initialized. Call init_database() before {caller}()"
        )
    return resource


@contextmanager
def get_session() -> Iterator[Session]:
    """Transactional session scope.

    Commits when the block exits normally. On an exception the transaction is
    rolled back and the exception propagates. The session is always closed.

    Example:
        >>> with get_session() as session:
        ...     BatchJobRepository(session).get("5f0c...")
    """
    factory = _require(_session_factory, "get_session")
    session = factory()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.warning(
            f"Session rolled back: {type(e).__name__}",
            extra={"event": "database.session.rolled_back", "error_type": type(e).__name__},
        )
        raise
    finally:
        session.close()


def get_engine() -> Engine:
    return _require(_engine, "get_engine")


def close_database() -> None:
    """Dispose of the engine; a no-op when nothing was initialised."""
    global _engine, _session_factory

    if _engine is None:
        return

    _engine.dispose()
    _engine, _session_factory = None, None
    logger.info("Database connections closed", extra={"event": "database.closed"})
