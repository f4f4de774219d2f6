import logging
import os
import socket
from contextlib import closing

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from asset_atlas.core.config import settings

logger = logging.getLogger(__name__)

_engine = None

# Don't create a session factory at import time
SessionLocal = None

Base = declarative_base()


def _report_connection_failure(exc: Exception) -> None:
    """Log high-signal diagnostics when the application cannot reach the database."""
    logger.warning("Could not connect to database: %s", exc)
    logger.warning("The application will start but database operations will fail until the connection succeeds.")

    try:
        url = make_url(settings.database_url)
    except Exception as parse_error:  # pragma: no cover
        logger.warning("Unable to parse DATABASE_URL (%s); skipping detailed diagnostics.", parse_error)
        return

    if url.get_backend_name() == "sqlite":
        logger.warning("  SQLite database path: %s", url.database)
        return

    host = url.host or "localhost"
    port = url.port or 5432
    logger.warning(
        "  Dialect: %s (driver: %s), host: %s, port: %s, database: %s, SKIP_DB_INIT: %r",
        url.get_backend_name(),
        url.get_driver_name() or "default",
        host,
        port,
        url.database,
        os.getenv("SKIP_DB_INIT"),
    )

    try:
        with closing(socket.create_connection((host, port), timeout=2)):
            logger.warning("  Socket check: able to reach %s:%s", host, port)
    except OSError as socket_err:
        logger.warning("  Socket check: unable to reach %s:%s (%s)", host, port, socket_err)


def _build_engine():
    url = make_url(settings.database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(settings.database_url, pool_pre_ping=True)

    # Background tasks run on worker threads; SQLite must allow cross-thread use.
    engine = create_engine(
        settings.database_url,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def get_engine():
    global _engine
    if _engine is None:
        _engine = _build_engine()
        try:
            # Test connection eagerly so failures surface immediately.
            with _engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            _report_connection_failure(e)
    return _engine


def reset_engine() -> None:
    """Dispose the cached engine and session factory (used after settings change)."""
    global _engine, SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    SessionLocal = None


def get_session_local():
    global SessionLocal
    if SessionLocal is None:
        engine = get_engine()
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    return SessionLocal


def create_tables() -> None:
    """Create every ORM table that does not exist yet."""
    # Import for side effects: registers the mapped classes on Base.metadata.
    from asset_atlas.db import models  # noqa: F401

    Base.metadata.create_all(bind=get_engine())
