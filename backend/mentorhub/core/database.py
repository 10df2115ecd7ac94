import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import status
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import (
    DBAPIError,
    InterfaceError,
    OperationalError,
    ProgrammingError,
    SQLAlchemyError,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from mentorhub.core.config import settings
from mentorhub.core.errors import AppError, ConfigurationError

logger = logging.getLogger(__name__)

# Base class for all database models
Base = declarative_base()

# The engine is created lazily so a missing DATABASE_URL turns into a 503
# on the request that needs it rather than an import-time crash
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None

DATABASE_NOT_CONFIGURED_MESSAGE = (
    "Database is not configured. Please set DATABASE_URL environment variable."
)
DATABASE_UNAVAILABLE_MESSAGE = (
    "Database connection failed or timed out. Your database may be paused "
    "(serverless Postgres providers suspend idle databases). Resume it if "
    "needed, wait a few seconds and try again."
)

# Substrings seen in driver errors when the server is unreachable or waking up
_CONNECTIVITY_MARKERS = (
    "timeout",
    "timed out",
    "could not connect",
    "connection refused",
    "connection terminated",
    "server closed the connection",
    "terminating connection",
    "ssl syscall",
)
_MISSING_RELATION_MARKER = "does not exist"
# SQLite reports a missing table as an OperationalError
_SQLITE_MISSING_TABLE_MARKER = "no such table"


def _requires_ssl(url: str) -> bool:
    # Managed cloud Postgres always requires TLS
    return "neon.tech" in url or settings.ENVIRONMENT == "production"


def build_engine(url: str) -> Engine:
    """
    Create the SQLAlchemy engine for a database URL.

    Postgres connections get a connect timeout and a server-side statement
    timeout so that work abandoned by the operation timeout still ends.
    """
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})

    connect_args = {
        "connect_timeout": settings.DB_CONNECT_TIMEOUT,
        "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}",
    }
    if _requires_ssl(url) and "sslmode=" not in url:
        connect_args["sslmode"] = "require"

    if settings.is_serverless():
        # One connection per function instance avoids exhausting the server's limit
        pool_kwargs = {"pool_size": 1, "max_overflow": 0}
    else:
        pool_kwargs = {"pool_size": 10, "max_overflow": 10}

    return create_engine(
        url,
        connect_args=connect_args,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_timeout=settings.DB_CONNECT_TIMEOUT,
        **pool_kwargs,
    )


def configure_engine(engine: Engine) -> None:
    """Install an engine and its session factory (used at startup and in tests)"""
    global _engine, _session_factory
    _engine = engine
    # autocommit=False: Changes require explicit commit
    # autoflush=False: Don't auto-flush before queries
    _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_engine() -> Optional[Engine]:
    """Return the engine, creating it from DATABASE_URL on first use"""
    if _engine is None and settings.DATABASE_URL:
        configure_engine(build_engine(settings.DATABASE_URL))
    return _engine


def is_configured() -> bool:
    return get_engine() is not None


def get_session_factory() -> sessionmaker:
    if get_engine() is None:
        raise ConfigurationError(DATABASE_NOT_CONFIGURED_MESSAGE)
    return _session_factory


def init_db() -> None:
    """Create tables for every model that inherits from Base"""
    engine = get_engine()
    if engine is None:
        logger.warning("DATABASE_URL is not set; skipping table creation")
        return
    # Importing the models registers them on Base.metadata
    from mentorhub.models import (  # noqa: F401
        chat_message,
        concept,
        practice_session,
        project,
        resume,
        skill,
        user,
    )

    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Session for work that runs outside a request dependency.

    Auth operations run in a worker thread that may outlive the request
    when the operation timeout trips, so they own their session instead of
    sharing the one from get_db.
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def get_db():
    """
    Dependency for getting database session.

    The session is automatically closed after the request completes (via finally block).
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def _pgcode(exc: SQLAlchemyError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None)


def is_connectivity_error(exc: BaseException) -> bool:
    if isinstance(exc, TimeoutError):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    # 57P01 admin_shutdown, 57014 query_canceled (statement_timeout)
    if isinstance(exc, SQLAlchemyError) and _pgcode(exc) in ("57P01", "57014"):
        return True
    if isinstance(exc, (OperationalError, InterfaceError)):
        message = str(exc).lower()
        return any(marker in message for marker in _CONNECTIVITY_MARKERS)
    return False


def is_missing_table_error(exc: BaseException) -> bool:
    if isinstance(exc, SQLAlchemyError) and _pgcode(exc) == "42P01":
        return True
    if not isinstance(exc, SQLAlchemyError) or _pgcode(exc) is not None:
        return False
    message = str(exc).lower()
    # A connect-time "database ... does not exist" is an OperationalError, not a missing table
    if isinstance(exc, ProgrammingError) and _MISSING_RELATION_MARKER in message:
        return True
    return isinstance(exc, OperationalError) and _SQLITE_MISSING_TABLE_MARKER in message


def classify_database_error(exc: BaseException, operation: str) -> AppError:
    """
    Turn a raw driver error into an HTTP error with a specific message.

    Connectivity problems and missing tables are 503 (retry or fix the
    deployment); everything else is a 500.
    """
    if is_missing_table_error(exc):
        logger.error("%s failed: database tables missing: %s", operation, exc)
        return AppError(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "Database tables not found. Please run database migrations.",
            code=_pgcode(exc) if isinstance(exc, SQLAlchemyError) else None,
        )
    if is_connectivity_error(exc):
        logger.error("%s failed: database unreachable: %s", operation, exc)
        return AppError(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            DATABASE_UNAVAILABLE_MESSAGE,
            code="ETIMEDOUT",
        )
    logger.exception("%s failed with a database error", operation)
    return AppError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error occurred")
