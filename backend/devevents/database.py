"""Database connection manager and session dependency.

One engine (and therefore one connection pool) per process. The engine is
created lazily by the first caller of ``acquire()``; callers that arrive
while that attempt is still in flight wait on the same attempt and see its
outcome, including its failure. A failed attempt is discarded so the next
call retries.
"""
import logging
import threading
from concurrent.futures import Future
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from devevents.config import settings
from devevents.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class ConnectionManager:
    """Owns the process-wide engine and hands out sessions bound to it."""

    def __init__(self, database_url: str, **engine_kwargs: Any):
        self.database_url = database_url
        self._engine_kwargs = engine_kwargs
        self._lock = threading.Lock()
        self._engine: Optional[Engine] = None
        self._pending: Optional[Future] = None
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    def acquire(self) -> Engine:
        """Return the cached engine, establishing it on first use."""
        if self._engine is not None:
            return self._engine

        with self._lock:
            if self._engine is not None:
                return self._engine
            if self._pending is None:
                self._pending = Future()
                owner = True
            else:
                owner = False
            attempt = self._pending

        if owner:
            self._establish(attempt)
        return attempt.result()

    def _establish(self, attempt: Future) -> None:
        try:
            engine = create_engine(self.database_url, **self._engine_kwargs)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("Database connection failed: %s", e)
            with self._lock:
                self._pending = None
            attempt.set_exception(StoreUnavailableError() if isinstance(e, SQLAlchemyError) else e)
            return

        with self._lock:
            self._engine = engine
            self._pending = None
        logger.info("Database engine established (%s)", engine.url.render_as_string(hide_password=True))
        attempt.set_result(engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session on the shared pool; roll back if the caller raises."""
        db = self._session_factory(bind=self.acquire())
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def invalidate(self) -> None:
        """Drop the cached engine so the next acquire() reconnects."""
        with self._lock:
            engine, self._engine = self._engine, None
        if engine is not None:
            engine.dispose()
            logger.info("Database engine invalidated")

    def shutdown(self) -> None:
        """Dispose the pool at process exit."""
        self.invalidate()


def _engine_options(database_url: str) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


connection_manager = ConnectionManager(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))


def get_connection_manager() -> ConnectionManager:
    return connection_manager


def get_db() -> Iterator[Session]:
    """FastAPI dependency for database sessions."""
    with connection_manager.session() as db:
        yield db
