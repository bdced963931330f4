import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from mathkids.config import Settings

logger = logging.getLogger(__name__)

# Connection, pool and statement-timeout faults. Anything else is a bug.
STORE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


class Base(DeclarativeBase):
    pass


class StoreUnavailableError(Exception):
    """The credential store is unconfigured or cannot be reached."""


def get_engine(settings: Settings) -> Engine:
    url = settings.database_url
    if url.startswith("postgresql"):
        return create_engine(
            url,
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            connect_args={
                "connect_timeout": settings.db_connect_timeout,
                "options": f"-c statement_timeout={settings.db_statement_timeout_ms}",
            },
        )
    return create_engine(url, pool_pre_ping=True)


class Database:
    """Owns the engine and session factory for one process.

    An instance without an engine represents an unconfigured store; every
    attempt to open a session then raises StoreUnavailableError.
    """

    def __init__(self, engine: Engine | None):
        self.engine = engine
        self._session_factory = (
            sessionmaker(bind=engine, autoflush=False, autocommit=False)
            if engine is not None
            else None
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        if not settings.database_configured:
            logger.warning("DATABASE_URL is not set; running in admin-only mode")
            return cls(None)
        return cls(get_engine(settings))

    @property
    def is_configured(self) -> bool:
        return self.engine is not None

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Transactional session; commits on success, rolls back on error.

        Connection and timeout faults are re-raised as StoreUnavailableError.
        """
        if self._session_factory is None:
            raise StoreUnavailableError("Database is not configured")
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except STORE_ERRORS as exc:
            _safe_rollback(db)
            logger.error("Database unavailable: %s", exc)
            raise StoreUnavailableError(str(exc)) from exc
        except Exception:
            _safe_rollback(db)
            raise
        finally:
            db.close()

    def ping(self) -> None:
        with self.session() as db:
            db.execute(text("SELECT 1"))

    def create_all(self) -> None:
        import mathkids.models  # noqa: F401

        if self.engine is None:
            raise StoreUnavailableError("Database is not configured")
        try:
            Base.metadata.create_all(self.engine)
        except STORE_ERRORS as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()


def _safe_rollback(db: Session) -> None:
    try:
        db.rollback()
    except STORE_ERRORS as exc:
        logger.debug("Rollback failed on a broken connection: %s", exc)
