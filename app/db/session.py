import contextlib
from typing import AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config.settings import settings
from app.utils.logging import get_logger

logger = get_logger()


def _casefold(value):
    return value.casefold() if isinstance(value, str) else value


def register_sqlite_functions(engine: AsyncEngine) -> None:
    """Give SQLite connections a Unicode-aware casefold() SQL function; the built-in lower() only folds ASCII"""
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.create_function("casefold", 1, _casefold)


class DatabaseSessionManager:
    """Owns the async engine and session factory for the lifetime of the application.

    The surrounding application calls ``init`` at start-up and ``close`` at
    shutdown; services only ever receive sessions handed out by ``session``.
    """

    def __init__(self):
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("DatabaseSessionManager is not initialized")
        return self._engine

    def init(self, database_url: Optional[str] = None, **engine_kwargs) -> None:
        url = database_url or settings.DATABASE_URL
        engine_kwargs.setdefault("echo", settings.DATABASE_ECHO)
        engine_kwargs.setdefault("pool_pre_ping", settings.DATABASE_POOL_PRE_PING)

        self._engine = create_async_engine(url, **engine_kwargs)
        register_sqlite_functions(self._engine)
        self._sessionmaker = async_sessionmaker(
            bind=self._engine, class_=AsyncSession, expire_on_commit=False
        )
        logger.info(f"Database engine initialized for {self._engine.url.render_as_string(hide_password=True)}")

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("Database engine disposed")

    @contextlib.asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if self._sessionmaker is None:
            raise RuntimeError("DatabaseSessionManager is not initialized")

        db = self._sessionmaker()
        try:
            yield db
        except Exception:
            await db.rollback()
            raise
        finally:
            await db.close()


sessionmanager = DatabaseSessionManager()


async def get_async_session() -> AsyncIterator[AsyncSession]:
    """Yield a session from the application-wide session manager"""
    async with sessionmanager.session() as db:
        yield db
