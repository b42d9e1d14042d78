import os
import sys
import contextlib
import functools
from typing import Optional, AsyncGenerator, Dict

from sqlalchemy import URL, make_url, text, event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool, StaticPool
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

import traceback
import logging
LOGGER = logging.getLogger(__name__)

from playlog.errors import StoreError
from playlog.models import Base

from dotenv import load_dotenv
load_dotenv()

class DatabaseManager:
    """Process-local singleton database manager with proper connection handling"""

    _instances: Dict[int, 'DatabaseManager'] = {}  # keyed by process ID

    def __new__(cls) -> 'DatabaseManager':
        pid = os.getpid()
        if pid not in cls._instances:
            instance = super().__new__(cls)
            instance._engine: Optional[AsyncEngine] = None
            instance._session_factory: Optional[async_sessionmaker] = None
            instance._initialized: bool = False
            cls._instances[pid] = instance
        return cls._instances[pid]

    def create_database_url(self) -> URL:
        if override := os.environ.get("DATABASE_URL"):
            return make_url(override)

        if test_db := os.environ.get("TEST_DATABASE_NAME"):
            database_name = test_db
        elif os.getenv("TEST_MODE"):
            database_name = "test_db"
        else:
            database_name = os.environ.get("POSTGRES_DB", "listeningHistory")

        LOGGER.info(f"Using database '{database_name}' (PID: {os.getpid()}).")

        return URL.create(
            drivername='postgresql+asyncpg',
            username=os.environ["POSTGRES_USER"],
            password=os.environ["POSTGRES_PASSWORD"],
            host=os.environ["POSTGRES_HOST"],
            port=int(os.environ["DB_PORT"]),
            database=database_name
        )

    def _engine_options(self, url: URL) -> dict:
        if url.get_backend_name() == "sqlite":
            # In-memory SQLite only lives as long as its one connection, which every
            # session shares, so returning it must not roll back someone else's work.
            return {"poolclass": StaticPool,
                    "pool_reset_on_return": None,
                    "connect_args": {"check_same_thread": False}}

        return {
            "poolclass": AsyncAdaptedQueuePool,
            "pool_size": 5,
            "max_overflow": 10,
            "pool_pre_ping": True,               # Validate connections before use
            "pool_recycle": 3600,
            "pool_timeout": 30,
            "connect_args": {
                "server_settings": {"application_name": f"playlog_pid_{os.getpid()}"},
                "command_timeout": 60,
            },
        }

    async def initialize(self, url: URL | str | None = None) -> None:
        """Initialize database engine and session factory"""
        if self._initialized:
            LOGGER.debug(f"Database already initialized for PID {os.getpid()}")
            return

        LOGGER.info(f"Initializing DB engine for PID {os.getpid()}")
        try:
            url = make_url(url) if url is not None else self.create_database_url()
            self._engine = create_async_engine(url, echo=False, **self._engine_options(url))

            @event.listens_for(self._engine.sync_engine, "connect")
            def receive_connect(dbapi_connection, connection_record):
                LOGGER.debug(f"New database connection established (PID: {os.getpid()})")

            async with self._engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
                LOGGER.info(f"Database connection test to '{url.database}' successful (PID: {os.getpid()})")

            self._session_factory = async_sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False,          # Keep objects usable after commit
                autoflush=True,
            )

            self._initialized = True
            LOGGER.info(f"Database engine and session factory initialized successfully (PID: {os.getpid()})")

        except Exception as e:
            LOGGER.error(f"Could not initialize database (PID: {os.getpid()}): {traceback.format_exc()}")
            await self.cleanup()
            raise StoreError(f"Database initialization failed: {str(e)}") from e

    @contextlib.asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Context manager for database sessions with proper cleanup"""
        if not self._initialized:
            LOGGER.info(f"DB not initialized yet for PID {os.getpid()}, doing that now.")
            await self.initialize()

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            LOGGER.debug(f"Session error, rolling back (PID: {os.getpid()}): {traceback.format_exc()}")
            raise
        finally:
            await session.close()

    async def get_engine(self) -> AsyncEngine:
        if not self._initialized:
            LOGGER.info(f"DB not initialized yet for PID {os.getpid()}, doing that now.")
            await self.initialize()
        return self._engine

    async def create_tables(self) -> None:
        """Create tables straight from the models, for throwaway (test) databases."""
        engine = await self.get_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def cleanup(self) -> None:
        """Cleanup database resources for this process"""
        if self._engine:
            await self._engine.dispose()
            LOGGER.info(f"Database engine disposed (PID: {os.getpid()})")

        self._engine = None
        self._session_factory = None
        self._initialized = False

        pid = os.getpid()
        if pid in self._instances:
            del self._instances[pid]

    def create_tables_with_alembic(self) -> None:
        """Create tables using Alembic migrations instead of direct creation"""
        import subprocess

        try:
            result = subprocess.run([
                sys.executable, "-m", "alembic", "upgrade", "head"
            ], check=True, capture_output=True, text=True)
            LOGGER.info(f"Alembic upgrade completed: {result.stdout}")
        except subprocess.CalledProcessError as e:
            LOGGER.error(f"Alembic upgrade failed: {e.stderr}")
            raise

    @classmethod
    async def cleanup_all_instances(cls) -> None:
        """Cleanup all database instances across all processes (for test cleanup)"""
        for pid, instance in list(cls._instances.items()):
            await instance.cleanup()
        cls._instances.clear()

def get_db_manager() -> DatabaseManager:
    # DatabaseManager is already a per-process singleton, and cleanup() drops it.
    return DatabaseManager()

def get_session():
    """Get session context manager"""
    return get_db_manager().get_session()

def pass_session_capable(func):
    """Let a coroutine take an explicit `session=` or open its own."""
    @functools.wraps(func)
    async def inner(*args, **kwargs):
        if kwargs.get("session") is not None:
            return await func(*args, **kwargs)

        async with get_session() as s:
            kwargs["session"] = s
            return await func(*args, **kwargs)

    return inner

def insert_for(session, model):
    """Dialect-specific insert, the generic one has no ON CONFLICT support."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    if "-t" in sys.argv or "--test" in sys.argv:
        os.environ["TEST_MODE"] = "true"

    get_db_manager().create_tables_with_alembic()
