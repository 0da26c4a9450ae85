"""Database configuration and base models"""

from collections.abc import AsyncIterator
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all database models"""

    pass


def to_async_url(db_url: str) -> str:
    """Convert a plain SQLite URL to its aiosqlite form"""
    if db_url.startswith("sqlite:///"):
        return db_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return db_url


class Database:
    """
    Async engine and session factory for the relational store

    One instance is created per application and handed to the services
    through the service container.
    """

    def __init__(self, db_url: str, timeout: float = 30.0, echo: bool = False):
        self.url = to_async_url(db_url)
        self.timeout = timeout

        connect_args = {}
        if self.url.startswith("sqlite"):
            # Bounded wait on a locked database
            connect_args["timeout"] = timeout

        self.engine: AsyncEngine = create_async_engine(
            self.url,
            echo=echo,
            connect_args=connect_args,
        )

        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        if self.url.startswith("sqlite"):
            self._register_sqlite_pragmas()

    def _register_sqlite_pragmas(self) -> None:
        busy_timeout_ms = int(self.timeout * 1000)

        @event.listens_for(self.engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            """Set SQLite pragmas for better concurrency"""
            cursor = dbapi_conn.cursor()
            if ":memory:" not in self.url:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA temp_store=MEMORY")
            cursor.execute(f"PRAGMA busy_timeout={busy_timeout_ms}")
            cursor.close()

    async def init(self) -> None:
        """Initialize database (create tables)"""
        # Import models so they register with the metadata
        import sso_service.models  # noqa: F401

        database = self.engine.url.database
        if self.url.startswith("sqlite") and database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Close database connections"""
        await self.engine.dispose()

    async def session(self) -> AsyncIterator[AsyncSession]:
        """Dependency for getting async database session"""
        async with self.session_maker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
