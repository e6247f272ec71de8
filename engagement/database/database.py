from typing import Optional
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from contextlib import asynccontextmanager

from engagement.config import Config
from engagement.database.models import Base
from engagement.utils.logger import setup_logger

class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url or Config.DATABASE_URL
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        # Convert sqlite URL to async if needed
        database_url = self.database_url
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @property
    def session_factory(self):
        """Session factory handed to services"""
        if self.async_session is None:
            raise RuntimeError("Database.initialize() must be awaited before use")
        return self.async_session

    @asynccontextmanager
    async def get_session(self):
        """Get a database session for read-only work"""
        async with self.async_session() as session:
            try:
                yield session
            except BaseException:
                await session.rollback()
                raise

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context are committed together on success,
        or rolled back together on failure. Cancellation counts as failure, so
        an abandoned caller never leaves a half-applied unit of work behind.

        Usage:
            async with db.transaction() as session:
                record.last_completed_at = now
                await ledger.credit_atomic(..., session=session)
                # Both commit together here
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")
