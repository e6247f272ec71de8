"""
Base service class for the engagement engine.

Provides async database session management, per-user serialization and the
translation of store failures into StoreUnavailable for every service.
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from engagement.config import Config
from engagement.utils.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar('T')


class UserLocks:
    """Registry of one asyncio.Lock per user.

    Locks are held weakly, so a user's lock disappears once no request is
    using it. Different users never share a lock.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def __len__(self):
        return len(self._locks)


class BaseService:
    """Base class for all services with async database session management."""

    def __init__(self, session_factory, user_locks: Optional[UserLocks] = None,
                 timeout: Optional[float] = None):
        """
        Initialize base service with session factory.

        Args:
            session_factory: Async session factory from Database class
            user_locks: Lock registry shared by every service that mutates user state
            timeout: Upper bound in seconds for one unit of work, lock wait included
        """
        self.session_factory = session_factory
        self.user_locks = user_locks if user_locks is not None else UserLocks()
        self.timeout = timeout if timeout is not None else Config.STORE_TIMEOUT_SECONDS

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for async database operations."""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def run_exclusive(self, user_id: str, operation: str,
                            work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """
        Run one read-check-write unit of work for a user.

        The user's lock is held for the whole transaction so two requests for
        the same user are never evaluated against the same snapshot. The lock
        wait and the transaction together are bounded by the service timeout.
        """
        async def _locked():
            async with self.user_locks.get(user_id):
                async with self.get_session() as session:
                    return await work(session)

        return await self._bounded(operation, _locked())

    async def run_unlocked(self, operation: str, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run a unit of work that needs no user lock, with the same timeout and error mapping."""
        async def _unlocked():
            async with self.get_session() as session:
                return await work(session)

        return await self._bounded(operation, _unlocked())

    async def _bounded(self, operation: str, coro: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{operation} timed out after {self.timeout}s")
            raise StoreUnavailable(operation, f"timed out after {self.timeout}s")
        except SQLAlchemyError as e:
            logger.warning(f"{operation} failed in the store: {e}")
            raise StoreUnavailable(operation, str(e)) from e
