"""PoolManager — bounded pool of store connections.

Wraps a SQLAlchemy async engine (asyncpg driver). The engine's QueuePool
provides the bound (pool_size, no overflow) and the acquire timeout
(pool_timeout). Idle eviction is done at checkout: a connection that sat in
the pool longer than idle_timeout is discarded and transparently replaced.

Transport failures surface as StoreConnectionError; every other store error
propagates unchanged.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Protocol

from sqlalchemy import event, exc, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from config.settings import Settings
from src.cs_common.errors import StoreConnectionError

logger = logging.getLogger(__name__)

_CHECKED_IN_AT = "cs_checked_in_at"

_TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    exc.TimeoutError,
    exc.OperationalError,
    exc.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


def _is_transport_error(err: BaseException) -> bool:
    if isinstance(err, _TRANSPORT_ERRORS):
        return True
    return isinstance(err, exc.DBAPIError) and err.connection_invalidated


class ConnectionPoolProtocol(Protocol):
    def connection(self) -> AbstractAsyncContextManager[AsyncConnection]: ...

    def transaction(self) -> AbstractAsyncContextManager[AsyncConnection]: ...


def is_idle_expired(checked_in_at: float | None, now: float, idle_timeout: float) -> bool:
    """True when a pooled connection has been idle for longer than idle_timeout."""
    if checked_in_at is None or idle_timeout <= 0:
        return False
    return now - checked_in_at > idle_timeout


class PoolManager:
    def __init__(
        self,
        engine: AsyncEngine,
        idle_timeout: float = 30.0,
        clock: Any = time.monotonic,
    ) -> None:
        self._engine = engine
        self._idle_timeout = idle_timeout
        self._clock = clock
        self._install_idle_eviction()

    @classmethod
    def from_settings(cls, settings: Settings) -> "PoolManager":
        connect_args: dict[str, Any] = {}
        if "+asyncpg" in settings.DATABASE_URL:
            connect_args["timeout"] = settings.DB_POOL_CONNECT_TIMEOUT
        engine = create_async_engine(
            settings.DATABASE_URL,
            echo=settings.DEBUG,
            pool_size=settings.DB_POOL_MAX_SIZE,
            max_overflow=0,
            pool_timeout=settings.DB_POOL_ACQUIRE_TIMEOUT,
            connect_args=connect_args,
        )
        return cls(engine, idle_timeout=settings.DB_POOL_IDLE_TIMEOUT)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    # ------------------------------------------------------------------
    # Idle eviction
    # ------------------------------------------------------------------

    def _install_idle_eviction(self) -> None:
        pool = self._engine.sync_engine.pool
        event.listen(pool, "checkin", self._on_checkin)
        event.listen(pool, "checkout", self._on_checkout)

    def _on_checkin(self, dbapi_connection: Any, connection_record: Any) -> None:
        if connection_record is not None:
            connection_record.info[_CHECKED_IN_AT] = self._clock()

    def _on_checkout(
        self, dbapi_connection: Any, connection_record: Any, connection_proxy: Any
    ) -> None:
        checked_in_at = connection_record.info.pop(_CHECKED_IN_AT, None)
        if is_idle_expired(checked_in_at, self._clock(), self._idle_timeout):
            logger.debug("Evicting idle store connection (idle > %.1fs)", self._idle_timeout)
            # The pool closes this connection and retries checkout with a fresh one.
            raise exc.DisconnectionError("idle timeout exceeded")

    # ------------------------------------------------------------------
    # Acquire / release
    # ------------------------------------------------------------------

    async def acquire(self) -> AsyncConnection:
        """Check a connection out of the pool.

        Blocks while the pool is exhausted, up to the acquire timeout.
        """
        try:
            return await self._engine.connect()
        except Exception as err:
            if _is_transport_error(err):
                logger.warning("Store connection acquire failed: %s", err)
                raise StoreConnectionError(f"Could not acquire store connection: {err}") from err
            raise

    async def release(self, conn: AsyncConnection) -> None:
        """Return a connection to the pool. Releasing twice is a no-op."""
        if conn.closed:
            return
        await conn.close()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[AsyncConnection]:
        conn = await self.acquire()
        try:
            yield conn
        except Exception as err:
            if _is_transport_error(err):
                raise StoreConnectionError(f"Store connection lost: {err}") from err
            raise
        finally:
            await self.release(conn)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Acquire, BEGIN, yield; COMMIT on success, ROLLBACK on error."""
        async with self.connection() as conn:
            async with conn.begin():
                yield conn

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ping(self) -> str:
        """Round-trip to the store; returns the server version string."""
        async with self.connection() as conn:
            result = await conn.execute(text("SELECT version()"))
            return str(result.scalar())

    async def dispose(self) -> None:
        await self._engine.dispose()
