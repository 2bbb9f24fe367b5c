"""CacheClient — resilient session to the Redis cache tier.

State machine:

    DISCONNECTED ──▶ CONNECTING ──▶ READY
         ▲               │            │
         │           exhausted    transport error
         │               ▼            │
         │         FAILED (terminal)  │
         └────────────────────────────┘

Reconnection uses linear backoff: attempt N waits N * base_delay, up to
max_attempts. FAILED is terminal for the instance; build a new client to
try again.

At most one connect loop runs at a time. connect() joins a loop already in
flight, and close() cancels it. Every loop carries the epoch it was started
in and may only move CONNECTING → READY while that epoch is current, so a
loop outliving close() or a newer loop closes its session instead of
installing it.

get / set_with_ttl / delete_keys / delete_pattern never raise. When the
client is not READY they return immediately (miss / no-op), so a dead cache
costs the caller latency against the store and nothing else. Values come
back as raw bytes; decoding belongs to the caller.
"""

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from config.settings import Settings
from src.cs_common.errors import CacheUnavailableError

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


class CacheState(str, enum.Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    READY = "READY"
    FAILED = "FAILED"


def reconnect_delay(attempt: int, base_delay: float, max_attempts: int) -> float | None:
    """Delay before reconnect attempt `attempt` (1-based), or None when exhausted."""
    if attempt < 1 or attempt > max_attempts:
        return None
    return attempt * base_delay


class CacheClient:
    def __init__(
        self,
        url: str,
        max_reconnect_attempts: int = 10,
        reconnect_base_delay: float = 0.1,
        socket_timeout: float = 0.5,
        redis_factory: Callable[..., aioredis.Redis] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._url = url
        self._max_attempts = max_reconnect_attempts
        self._base_delay = reconnect_base_delay
        self._socket_timeout = socket_timeout
        self._redis_factory = redis_factory or aioredis.from_url
        self._sleep = sleep

        self._state = CacheState.DISCONNECTED
        self._redis: aioredis.Redis | None = None
        self._lock = asyncio.Lock()
        self._epoch = 0
        self._connect_task: asyncio.Task[bool] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheClient":
        return cls(
            settings.REDIS_URL,
            max_reconnect_attempts=settings.REDIS_MAX_RECONNECT_ATTEMPTS,
            reconnect_base_delay=settings.REDIS_RECONNECT_BASE_DELAY,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is CacheState.READY

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the session, retrying with linear backoff.

        The only operation that raises: CacheUnavailableError once every
        attempt has failed (the client is then FAILED), or when close()
        interrupts the attempt.
        """
        async with self._lock:
            if self._state is CacheState.READY:
                return
            if self._state is CacheState.FAILED:
                raise CacheUnavailableError("Cache client has permanently failed")
            task = self._connect_task
            if task is None or task.done():
                self._state = CacheState.CONNECTING
                task = self._start_loop(immediate=True)

        await asyncio.wait({task})

        if self._state is CacheState.READY:
            return
        if self._state is CacheState.FAILED:
            raise CacheUnavailableError(
                f"Cache connection failed after {self._max_attempts} retries"
            )
        raise CacheUnavailableError("Cache client closed while connecting")

    async def close(self) -> None:
        async with self._lock:
            self._epoch += 1
            task, self._connect_task = self._connect_task, None
            await self._drop_session()
            if self._state is not CacheState.FAILED:
                self._state = CacheState.DISCONNECTED
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})

    def _start_loop(self, immediate: bool) -> "asyncio.Task[bool]":
        """Supersede any running loop and start a new one. Caller holds the lock."""
        self._epoch += 1
        self._connect_task = asyncio.create_task(self._connect_loop(self._epoch, immediate))
        return self._connect_task

    async def _connect_loop(self, epoch: int, immediate: bool) -> bool:
        """Ends READY (True), FAILED (False), or False once superseded."""
        if immediate:
            if await self._try_open(epoch):
                return True
        else:
            async with self._lock:
                if epoch != self._epoch:
                    return False
                self._state = CacheState.CONNECTING

        attempt = 1
        while epoch == self._epoch:
            delay = reconnect_delay(attempt, self._base_delay, self._max_attempts)
            if delay is None:
                async with self._lock:
                    if epoch != self._epoch:
                        return False
                    self._state = CacheState.FAILED
                logger.error(
                    "Cache unavailable after %d reconnect attempts; serving from store only",
                    self._max_attempts,
                )
                return False
            await self._sleep(delay)
            if await self._try_open(epoch):
                return True
            attempt += 1
        return False

    async def _try_open(self, epoch: int) -> bool:
        """One connection attempt. CONNECTING → READY while `epoch` is current."""
        if epoch != self._epoch:
            return False
        client = self._redis_factory(
            self._url,
            decode_responses=False,
            socket_timeout=self._socket_timeout,
            socket_connect_timeout=self._socket_timeout,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as err:
            logger.warning("Cache connect attempt failed: %s", err)
            await _close_quietly(client)
            return False
        except asyncio.CancelledError:
            await _close_quietly(client)
            raise
        async with self._lock:
            if epoch != self._epoch or self._state is not CacheState.CONNECTING:
                await _close_quietly(client)
                return False
            await self._drop_session()
            self._redis = client
            self._state = CacheState.READY
        logger.info("Cache client ready")
        return True

    async def _on_transport_error(self, err: BaseException) -> None:
        """READY → DISCONNECTED, then reconnect in the background (once)."""
        async with self._lock:
            if self._state is not CacheState.READY:
                return
            self._state = CacheState.DISCONNECTED
            await self._drop_session()
            logger.warning("Cache connection lost (%s); reconnecting", err)
            self._start_loop(immediate=False)

    async def _drop_session(self) -> None:
        client, self._redis = self._redis, None
        if client is not None:
            await _close_quietly(client)

    # ------------------------------------------------------------------
    # Operations (total)
    # ------------------------------------------------------------------

    async def get(self, key: str) -> bytes | None:
        client = self._redis
        if not self.is_ready or client is None:
            return None
        try:
            return await client.get(key)
        except _TRANSPORT_ERRORS as err:
            await self._on_transport_error(err)
        except RedisError as err:
            logger.warning("Cache GET %s failed: %s", key, err)
        return None

    async def set_with_ttl(self, key: str, value: str, ttl: int) -> None:
        client = self._redis
        if not self.is_ready or client is None:
            return
        try:
            await client.setex(key, ttl, value)
        except _TRANSPORT_ERRORS as err:
            await self._on_transport_error(err)
        except RedisError as err:
            logger.warning("Cache SETEX %s failed: %s", key, err)

    async def delete_keys(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        client = self._redis
        if not keys or not self.is_ready or client is None:
            return
        try:
            await client.delete(*keys)
        except _TRANSPORT_ERRORS as err:
            await self._on_transport_error(err)
        except RedisError as err:
            logger.warning("Cache DEL %s failed: %s", keys, err)

    async def delete_pattern(self, pattern: str) -> int:
        """SCAN-based sweep of every key matching `pattern`. Returns keys removed."""
        client = self._redis
        if not self.is_ready or client is None:
            return 0
        removed = 0
        try:
            batch: list[str] = []
            async for key in client.scan_iter(match=pattern, count=500):
                batch.append(key)
                if len(batch) >= 500:
                    removed += await client.delete(*batch)
                    batch = []
            if batch:
                removed += await client.delete(*batch)
        except _TRANSPORT_ERRORS as err:
            await self._on_transport_error(err)
        except RedisError as err:
            logger.warning("Cache sweep %s failed: %s", pattern, err)
        return removed


async def _close_quietly(client: aioredis.Redis) -> None:
    try:
        await client.aclose()
    except (RedisError, OSError) as err:
        logger.debug("Ignoring error while closing cache session: %s", err)
