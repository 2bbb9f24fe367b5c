"""ContentRepository — cache-aside access to content items.

The only component external callers (routes, pages, scripts) use directly.

Reads:  cache → on miss, store → populate cache → return.
Writes: store (committed) → invalidate affected keys → return.

The cache is best-effort: a miss, a stale entry, an undecodable payload or a
dead cache only costs a store round trip. Store failures propagate to the
caller (StoreConnectionError for transport problems).
"""

import logging

from src.cs_common.database import ConnectionPoolProtocol
from src.cs_common.errors import CacheDecodeError, ContentValidationError
from src.cs_content.domain.cache import (
    DEFAULT_TTL_SECONDS,
    ITEMS_ALL_KEY,
    ITEMS_KEY_PATTERN,
    item_key,
    keys_for_item_write,
)
from src.cs_content.domain.models import ContentItem
from src.cs_content.domain.repository import CacheProtocol, ContentStoreProtocol
from src.cs_content.infrastructure.cache_codec import (
    decode_item,
    decode_items,
    encode_item,
    encode_items,
)
from src.cs_content.infrastructure.persistence import ContentItemStore

logger = logging.getLogger(__name__)


def _validate(title: str, body: str) -> None:
    if not title or not title.strip():
        raise ContentValidationError("title")
    if not body or not body.strip():
        raise ContentValidationError("body")


class ContentRepository:
    def __init__(
        self,
        pool: ConnectionPoolProtocol,
        cache: CacheProtocol,
        store: ContentStoreProtocol | None = None,
        ttl: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        self._pool = pool
        self._cache = cache
        self._store: ContentStoreProtocol = store or ContentItemStore()
        self._ttl = ttl

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all(self) -> list[ContentItem]:
        """All items, newest first (ties: ascending id)."""
        raw = await self._cache.get(ITEMS_ALL_KEY)
        if raw is not None:
            try:
                items = decode_items(raw)
            except CacheDecodeError as err:
                await self._discard(ITEMS_ALL_KEY, err)
            else:
                logger.debug("Cache hit: %s", ITEMS_ALL_KEY)
                return items

        async with self._pool.connection() as conn:
            items = await self._store.list_items(conn)

        await self._cache.set_with_ttl(ITEMS_ALL_KEY, encode_items(items), self._ttl)
        return items

    async def get_by_id(self, item_id: int) -> ContentItem | None:
        key = item_key(item_id)
        raw = await self._cache.get(key)
        if raw is not None:
            try:
                item = decode_item(raw)
            except CacheDecodeError as err:
                await self._discard(key, err)
            else:
                logger.debug("Cache hit: %s", key)
                return item

        async with self._pool.connection() as conn:
            item = await self._store.get_item(conn, item_id)

        # Absence is never cached: a later create must be visible at once.
        if item is None:
            return None
        await self._cache.set_with_ttl(key, encode_item(item), self._ttl)
        return item

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, title: str, body: str) -> ContentItem:
        _validate(title, body)
        async with self._pool.transaction() as conn:
            item = await self._store.insert_item(conn, title, body)

        await self._cache.delete_keys([ITEMS_ALL_KEY])
        logger.info("Created content item %d", item.id)
        return item

    async def update(self, item_id: int, title: str, body: str) -> ContentItem | None:
        _validate(title, body)
        async with self._pool.transaction() as conn:
            item = await self._store.update_item(conn, item_id, title, body)

        if item is None:
            return None
        await self._cache.delete_keys(keys_for_item_write(item_id))
        logger.info("Updated content item %d", item_id)
        return item

    async def delete(self, item_id: int) -> bool:
        async with self._pool.transaction() as conn:
            removed = await self._store.delete_item(conn, item_id)

        # Invalidate even when nothing was removed; DEL on a missing key is a no-op.
        await self._cache.delete_keys(keys_for_item_write(item_id))
        if removed:
            logger.info("Deleted content item %d", item_id)
        return removed

    async def flush_cache(self) -> int:
        """Drop every cached content key. Returns the number of keys removed."""
        removed = await self._cache.delete_pattern(ITEMS_KEY_PATTERN)
        logger.info("Flushed %d cached content keys", removed)
        return removed

    async def _discard(self, key: str, err: CacheDecodeError) -> None:
        logger.warning("Discarding cache entry %s: %s", key, err.message)
        await self._cache.delete_keys([key])
