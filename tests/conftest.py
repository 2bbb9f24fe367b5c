"""Shared test fixtures: in-memory store, cache and pool doubles."""

import fnmatch
from collections.abc import Iterable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from src.cs_content.application.repository import ContentRepository
from src.cs_content.domain.models import ContentItem

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class InMemoryContentStore:
    """ContentStoreProtocol backed by a dict. Timestamps come from `now`."""

    def __init__(self) -> None:
        self.rows: dict[int, ContentItem] = {}
        self.next_id = 1
        self.now = T0

    def tick(self, seconds: int = 1) -> None:
        self.now = self.now + timedelta(seconds=seconds)

    async def list_items(self, conn) -> list[ContentItem]:
        return sorted(
            self.rows.values(), key=lambda i: (-i.created_at.timestamp(), i.id)
        )

    async def get_item(self, conn, item_id: int) -> ContentItem | None:
        return self.rows.get(item_id)

    async def insert_item(self, conn, title: str, body: str) -> ContentItem:
        item = ContentItem(
            id=self.next_id, title=title, body=body,
            created_at=self.now, updated_at=self.now,
        )
        self.rows[item.id] = item
        self.next_id += 1
        return item

    async def update_item(self, conn, item_id: int, title: str, body: str) -> ContentItem | None:
        old = self.rows.get(item_id)
        if old is None:
            return None
        item = ContentItem(
            id=item_id, title=title, body=body,
            created_at=old.created_at, updated_at=self.now,
        )
        self.rows[item_id] = item
        return item

    async def delete_item(self, conn, item_id: int) -> bool:
        return self.rows.pop(item_id, None) is not None


class FakeCache:
    """CacheProtocol backed by a dict; records every call into `events`."""

    def __init__(self, events: list[str]) -> None:
        self.data: dict[str, str | bytes] = {}
        self.ttls: dict[str, int] = {}
        self.deleted: list[list[str]] = []
        self.events = events

    async def get(self, key: str) -> str | bytes | None:
        return self.data.get(key)

    async def set_with_ttl(self, key: str, value: str, ttl: int) -> None:
        self.events.append(f"set:{key}")
        self.data[key] = value
        self.ttls[key] = ttl

    async def delete_keys(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        self.events.append(f"del:{','.join(keys)}")
        self.deleted.append(keys)
        for key in keys:
            self.data.pop(key, None)

    async def delete_pattern(self, pattern: str) -> int:
        matched = [k for k in self.data if fnmatch.fnmatchcase(k, pattern)]
        for key in matched:
            del self.data[key]
        return len(matched)


class FakePool:
    """ConnectionPoolProtocol double. Set `error` to make every acquire fail."""

    def __init__(self, events: list[str]) -> None:
        self.events = events
        self.connections = 0
        self.transactions = 0
        self.error: Exception | None = None

    @asynccontextmanager
    async def connection(self):
        if self.error is not None:
            raise self.error
        self.connections += 1
        yield MagicMock()

    @asynccontextmanager
    async def transaction(self):
        if self.error is not None:
            raise self.error
        self.transactions += 1
        self.events.append("begin")
        try:
            yield MagicMock()
        except BaseException:
            self.events.append("rollback")
            raise
        self.events.append("commit")


@pytest.fixture
def events() -> list[str]:
    return []


@pytest.fixture
def store() -> InMemoryContentStore:
    return InMemoryContentStore()


@pytest.fixture
def cache(events) -> FakeCache:
    return FakeCache(events)


@pytest.fixture
def pool(events) -> FakePool:
    return FakePool(events)


@pytest.fixture
def repo(pool, cache, store) -> ContentRepository:
    return ContentRepository(pool, cache, store=store)
