# src/cs_content/domain/repository.py
"""Protocols — dependency inversion for testability.

Unit tests inject fakes that conform to these Protocols.
Infrastructure layer provides the real implementations.
"""

from collections.abc import Iterable
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncConnection

from src.cs_content.domain.models import ContentItem


class ContentStoreProtocol(Protocol):
    async def list_items(self, conn: AsyncConnection) -> list[ContentItem]: ...

    async def get_item(self, conn: AsyncConnection, item_id: int) -> ContentItem | None: ...

    async def insert_item(
        self, conn: AsyncConnection, title: str, body: str
    ) -> ContentItem: ...

    async def update_item(
        self, conn: AsyncConnection, item_id: int, title: str, body: str
    ) -> ContentItem | None: ...

    async def delete_item(self, conn: AsyncConnection, item_id: int) -> bool: ...


class CacheProtocol(Protocol):
    async def get(self, key: str) -> bytes | str | None: ...

    async def set_with_ttl(self, key: str, value: str, ttl: int) -> None: ...

    async def delete_keys(self, keys: Iterable[str]) -> None: ...

    async def delete_pattern(self, pattern: str) -> int: ...
