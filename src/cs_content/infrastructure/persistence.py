"""ContentItemStore — concrete implementation of ContentStoreProtocol.

All queries use raw text() SQL (no ORM). id, created_at and updated_at are
assigned by PostgreSQL (BIGSERIAL, DEFAULT NOW(), fn_update_timestamp trigger).
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from src.cs_content.domain.models import ContentItem

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_LIST_ITEMS_SQL = text("""
    SELECT id, title, body, created_at, updated_at
    FROM content_items
    ORDER BY created_at DESC, id ASC
""")

_GET_ITEM_SQL = text("""
    SELECT id, title, body, created_at, updated_at
    FROM content_items
    WHERE id = :item_id
""")

_INSERT_ITEM_SQL = text("""
    INSERT INTO content_items (title, body)
    VALUES (:title, :body)
    RETURNING id, title, body, created_at, updated_at
""")

_UPDATE_ITEM_SQL = text("""
    UPDATE content_items
    SET title = :title, body = :body
    WHERE id = :item_id
    RETURNING id, title, body, created_at, updated_at
""")

_DELETE_ITEM_SQL = text("""
    DELETE FROM content_items
    WHERE id = :item_id
""")

# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_item(row: object) -> ContentItem:
    return ContentItem(
        id=row.id,  # type: ignore[attr-defined]
        title=row.title,  # type: ignore[attr-defined]
        body=row.body,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class ContentItemStore:
    """Authoritative reads and writes. Transactions are owned by the caller."""

    async def list_items(self, conn: AsyncConnection) -> list[ContentItem]:
        result = await conn.execute(_LIST_ITEMS_SQL)
        return [_row_to_item(row) for row in result.fetchall()]

    async def get_item(self, conn: AsyncConnection, item_id: int) -> ContentItem | None:
        result = await conn.execute(_GET_ITEM_SQL, {"item_id": item_id})
        row = result.fetchone()
        return _row_to_item(row) if row else None

    async def insert_item(self, conn: AsyncConnection, title: str, body: str) -> ContentItem:
        result = await conn.execute(_INSERT_ITEM_SQL, {"title": title, "body": body})
        return _row_to_item(result.fetchone())

    async def update_item(
        self, conn: AsyncConnection, item_id: int, title: str, body: str
    ) -> ContentItem | None:
        result = await conn.execute(
            _UPDATE_ITEM_SQL, {"item_id": item_id, "title": title, "body": body}
        )
        row = result.fetchone()
        return _row_to_item(row) if row else None

    async def delete_item(self, conn: AsyncConnection, item_id: int) -> bool:
        result = await conn.execute(_DELETE_ITEM_SQL, {"item_id": item_id})
        return result.rowcount > 0
