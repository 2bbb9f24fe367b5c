"""Cache key layout for content items.

  - List of all items, newest first: "items:all"
  - Single item:                      "items:{id}"
  - Default TTL 300s (bounded staleness window)

Writes are store-first, then invalidate:
  - create → items:all
  - update → items:{id}, items:all
  - delete → items:{id}, items:all (even when no row existed)
"""

ITEMS_ALL_KEY = "items:all"
ITEMS_KEY_PATTERN = "items:*"
DEFAULT_TTL_SECONDS = 300


def item_key(item_id: int) -> str:
    return f"items:{item_id}"


def keys_for_item_write(item_id: int) -> list[str]:
    """Keys invalidated by an update or delete of one item."""
    return [item_key(item_id), ITEMS_ALL_KEY]
