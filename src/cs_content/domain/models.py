"""Domain models for cs_content — pure dataclasses, no business logic."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class ContentItem:
    """A stored content item. id and created_at are assigned by the store."""

    id: int
    title: str
    body: str
    created_at: datetime
    updated_at: datetime
