"""Versioned serialization contract for cached content items.

Every cached value is a JSON envelope:

    {"kind": "content_item", "version": 1, "data": {...}}
    {"kind": "content_item_list", "version": 1, "data": [{...}, ...]}

Bump CONTENT_ITEM_VERSION whenever ContentItemPayload changes shape. A reader
that sees another kind or version, malformed JSON, or a payload that fails
validation raises CacheDecodeError; callers treat that as a cache miss.
Raw values arrive as bytes from the cache; bytes that are not UTF-8 are
rejected the same way.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from src.cs_common.errors import CacheDecodeError
from src.cs_content.domain.models import ContentItem

CONTENT_ITEM_VERSION = 1
KIND_ITEM = "content_item"
KIND_ITEM_LIST = "content_item_list"


class ContentItemPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    title: str
    body: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, item: ContentItem) -> "ContentItemPayload":
        return cls(
            id=item.id,
            title=item.title,
            body=item.body,
            created_at=item.created_at,
            updated_at=item.updated_at,
        )

    def to_domain(self) -> ContentItem:
        return ContentItem(
            id=self.id,
            title=self.title,
            body=self.body,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class CacheEnvelope(BaseModel):
    kind: str
    version: int
    data: Any


_ITEM_LIST_ADAPTER = TypeAdapter(list[ContentItemPayload])


def _open_envelope(raw: str | bytes, kind: str) -> Any:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as err:
            raise CacheDecodeError(f"payload is not UTF-8 ({err.reason})") from err
    try:
        envelope = CacheEnvelope.model_validate_json(raw)
    except PydanticValidationError as err:
        raise CacheDecodeError(f"malformed envelope ({err.error_count()} errors)") from err
    if envelope.kind != kind:
        raise CacheDecodeError(f"expected kind {kind}, got {envelope.kind}")
    if envelope.version != CONTENT_ITEM_VERSION:
        raise CacheDecodeError(
            f"{kind} version {envelope.version} != {CONTENT_ITEM_VERSION}"
        )
    return envelope.data


def encode_item(item: ContentItem) -> str:
    return CacheEnvelope(
        kind=KIND_ITEM,
        version=CONTENT_ITEM_VERSION,
        data=ContentItemPayload.from_domain(item).model_dump(mode="json"),
    ).model_dump_json()


def decode_item(raw: str | bytes) -> ContentItem:
    data = _open_envelope(raw, KIND_ITEM)
    try:
        return ContentItemPayload.model_validate(data).to_domain()
    except PydanticValidationError as err:
        raise CacheDecodeError(f"invalid {KIND_ITEM} payload") from err


def encode_items(items: list[ContentItem]) -> str:
    return CacheEnvelope(
        kind=KIND_ITEM_LIST,
        version=CONTENT_ITEM_VERSION,
        data=[ContentItemPayload.from_domain(i).model_dump(mode="json") for i in items],
    ).model_dump_json()


def decode_items(raw: str | bytes) -> list[ContentItem]:
    data = _open_envelope(raw, KIND_ITEM_LIST)
    try:
        payloads = _ITEM_LIST_ADAPTER.validate_python(data)
    except PydanticValidationError as err:
        raise CacheDecodeError(f"invalid {KIND_ITEM_LIST} payload") from err
    return [p.to_domain() for p in payloads]
