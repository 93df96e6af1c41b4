from __future__ import annotations

import re
import secrets
import time
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

TModel = TypeVar("TModel", bound=BaseModel)

_TIMESTAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def now_utc() -> datetime:
    return datetime.now(tz=UTC)


def format_timestamp(value: datetime) -> str:
    """Fixed-width ISO-8601 UTC with millisecond precision, e.g. 2024-01-01T00:00:00.000Z.

    Lexicographic order of the output equals chronological order.
    """
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return f"{value:%Y-%m-%dT%H:%M:%S}.{value.microsecond // 1000:03d}Z"


def new_item_id() -> str:
    # 12 hex digits of epoch milliseconds keep ids roughly time-ordered.
    millis = int(time.time() * 1000)
    return f"{millis:012x}{secrets.token_hex(8)}"


def _validate_timestamp(value: object) -> str:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if not isinstance(value, str) or not _TIMESTAMP_PATTERN.match(value):
        raise ValueError("timestamp must look like YYYY-MM-DDTHH:MM:SS.mmmZ")
    datetime.strptime(value, _TIMESTAMP_FORMAT)
    return value


class DTOBase(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ItemType(StrEnum):
    NOTE = "note"
    LINK = "link"
    IMAGE = "image"


class Item(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(min_length=1)
    type: ItemType
    content: str
    title: str | None = None
    description: str | None = None
    image: str | None = None
    image_type: str | None = None
    created_at: str
    tags: list[str] = Field(default_factory=list)
    updated_at: str | None = None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def validate_timestamps(cls, value: object) -> object:
        if value is None:
            return value
        return _validate_timestamp(value)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


class ItemPatch(BaseModel):
    """Partial update for a cached item; only explicitly set fields are merged."""

    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    type: ItemType | None = None
    content: str | None = None
    title: str | None = None
    description: str | None = None
    image: str | None = None
    image_type: str | None = None
    tags: list[str] | None = None

    @model_validator(mode="after")
    def validate_required_fields(self) -> ItemPatch:
        for name in ("type", "content", "tags"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class CacheSnapshot(DTOBase):
    items: list[Item]
    timestamp: float


class AssetCacheSnapshot(DTOBase):
    urls: dict[str, str] = Field(default_factory=dict)
    timestamp: float


class RemoteEntry(DTOBase):
    name: str
    path: str


def validate_json(model_cls: type[TModel], payload: str | bytes | bytearray) -> TModel:
    return model_cls.model_validate_json(payload)
