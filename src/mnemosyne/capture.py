from __future__ import annotations

import mimetypes
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from mnemosyne.schemas import Item, ItemType, format_timestamp, new_item_id, now_utc

_URL_PATTERN = re.compile(r'^(http|https)://[^ "]+$')
_MIME_BY_EXTENSION = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
}
DEFAULT_IMAGE_MIME = "image/webp"
DEFAULT_ASSET_EXTENSION = "bin"


@dataclass(slots=True, frozen=True)
class AssetFile:
    name: str
    data: bytes
    content_type: str | None = None

    @classmethod
    def from_path(cls, path: str | Path) -> AssetFile:
        file_path = Path(path)
        content_type, _ = mimetypes.guess_type(file_path.name)
        return cls(name=file_path.name, data=file_path.read_bytes(), content_type=content_type)


def is_url(text: str) -> bool:
    return _URL_PATTERN.match(text) is not None


def asset_extension(filename: str) -> str:
    suffix = PurePosixPath(filename).suffix
    return suffix[1:] if len(suffix) > 1 else DEFAULT_ASSET_EXTENSION


def build_text_item(text: str, *, tags: Iterable[str] = ()) -> Item:
    if not text.strip():
        raise ValueError("capture text is empty")

    link = is_url(text)
    return Item(
        id=new_item_id(),
        type=ItemType.LINK if link else ItemType.NOTE,
        content=text,
        # URL stands in as the title until link metadata is fetched.
        title=text if link else None,
        created_at=format_timestamp(now_utc()),
        tags=list(tags),
    )


def build_image_item(file: AssetFile, asset_path: str, *, tags: Iterable[str] = ()) -> Item:
    return Item(
        id=new_item_id(),
        type=ItemType.IMAGE,
        content=file.name,
        image=asset_path,
        image_type=file.content_type,
        created_at=format_timestamp(now_utc()),
        tags=list(tags),
    )


def mime_type_for(path: str, declared: str | None = None) -> str:
    if declared:
        return declared
    extension = PurePosixPath(path).suffix[1:].lower()
    return _MIME_BY_EXTENSION.get(extension, DEFAULT_IMAGE_MIME)


def to_data_url(base64_content: str, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64_content}"
