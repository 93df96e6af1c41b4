from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Iterable

from pydantic import ValidationError

from mnemosyne.capture import (
    AssetFile,
    asset_extension,
    build_image_item,
    build_text_item,
    mime_type_for,
    to_data_url,
)
from mnemosyne.remote.base import RemoteRepository
from mnemosyne.schemas import Item, RemoteEntry, new_item_id, validate_json

from .cache import AssetUrlCache, ItemCache

logger = logging.getLogger(__name__)

REPO_NAME = "mnemosyne-db"
ITEMS_DIR = "data"
ASSETS_DIR = "assets"
ITEM_FILE_SUFFIX = ".json"
PAGE_SIZE = 20


def item_path(item: Item) -> str:
    return f"{ITEMS_DIR}/{item.created_at}-{item.id}{ITEM_FILE_SUFFIX}"


class StorageCoordinator:
    """Maps items and assets onto the remote file layout and keeps the session caches warm.

    Layout::

        data/<createdAt>-<id>.json   one immutable file per item
        assets/<id>.<ext>            base64 body of an uploaded binary

    Write paths (init, save_item, upload_asset) let transport and auth errors
    propagate. Read paths (get_items, get_asset) degrade to omission or None.
    """

    def __init__(
        self,
        remote: RemoteRepository,
        *,
        item_cache: ItemCache | None = None,
        asset_cache: AssetUrlCache | None = None,
        repo_name: str = REPO_NAME,
        page_size: int = PAGE_SIZE,
    ) -> None:
        if not repo_name.strip():
            raise ValueError("repo_name must not be empty")
        if page_size < 1:
            raise ValueError("page_size must be >= 1")

        self.remote = remote
        self.item_cache = item_cache
        self.asset_cache = asset_cache
        self.repo_name = repo_name
        self.page_size = page_size

    async def init(self) -> None:
        logger.info("storage init started repo=%s", self.repo_name)
        await self.remote.ensure_repository(self.repo_name)
        logger.info("storage init completed repo=%s", self.repo_name)

    async def save_item(self, item: Item) -> None:
        path = item_path(item)
        await self.remote.write_file(
            path,
            item.to_json(),
            f"Save {item.type}: {item.title or item.id}",
        )
        logger.info("saved item id=%s path=%s", item.id, path)
        if self.item_cache is not None:
            _upsert_warm(self.item_cache, item)

    async def upload_asset(self, file: AssetFile) -> str:
        encoded = base64.b64encode(file.data).decode("ascii")
        path = f"{ASSETS_DIR}/{new_item_id()}.{asset_extension(file.name)}"
        await self.remote.write_file(
            path,
            encoded,
            f"Upload asset: {file.name}",
            is_binary=True,
        )
        logger.info("uploaded asset path=%s bytes=%s", path, len(file.data))
        return path

    async def get_items(self) -> list[Item]:
        try:
            entries = await self.remote.list_directory(ITEMS_DIR)
        except Exception:
            logger.exception("failed to list items dir=%s", ITEMS_DIR)
            return []

        selected = sorted(
            (entry for entry in entries if entry.name.endswith(ITEM_FILE_SUFFIX)),
            key=lambda entry: entry.name,
            reverse=True,
        )[: self.page_size]

        fetched = await asyncio.gather(*(self._fetch_item(entry) for entry in selected))
        items = [item for item in fetched if item is not None]
        logger.info(
            "fetched items listed=%s selected=%s kept=%s",
            len(entries),
            len(selected),
            len(items),
        )

        if self.item_cache is not None:
            self.item_cache.save(items)
        return items

    async def get_asset(self, path: str) -> str | None:
        try:
            return await self.remote.read_file_raw(path)
        except Exception:
            logger.exception("failed to fetch asset path=%s", path)
            return None

    async def load_feed(self, *, refresh: bool = False) -> list[Item]:
        if not refresh and self.item_cache is not None:
            cached = None if self.item_cache.is_stale() else self.item_cache.get_all()
            if not cached:
                cached = self.item_cache.load()
            if cached:
                return _newest_first(cached)[: self.page_size]
        return await self.get_items()

    async def capture_text(self, text: str, *, tags: Iterable[str] = ()) -> Item:
        item = build_text_item(text, tags=tags)
        await self.save_item(item)
        return item

    async def capture_image(self, file: AssetFile, *, tags: Iterable[str] = ()) -> Item:
        # The asset must be durable before any item can reference it.
        asset_path = await self.upload_asset(file)
        item = build_image_item(file, asset_path, tags=tags)
        await self.save_item(item)
        return item

    async def get_asset_url(self, path: str, *, content_type: str | None = None) -> str | None:
        if self.asset_cache is not None:
            cached = self.asset_cache.get(path)
            if cached is not None:
                return cached

        encoded = await self.get_asset(path)
        if encoded is None:
            return None

        url = to_data_url(encoded, mime_type_for(path, content_type))
        if self.asset_cache is not None:
            self.asset_cache.set(path, url)
        return url

    async def _fetch_item(self, entry: RemoteEntry) -> Item | None:
        try:
            content = await self.remote.read_file(entry.path)
        except Exception:
            logger.exception("failed to fetch item path=%s", entry.path)
            return None

        if content is None:
            logger.warning("item file missing path=%s", entry.path)
            return None

        try:
            return validate_json(Item, content)
        except ValidationError as exc:
            logger.warning(
                "dropped malformed item path=%s errors=%s",
                entry.path,
                exc.error_count(),
            )
            return None


def _newest_first(items: Iterable[Item]) -> list[Item]:
    return sorted(items, key=lambda item: item.created_at, reverse=True)


def _upsert_warm(cache: ItemCache, item: Item) -> None:
    # Never persist a partial snapshot over the durable feed.
    if not cache.get_all() and cache.load() is None:
        logger.debug("item cache cold, skipped upsert id=%s", item.id)
        return
    cache.set(item)
