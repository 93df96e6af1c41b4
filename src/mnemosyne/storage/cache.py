from __future__ import annotations

import logging
import time
from collections.abc import Iterable

from pydantic import ValidationError

from mnemosyne.schemas import (
    AssetCacheSnapshot,
    CacheSnapshot,
    Item,
    ItemPatch,
    format_timestamp,
    now_utc,
)

from .blob import FileBlobStore

logger = logging.getLogger(__name__)

ITEMS_CACHE_KEY = "mnemosyne_items_cache"
ITEMS_CACHE_TTL_SECONDS = 30 * 60
ASSETS_CACHE_KEY = "mnemosyne_images_cache"
ASSETS_CACHE_TTL_SECONDS = 24 * 60 * 60


class ItemCache:
    """In-memory item map mirrored to a timestamped durable snapshot.

    An empty item list is never a valid snapshot.
    """

    def __init__(
        self,
        store: FileBlobStore,
        *,
        ttl_seconds: int = ITEMS_CACHE_TTL_SECONDS,
        key: str = ITEMS_CACHE_KEY,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")

        self.store = store
        self.ttl_seconds = ttl_seconds
        self.key = key
        self.last_sync = 0.0
        self._items: dict[str, Item] = {}

    def load(self) -> list[Item] | None:
        try:
            raw = self.store.get(self.key)
        except UnicodeDecodeError:
            logger.warning("item_cache miss reason=malformed error=not_utf8")
            return None
        except OSError:
            logger.exception("item_cache read failed key=%s", self.key)
            return None

        if raw is None:
            logger.info("item_cache miss reason=not_found")
            return None

        try:
            snapshot = CacheSnapshot.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("item_cache miss reason=malformed errors=%s", exc.error_count())
            return None

        age = time.time() - snapshot.timestamp
        if age > self.ttl_seconds:
            logger.info("item_cache miss reason=expired age_seconds=%.0f", age)
            return None

        if not snapshot.items:
            logger.info("item_cache miss reason=empty")
            return None

        for item in snapshot.items:
            self._items[item.id] = item
        self.last_sync = snapshot.timestamp

        logger.info("item_cache hit items=%s", len(snapshot.items))
        return list(snapshot.items)

    def save(self, items: Iterable[Item]) -> None:
        self._items = {item.id: item for item in items}
        self.last_sync = time.time()
        self._persist(timestamp=self.last_sync)

    def get(self, item_id: str) -> Item | None:
        return self._items.get(item_id)

    def get_all(self) -> list[Item]:
        return list(self._items.values())

    def set(self, item: Item) -> None:
        self._items[item.id] = item
        self._persist()

    def update(self, item_id: str, patch: ItemPatch) -> Item | None:
        existing = self._items.get(item_id)
        if existing is None:
            return None

        merged = Item.model_validate(
            {
                **existing.model_dump(),
                **patch.changes(),
                "updated_at": format_timestamp(now_utc()),
            }
        )
        self._items[item_id] = merged
        self._persist()
        return merged

    def delete(self, item_id: str) -> bool:
        if self._items.pop(item_id, None) is None:
            return False
        self._persist()
        return True

    def clear(self) -> None:
        self._items.clear()
        self.last_sync = 0.0
        try:
            self.store.delete(self.key)
        except OSError:
            logger.exception("item_cache clear failed key=%s", self.key)

    def is_stale(self) -> bool:
        return time.time() - self.last_sync > self.ttl_seconds

    def _persist(self, *, timestamp: float | None = None) -> None:
        snapshot = CacheSnapshot(
            items=self.get_all(),
            timestamp=time.time() if timestamp is None else timestamp,
        )
        try:
            self.store.set(self.key, snapshot.model_dump_json(by_alias=True, exclude_none=True))
        except OSError as exc:
            logger.warning("item_cache persist failed key=%s error=%s", self.key, exc)


class AssetUrlCache:
    """Asset path -> displayable representation, with one coarse TTL for the whole map."""

    def __init__(
        self,
        store: FileBlobStore,
        *,
        ttl_seconds: int = ASSETS_CACHE_TTL_SECONDS,
        key: str = ASSETS_CACHE_KEY,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")

        self.store = store
        self.ttl_seconds = ttl_seconds
        self.key = key
        self._urls: dict[str, str] = {}
        self._loaded = False

    def get(self, asset_id: str | None) -> str | None:
        if not asset_id:
            return None
        self._load()
        return self._urls.get(asset_id)

    def set(self, asset_id: str | None, url: str) -> None:
        if not asset_id:
            return
        self._load()
        self._urls[asset_id] = url
        self._persist()

    def clear(self) -> None:
        self._urls.clear()
        self._loaded = True
        self._discard()

    def _load(self) -> None:
        if self._loaded:
            return
        self._loaded = True

        try:
            raw = self.store.get(self.key)
        except UnicodeDecodeError:
            logger.warning("asset_cache ignored malformed snapshot key=%s", self.key)
            return
        except OSError:
            logger.exception("asset_cache read failed key=%s", self.key)
            return
        if raw is None:
            return

        try:
            snapshot = AssetCacheSnapshot.model_validate_json(raw)
        except ValidationError:
            logger.warning("asset_cache ignored malformed snapshot key=%s", self.key)
            return

        if time.time() - snapshot.timestamp > self.ttl_seconds:
            logger.info("asset_cache expired entries=%s", len(snapshot.urls))
            self._discard()
            return

        self._urls.update(snapshot.urls)
        logger.debug("asset_cache loaded entries=%s", len(snapshot.urls))

    def _persist(self) -> None:
        snapshot = AssetCacheSnapshot(urls=dict(self._urls), timestamp=time.time())
        try:
            self.store.set(self.key, snapshot.model_dump_json())
        except OSError as exc:
            logger.warning("asset_cache persist failed key=%s error=%s", self.key, exc)

    def _discard(self) -> None:
        try:
            self.store.delete(self.key)
        except OSError:
            logger.exception("asset_cache delete failed key=%s", self.key)
