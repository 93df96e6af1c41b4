from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx

from mnemosyne.config import AppConfig
from mnemosyne.remote import GitHubRepository
from mnemosyne.storage import AssetUrlCache, FileBlobStore, ItemCache, StorageCoordinator

logger = logging.getLogger(__name__)


def resolve_token(env_var: str) -> str:
    token = os.getenv(env_var, "").strip()
    if not token:
        raise ValueError(f"Environment variable {env_var} is not set.")
    return token


def build_caches(config: AppConfig) -> tuple[ItemCache, AssetUrlCache]:
    store = FileBlobStore(config.cache.directory)
    return (
        ItemCache(store, ttl_seconds=config.cache.items_ttl_seconds),
        AssetUrlCache(store, ttl_seconds=config.cache.assets_ttl_seconds),
    )


@dataclass(slots=True)
class Session:
    """One logged-in user's remote adapter, caches and coordinator."""

    remote: GitHubRepository
    item_cache: ItemCache
    asset_cache: AssetUrlCache
    storage: StorageCoordinator
    user: dict[str, Any]

    @classmethod
    async def open(
        cls,
        config: AppConfig,
        *,
        token: str,
        client: httpx.AsyncClient | None = None,
    ) -> Session:
        remote = GitHubRepository(
            token=token,
            repo_name=config.github.repo_name,
            api_base=config.github.api_base,
            timeout_seconds=config.github.timeout_seconds,
            client=client,
        )
        try:
            user = await remote.get_user()
            item_cache, asset_cache = build_caches(config)
            storage = StorageCoordinator(
                remote,
                item_cache=item_cache,
                asset_cache=asset_cache,
                repo_name=config.github.repo_name,
                page_size=config.feed.page_size,
            )
            await storage.init()
        except Exception:
            await remote.aclose()
            raise

        logger.info("session opened login=%s repo=%s", remote.owner, config.github.repo_name)
        return cls(
            remote=remote,
            item_cache=item_cache,
            asset_cache=asset_cache,
            storage=storage,
            user=user,
        )

    async def close(self, *, logout: bool = False) -> None:
        if logout:
            self.item_cache.clear()
            self.asset_cache.clear()
            logger.info("session logged out login=%s", self.user.get("login"))
        await self.remote.aclose()
