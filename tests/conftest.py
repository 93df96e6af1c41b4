from __future__ import annotations

import httpx
import pytest

from mnemosyne.schemas import RemoteEntry
from mnemosyne.storage import AssetUrlCache, FileBlobStore, ItemCache, StorageCoordinator


class InMemoryRemote:
    """RemoteRepository fake keeping files in a dict."""

    def __init__(self) -> None:
        self.files: dict[str, str] = {}
        self.repositories: set[str] = set()
        self.created: list[str] = []
        self.writes: list[tuple[str, str, bool]] = []
        self.reads: list[str] = []
        self.fail_writes = False
        self.closed = False

    async def ensure_repository(self, name: str) -> None:
        if name not in self.repositories:
            self.repositories.add(name)
            self.created.append(name)

    async def write_file(
        self,
        path: str,
        content: str,
        message: str,
        *,
        is_binary: bool = False,
    ) -> None:
        if self.fail_writes:
            raise httpx.ConnectError("write rejected")
        self.files[path] = content
        self.writes.append((path, message, is_binary))

    async def read_file(self, path: str) -> str | None:
        self.reads.append(path)
        return self.files.get(path)

    async def read_file_raw(self, path: str) -> str | None:
        self.reads.append(path)
        return self.files.get(path)

    async def list_directory(self, path: str) -> list[RemoteEntry]:
        prefix = f"{path.rstrip('/')}/"
        return [
            RemoteEntry(name=file_path[len(prefix):], path=file_path)
            for file_path in self.files
            if file_path.startswith(prefix) and "/" not in file_path[len(prefix):]
        ]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def remote() -> InMemoryRemote:
    return InMemoryRemote()


@pytest.fixture
def blob_store(tmp_path) -> FileBlobStore:
    return FileBlobStore(tmp_path / "cache")


@pytest.fixture
def item_cache(blob_store: FileBlobStore) -> ItemCache:
    return ItemCache(blob_store)


@pytest.fixture
def asset_cache(blob_store: FileBlobStore) -> AssetUrlCache:
    return AssetUrlCache(blob_store)


@pytest.fixture
def coordinator(
    remote: InMemoryRemote,
    item_cache: ItemCache,
    asset_cache: AssetUrlCache,
) -> StorageCoordinator:
    return StorageCoordinator(remote, item_cache=item_cache, asset_cache=asset_cache)
