"""Local caches and the remote storage coordinator."""

from .blob import FileBlobStore
from .cache import AssetUrlCache, ItemCache
from .coordinator import StorageCoordinator, item_path

__all__ = [
    "AssetUrlCache",
    "FileBlobStore",
    "ItemCache",
    "StorageCoordinator",
    "item_path",
]
