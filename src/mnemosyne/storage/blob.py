from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class FileBlobStore:
    """Durable key/value blobs, one file per key, under a single directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def get(self, key: str) -> str | None:
        data_path = self._data_path(key)
        if not data_path.exists():
            logger.debug("blob_store miss key=%s", self._sha1_key(key))
            return None
        return data_path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        data_path = self._data_path(key)
        tmp_path = data_path.with_suffix(".tmp")
        try:
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, data_path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
        logger.debug("blob_store set key=%s bytes=%s", self._sha1_key(key), len(value))

    def delete(self, key: str) -> bool:
        data_path = self._data_path(key)
        if not data_path.exists():
            return False
        data_path.unlink()
        logger.debug("blob_store delete key=%s", self._sha1_key(key))
        return True

    @staticmethod
    def _sha1_key(key: str) -> str:
        return hashlib.sha1(key.encode("utf-8")).hexdigest()

    def _data_path(self, key: str) -> Path:
        return self.directory / f"{self._sha1_key(key)}.json"
