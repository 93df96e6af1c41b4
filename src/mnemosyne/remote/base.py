from __future__ import annotations

from typing import Protocol

from mnemosyne.schemas import RemoteEntry


class RemoteRepository(Protocol):
    """File-addressed remote store. Not-found is never an error on this interface."""

    async def ensure_repository(self, name: str) -> None:
        """Create the backing repository unless it already exists."""

    async def write_file(
        self,
        path: str,
        content: str,
        message: str,
        *,
        is_binary: bool = False,
    ) -> None:
        """Create or update a file. Binary content arrives already base64-encoded."""

    async def read_file(self, path: str) -> str | None:
        """Return decoded text, or None when missing or unreadable."""

    async def read_file_raw(self, path: str) -> str | None:
        """Return base64 content, or None when missing or unreadable."""

    async def list_directory(self, path: str) -> list[RemoteEntry]:
        """Return directory entries, or [] when the directory does not exist."""
