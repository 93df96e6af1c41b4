from __future__ import annotations

import base64
import logging
import os
from typing import Any
from urllib.parse import quote

import httpx

from mnemosyne.schemas import RemoteEntry

GITHUB_API_BASE = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
REPOSITORY_DESCRIPTION = "Mnemosyne Memory Storage"
_RAW_MEDIA_TYPE = "application/vnd.github.raw+json"

logger = logging.getLogger(__name__)


class GitHubRepository:
    """Remote repository adapter over the GitHub contents API."""

    def __init__(
        self,
        *,
        token: str,
        repo_name: str | None = None,
        api_base: str = GITHUB_API_BASE,
        timeout_seconds: float = 20.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not token.strip():
            raise ValueError("GitHub token is empty.")
        if not api_base.strip():
            raise ValueError("GitHub API base URL is empty.")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0.")

        self.repo_name = repo_name
        self.api_base = api_base.rstrip("/")
        self.owner: str | None = None
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": "mnemosyne/0.1.0",
        }

    @classmethod
    def from_env(
        cls,
        *,
        env_var: str = "GITHUB_TOKEN",
        repo_name: str | None = None,
        api_base: str = GITHUB_API_BASE,
        timeout_seconds: float = 20.0,
        client: httpx.AsyncClient | None = None,
    ) -> GitHubRepository:
        token = os.getenv(env_var, "").strip()
        if not token:
            raise ValueError(f"Environment variable {env_var} is not set.")
        return cls(
            token=token,
            repo_name=repo_name,
            api_base=api_base,
            timeout_seconds=timeout_seconds,
            client=client,
        )

    async def __aenter__(self) -> GitHubRepository:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def get_user(self) -> dict[str, Any]:
        response = await self.client.get(self._url("/user"), headers=self._headers)
        response.raise_for_status()
        payload = response.json()
        login = payload.get("login") if isinstance(payload, dict) else None
        if not isinstance(login, str) or not login:
            raise ValueError("GitHub user response has no login.")
        self.owner = login
        return payload

    async def get_repository(self, name: str) -> dict[str, Any] | None:
        owner = await self._require_owner()
        logger.info("checking repository owner=%s repo=%s", owner, name)
        response = await self.client.get(
            self._url(f"/repos/{owner}/{name}"),
            headers=self._headers,
        )
        if response.status_code == 404:
            logger.info("repository not found owner=%s repo=%s", owner, name)
            return None
        response.raise_for_status()
        return response.json()

    async def create_repository(self, name: str) -> dict[str, Any]:
        logger.info("creating repository repo=%s", name)
        response = await self.client.post(
            self._url("/user/repos"),
            headers=self._headers,
            json={
                "name": name,
                "private": True,
                "auto_init": True,
                "description": REPOSITORY_DESCRIPTION,
            },
        )
        response.raise_for_status()
        logger.info("repository created repo=%s", name)
        return response.json()

    async def ensure_repository(self, name: str) -> None:
        if await self.get_repository(name) is None:
            await self.create_repository(name)
        self.repo_name = name

    async def write_file(
        self,
        path: str,
        content: str,
        message: str,
        *,
        is_binary: bool = False,
    ) -> None:
        if is_binary:
            encoded = content
        else:
            encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")

        body: dict[str, Any] = {"message": message, "content": encoded}
        existing = await self._get_contents(path)
        if isinstance(existing, dict) and isinstance(existing.get("sha"), str):
            body["sha"] = existing["sha"]

        response = await self.client.put(
            await self._contents_url(path),
            headers=self._headers,
            json=body,
        )
        response.raise_for_status()
        logger.info(
            "remote write path=%s bytes=%s update=%s",
            path,
            len(encoded),
            "sha" in body,
        )

    async def read_file(self, path: str) -> str | None:
        encoded = await self.read_file_raw(path)
        if encoded is None:
            return None
        try:
            return base64.b64decode(encoded).decode("utf-8")
        except ValueError:
            logger.warning("remote file is not utf-8 text path=%s", path)
            return None

    async def read_file_raw(self, path: str) -> str | None:
        try:
            payload = await self._get_contents(path)
            if not isinstance(payload, dict) or payload.get("type") != "file":
                return None
            if payload.get("encoding") == "base64":
                return "".join(str(payload.get("content", "")).split())
            # Files above the inline size limit come back with encoding "none".
            return await self._read_raw_bytes(path)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("remote read failed path=%s error=%s", path, exc)
            return None

    async def list_directory(self, path: str) -> list[RemoteEntry]:
        try:
            payload = await self._get_contents(path)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("remote list failed path=%s error=%s", path, exc)
            return []

        if not isinstance(payload, list):
            return []

        entries: list[RemoteEntry] = []
        for raw in payload:
            if not isinstance(raw, dict):
                continue
            name = raw.get("name")
            entry_path = raw.get("path")
            if isinstance(name, str) and isinstance(entry_path, str):
                entries.append(RemoteEntry(name=name, path=entry_path))
        return entries

    async def _get_contents(self, path: str) -> Any:
        response = await self.client.get(await self._contents_url(path), headers=self._headers)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    async def _read_raw_bytes(self, path: str) -> str:
        response = await self.client.get(
            await self._contents_url(path),
            headers={**self._headers, "Accept": _RAW_MEDIA_TYPE},
        )
        response.raise_for_status()
        return base64.b64encode(response.content).decode("ascii")

    async def _require_owner(self) -> str:
        if self.owner is not None:
            return self.owner
        payload = await self.get_user()
        return str(payload["login"])

    async def _contents_url(self, path: str) -> str:
        if not self.repo_name:
            raise RuntimeError("Repository not set.")
        owner = await self._require_owner()
        return self._url(f"/repos/{owner}/{self.repo_name}/contents/{quote(path.strip('/'))}")

    def _url(self, path: str) -> str:
        return f"{self.api_base}{path}"
