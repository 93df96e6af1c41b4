from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class GitHubConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    api_base: str = "https://api.github.com"
    token_env: str = "GITHUB_TOKEN"
    repo_name: str = "mnemosyne-db"
    timeout_seconds: float = Field(default=20.0, gt=0.0)

    @field_validator("api_base", "token_env", "repo_name")
    @classmethod
    def validate_non_empty(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("github fields must not be empty")
        return normalized


class CacheConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    directory: str = "data/cache"
    items_ttl_minutes: int = Field(default=30, ge=0)
    assets_ttl_hours: int = Field(default=24, ge=0)

    @property
    def items_ttl_seconds(self) -> int:
        return self.items_ttl_minutes * 60

    @property
    def assets_ttl_seconds(self) -> int:
        return self.assets_ttl_hours * 60 * 60


class FeedConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    page_size: int = Field(default=20, ge=1)


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)

    @classmethod
    def default(cls) -> AppConfig:
        return cls()


def load_config(path: str | Path) -> AppConfig:
    raw = Path(path).read_text(encoding="utf-8")
    payload = _parse_yaml_or_json(raw)
    try:
        return AppConfig.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def _parse_yaml_or_json(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = _parse_yaml(raw)
    if not isinstance(parsed, dict):
        raise ValueError("Configuration root must be an object.")
    return parsed


def _parse_yaml(raw: str) -> dict[str, Any]:
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ValueError(f"Configuration is neither JSON nor YAML: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValueError("Configuration root must be an object.")
    return parsed
