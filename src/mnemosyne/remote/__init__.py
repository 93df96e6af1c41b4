"""Remote repository adapters."""

from .base import RemoteRepository
from .github import GITHUB_API_BASE, GitHubRepository

__all__ = ["GITHUB_API_BASE", "GitHubRepository", "RemoteRepository"]
