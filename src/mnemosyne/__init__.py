"""Mnemosyne: capture notes, links and images into a git-backed repository."""

from .config import AppConfig, load_config
from .schemas import Item, ItemPatch, ItemType

__all__ = [
    "AppConfig",
    "Item",
    "ItemPatch",
    "ItemType",
    "load_config",
]
