#!/usr/bin/env python3
"""
Repository Factory

Factory function to create appropriate repository based on configuration.
"""

from __future__ import annotations

import logging
from typing import Any

from sopchat.sop import get_default_sops

from .memory_repo import InMemoryRepo
from .repository import MessageStore
from .sqlite_repo import SQLiteRepo

logger = logging.getLogger(__name__)


def create_repository(config: dict[str, Any]) -> MessageStore:
    """Create the message store named by ``chat.storage.type``.

    Raises:
        ValueError: If the storage type is unknown.
    """
    storage_type = config.get("type", "sqlite")
    if storage_type == "memory":
        logger.info("Using in-memory storage (data lost on restart)")
        return InMemoryRepo()
    if storage_type == "sqlite":
        db_path = config.get("db_path", "chat.db")
        logger.info("Using SQLite storage at %s", db_path)
        return SQLiteRepo(db_path)
    raise ValueError(f"Unknown storage type: {storage_type}")


async def seed_default_sops(store: MessageStore) -> int:
    """Insert the built-in SOPs that are not stored yet. Returns how many were added."""
    added = 0
    for sop in get_default_sops():
        if await store.get_sop(sop.id) is None:
            await store.save_sop(sop)
            added += 1
    if added:
        logger.info("Seeded %d built-in SOP(s)", added)
    return added
