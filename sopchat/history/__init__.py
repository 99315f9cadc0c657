#!/usr/bin/env python3
"""
Chat History Module

Message DAG storage with in-memory and SQLite backends.
"""

from __future__ import annotations

from .factory import create_repository, seed_default_sops
from .memory_repo import InMemoryRepo
from .models import Chat, FileAttachment, GeneratedDocument, Message, StoredToolCall
from .repository import MessageStore, ParentMessageError
from .sqlite_repo import SQLiteRepo

__all__ = [
    "Chat",
    "FileAttachment",
    "GeneratedDocument",
    "InMemoryRepo",
    "Message",
    "MessageStore",
    "ParentMessageError",
    "SQLiteRepo",
    "StoredToolCall",
    "create_repository",
    "seed_default_sops",
]
