#!/usr/bin/env python3
"""
SQLite Message Store Implementation

Durable SQLite storage for chats, the message DAG, SOP definitions, SOP runs
and generated documents.

CONFIG: chat.storage.type = "sqlite", chat.storage.db_path = "chat.db"
PURPOSE: Production - survives restarts
FEATURES: WAL mode, async support, JSON columns, one write per append
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any

import aiosqlite

from sopchat.sop.models import SOP, SOPRun

from .models import (
    Chat,
    FileAttachment,
    GeneratedDocument,
    Message,
    Role,
    StoredToolCall,
    utc_now,
)
from .repository import MessageStore, check_parent

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS chats (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        model TEXT NOT NULL,
        title TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        chat_id INTEGER NOT NULL REFERENCES chats(id),
        role TEXT NOT NULL,
        content TEXT,
        tool_calls TEXT,
        tool_call_id TEXT,
        tool_name TEXT,
        metadata TEXT,
        file_attachments TEXT,
        parent_message_id INTEGER REFERENCES messages(id),
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages(chat_id, created_at, id)",
    "CREATE INDEX IF NOT EXISTS idx_messages_parent ON messages(parent_message_id)",
    """
    CREATE TABLE IF NOT EXISTS sops (
        id TEXT PRIMARY KEY,
        data TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sop_runs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        chat_id INTEGER NOT NULL,
        sop_id TEXT NOT NULL,
        current_step_id TEXT NOT NULL,
        status TEXT NOT NULL,
        started_at TEXT NOT NULL,
        completed_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_runs_chat ON sop_runs(chat_id, status)",
    """
    CREATE TABLE IF NOT EXISTS generated_documents (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        chat_id INTEGER NOT NULL,
        run_id INTEGER,
        step_id TEXT,
        document_name TEXT NOT NULL,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_documents_chat ON generated_documents(chat_id)",
)


class SQLiteRepo(MessageStore):
    """SQLite storage - configure with type='sqlite'."""

    def __init__(self, db_path: str = "chat.db"):
        self.db_path = db_path
        self._lock = asyncio.Lock()
        self._initialized = False

    async def _ensure_initialized(self):
        """Initialize database schema if not already done."""
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute("PRAGMA synchronous=NORMAL")
                await db.execute("PRAGMA cache_size=10000")
                await db.execute("PRAGMA temp_store=memory")
                for statement in _SCHEMA:
                    await db.execute(statement)
                await db.commit()

            logger.debug("← Repository: schema ready at %s", self.db_path)
            self._initialized = True

    async def _fetchone(self, query: str, params: tuple[Any, ...]) -> dict[str, Any] | None:
        await self._ensure_initialized()
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, params) as cursor:
                row = await cursor.fetchone()
                return dict(row) if row else None

    async def _fetchall(self, query: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        await self._ensure_initialized()
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
                return [dict(row) for row in rows]

    async def _insert(self, table: str, row_data: dict[str, Any]) -> int:
        await self._ensure_initialized()
        columns = ", ".join(row_data.keys())
        placeholders = ", ".join("?" * len(row_data))
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                list(row_data.values()),
            )
            await db.commit()
            row_id = cursor.lastrowid
        if row_id is None:
            raise RuntimeError(f"Insert into {table} returned no row id")
        return row_id

    async def _execute(self, query: str, params: tuple[Any, ...]) -> int:
        await self._ensure_initialized()
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(query, params)
            await db.commit()
            return cursor.rowcount

    # ---------- Row conversion ----------

    def _serialize_message(self, message: Message) -> dict[str, Any]:
        return {
            "chat_id": message.chat_id,
            "role": message.role,
            "content": message.content,
            "tool_calls": (
                json.dumps([tc.model_dump() for tc in message.tool_calls])
                if message.tool_calls
                else None
            ),
            "tool_call_id": message.tool_call_id,
            "tool_name": message.tool_name,
            "metadata": json.dumps(message.metadata) if message.metadata else None,
            "file_attachments": (
                json.dumps([fa.model_dump() for fa in message.file_attachments])
                if message.file_attachments
                else None
            ),
            "parent_message_id": message.parent_message_id,
            "created_at": message.created_at.isoformat(),
        }

    def _deserialize_message(self, row: dict[str, Any]) -> Message:
        tool_calls = []
        if row["tool_calls"]:
            tool_calls = [StoredToolCall(**tc) for tc in json.loads(row["tool_calls"])]
        attachments = []
        if row["file_attachments"]:
            attachments = [FileAttachment(**fa) for fa in json.loads(row["file_attachments"])]

        return Message(
            id=row["id"],
            chat_id=row["chat_id"],
            role=row["role"],
            content=row["content"],
            tool_calls=tool_calls,
            tool_call_id=row["tool_call_id"],
            tool_name=row["tool_name"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            file_attachments=attachments,
            parent_message_id=row["parent_message_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _deserialize_chat(self, row: dict[str, Any]) -> Chat:
        return Chat(
            id=row["id"],
            model=row["model"],
            title=row["title"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _deserialize_run(self, row: dict[str, Any]) -> SOPRun:
        return SOPRun(
            id=row["id"],
            chat_id=row["chat_id"],
            sop_id=row["sop_id"],
            current_step_id=row["current_step_id"],
            status=row["status"],
            started_at=datetime.fromisoformat(row["started_at"]),
            completed_at=(
                datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None
            ),
        )

    def _deserialize_document(self, row: dict[str, Any]) -> GeneratedDocument:
        return GeneratedDocument(
            id=row["id"],
            chat_id=row["chat_id"],
            run_id=row["run_id"],
            step_id=row["step_id"],
            document_name=row["document_name"],
            content=row["content"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # ---------- Chats ----------

    async def create_chat(self, model: str, title: str | None = None) -> Chat:
        created_at = utc_now()
        chat_id = await self._insert(
            "chats",
            {"model": model, "title": title, "created_at": created_at.isoformat()},
        )
        return Chat(id=chat_id, model=model, title=title, created_at=created_at)

    async def get_chat(self, chat_id: int) -> Chat | None:
        row = await self._fetchone("SELECT * FROM chats WHERE id = ?", (chat_id,))
        return self._deserialize_chat(row) if row else None

    async def list_chats(self) -> list[Chat]:
        rows = await self._fetchall("SELECT * FROM chats ORDER BY created_at DESC, id DESC", ())
        return [self._deserialize_chat(row) for row in rows]

    async def update_chat_title(self, chat_id: int, title: str) -> None:
        await self._execute("UPDATE chats SET title = ? WHERE id = ?", (title, chat_id))

    # ---------- Messages ----------

    async def append(
        self,
        chat_id: int,
        role: Role,
        content: str | None = None,
        *,
        tool_calls: list[StoredToolCall] | None = None,
        tool_call_id: str | None = None,
        tool_name: str | None = None,
        metadata: dict[str, Any] | None = None,
        file_attachments: list[FileAttachment] | None = None,
        parent_message_id: int | None = None,
    ) -> Message:
        parent = (
            await self.get_message(parent_message_id) if parent_message_id is not None else None
        )
        check_parent(parent, chat_id, parent_message_id)

        # id is assigned by SQLite; 0 is a placeholder until the insert returns
        message = Message(
            id=0,
            chat_id=chat_id,
            role=role,
            content=content,
            tool_calls=list(tool_calls or []),
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            metadata=dict(metadata or {}),
            file_attachments=list(file_attachments or []),
            parent_message_id=parent_message_id,
        )
        message.id = await self._insert("messages", self._serialize_message(message))
        logger.debug(
            "← Repository: appended %s message id=%d parent=%s",
            role,
            message.id,
            parent_message_id,
        )
        return message

    async def list_by_chat(self, chat_id: int) -> list[Message]:
        rows = await self._fetchall(
            "SELECT * FROM messages WHERE chat_id = ? ORDER BY created_at, id",
            (chat_id,),
        )
        return [self._deserialize_message(row) for row in rows]

    async def get_message(self, message_id: int) -> Message | None:
        row = await self._fetchone("SELECT * FROM messages WHERE id = ?", (message_id,))
        return self._deserialize_message(row) if row else None

    # ---------- SOPs ----------

    async def get_sop(self, sop_id: str) -> SOP | None:
        row = await self._fetchone("SELECT * FROM sops WHERE id = ?", (sop_id,))
        if not row:
            return None
        sop = SOP.model_validate(json.loads(row["data"]))
        sop.created_at = row["created_at"]
        sop.updated_at = row["updated_at"]
        return sop

    async def save_sop(self, sop: SOP) -> None:
        now = utc_now().isoformat()
        await self._execute(
            """
            INSERT INTO sops (id, data, created_at, updated_at) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
            """,
            (sop.id, json.dumps(sop.to_wire()), sop.created_at or now, now),
        )

    async def list_sops(self) -> list[SOP]:
        rows = await self._fetchall("SELECT * FROM sops ORDER BY created_at, id", ())
        sops = []
        for row in rows:
            sop = SOP.model_validate(json.loads(row["data"]))
            sop.created_at = row["created_at"]
            sop.updated_at = row["updated_at"]
            sops.append(sop)
        return sops

    async def delete_sop(self, sop_id: str) -> bool:
        return await self._execute("DELETE FROM sops WHERE id = ?", (sop_id,)) > 0

    # ---------- Runs ----------

    async def create_run(self, chat_id: int, sop_id: str, first_step_id: str) -> SOPRun:
        # One active run per chat: pause whatever was in progress
        await self._execute(
            "UPDATE sop_runs SET status = 'paused' WHERE chat_id = ? AND status = 'in_progress'",
            (chat_id,),
        )
        started_at = utc_now()
        run_id = await self._insert(
            "sop_runs",
            {
                "chat_id": chat_id,
                "sop_id": sop_id,
                "current_step_id": first_step_id,
                "status": "in_progress",
                "started_at": started_at.isoformat(),
            },
        )
        return SOPRun(
            id=run_id,
            chat_id=chat_id,
            sop_id=sop_id,
            current_step_id=first_step_id,
            started_at=started_at,
        )

    async def get_active_run(self, chat_id: int) -> SOPRun | None:
        row = await self._fetchone(
            "SELECT * FROM sop_runs WHERE chat_id = ? AND status = 'in_progress' "
            "ORDER BY id DESC LIMIT 1",
            (chat_id,),
        )
        return self._deserialize_run(row) if row else None

    async def get_latest_run(self, chat_id: int) -> SOPRun | None:
        row = await self._fetchone(
            "SELECT * FROM sop_runs WHERE chat_id = ? ORDER BY id DESC LIMIT 1",
            (chat_id,),
        )
        return self._deserialize_run(row) if row else None

    async def update_run_step(self, run_id: int, step_id: str) -> None:
        await self._execute(
            "UPDATE sop_runs SET current_step_id = ? WHERE id = ?", (step_id, run_id)
        )

    async def complete_run(self, run_id: int) -> None:
        await self._execute(
            "UPDATE sop_runs SET status = 'completed', completed_at = ? WHERE id = ?",
            (utc_now().isoformat(), run_id),
        )

    # ---------- Documents ----------

    async def save_document(
        self,
        chat_id: int,
        document_name: str,
        content: str,
        run_id: int | None = None,
        step_id: str | None = None,
    ) -> GeneratedDocument:
        created_at = utc_now()
        document_id = await self._insert(
            "generated_documents",
            {
                "chat_id": chat_id,
                "run_id": run_id,
                "step_id": step_id,
                "document_name": document_name,
                "content": content,
                "created_at": created_at.isoformat(),
            },
        )
        return GeneratedDocument(
            id=document_id,
            chat_id=chat_id,
            run_id=run_id,
            step_id=step_id,
            document_name=document_name,
            content=content,
            created_at=created_at,
        )

    async def get_document(self, document_id: int) -> GeneratedDocument | None:
        row = await self._fetchone(
            "SELECT * FROM generated_documents WHERE id = ?", (document_id,)
        )
        return self._deserialize_document(row) if row else None

    async def list_documents(self, chat_id: int) -> list[GeneratedDocument]:
        rows = await self._fetchall(
            "SELECT * FROM generated_documents WHERE chat_id = ? ORDER BY id", (chat_id,)
        )
        return [self._deserialize_document(row) for row in rows]

    async def close(self) -> None:
        """Connections are opened per operation; nothing stays open."""
