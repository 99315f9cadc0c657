#!/usr/bin/env python3
"""
In-Memory Message Store Implementation

Fast in-memory storage for session-only conversations.

CONFIG: chat.storage.type = "memory"
PURPOSE: Development/testing - all data lost on restart
FEATURES: Fastest performance, no persistence, monotonic ids
"""

from __future__ import annotations

import logging
from typing import Any

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


class InMemoryRepo(MessageStore):
    """Fast in-memory storage - configure with type='memory'. Data lost on restart."""

    def __init__(self) -> None:
        self._chats: dict[int, Chat] = {}
        self._messages: dict[int, Message] = {}
        self._sops: dict[str, SOP] = {}
        self._runs: dict[int, SOPRun] = {}
        self._documents: dict[int, GeneratedDocument] = {}
        self._counters: dict[str, int] = {"chat": 0, "message": 0, "run": 0, "document": 0}

    def _next_id(self, kind: str) -> int:
        self._counters[kind] += 1
        return self._counters[kind]

    # ---------- Chats ----------

    async def create_chat(self, model: str, title: str | None = None) -> Chat:
        chat = Chat(id=self._next_id("chat"), model=model, title=title)
        self._chats[chat.id] = chat
        return chat

    async def get_chat(self, chat_id: int) -> Chat | None:
        return self._chats.get(chat_id)

    async def list_chats(self) -> list[Chat]:
        return sorted(self._chats.values(), key=lambda c: (c.created_at, c.id), reverse=True)

    async def update_chat_title(self, chat_id: int, title: str) -> None:
        chat = self._chats.get(chat_id)
        if chat:
            chat.title = title

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
        parent = self._messages.get(parent_message_id) if parent_message_id is not None else None
        check_parent(parent, chat_id, parent_message_id)

        message = Message(
            id=self._next_id("message"),
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
        self._messages[message.id] = message
        logger.debug(
            "← Repository: appended %s message id=%d parent=%s",
            role,
            message.id,
            parent_message_id,
        )
        return message.model_copy(deep=True)

    async def list_by_chat(self, chat_id: int) -> list[Message]:
        return [
            m.model_copy(deep=True)
            for m in sorted(self._messages.values(), key=lambda m: (m.created_at, m.id))
            if m.chat_id == chat_id
        ]

    async def get_message(self, message_id: int) -> Message | None:
        message = self._messages.get(message_id)
        return message.model_copy(deep=True) if message else None

    # ---------- SOPs ----------

    async def get_sop(self, sop_id: str) -> SOP | None:
        sop = self._sops.get(sop_id)
        return sop.model_copy(deep=True) if sop else None

    async def save_sop(self, sop: SOP) -> None:
        now = utc_now().isoformat()
        stored = sop.model_copy(deep=True)
        stored.created_at = stored.created_at or now
        stored.updated_at = now
        self._sops[sop.id] = stored

    async def list_sops(self) -> list[SOP]:
        return [sop.model_copy(deep=True) for sop in self._sops.values()]

    async def delete_sop(self, sop_id: str) -> bool:
        return self._sops.pop(sop_id, None) is not None

    # ---------- Runs ----------

    async def create_run(self, chat_id: int, sop_id: str, first_step_id: str) -> SOPRun:
        # One active run per chat: pause whatever was in progress
        for run in self._runs.values():
            if run.chat_id == chat_id and run.status == "in_progress":
                run.status = "paused"
        run = SOPRun(
            id=self._next_id("run"),
            chat_id=chat_id,
            sop_id=sop_id,
            current_step_id=first_step_id,
        )
        self._runs[run.id] = run
        return run.model_copy(deep=True)

    async def get_active_run(self, chat_id: int) -> SOPRun | None:
        active = [r for r in self._runs.values() if r.chat_id == chat_id and r.status == "in_progress"]
        return max(active, key=lambda r: r.id).model_copy(deep=True) if active else None

    async def get_latest_run(self, chat_id: int) -> SOPRun | None:
        runs = [r for r in self._runs.values() if r.chat_id == chat_id]
        return max(runs, key=lambda r: r.id).model_copy(deep=True) if runs else None

    async def update_run_step(self, run_id: int, step_id: str) -> None:
        run = self._runs.get(run_id)
        if run:
            run.current_step_id = step_id

    async def complete_run(self, run_id: int) -> None:
        run = self._runs.get(run_id)
        if run:
            run.status = "completed"
            run.completed_at = utc_now()

    # ---------- Documents ----------

    async def save_document(
        self,
        chat_id: int,
        document_name: str,
        content: str,
        run_id: int | None = None,
        step_id: str | None = None,
    ) -> GeneratedDocument:
        document = GeneratedDocument(
            id=self._next_id("document"),
            chat_id=chat_id,
            run_id=run_id,
            step_id=step_id,
            document_name=document_name,
            content=content,
        )
        self._documents[document.id] = document
        return document.model_copy(deep=True)

    async def get_document(self, document_id: int) -> GeneratedDocument | None:
        document = self._documents.get(document_id)
        return document.model_copy(deep=True) if document else None

    async def list_documents(self, chat_id: int) -> list[GeneratedDocument]:
        return [d.model_copy(deep=True) for d in self._documents.values() if d.chat_id == chat_id]

    async def close(self) -> None:
        """Nothing to release."""
