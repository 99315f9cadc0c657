#!/usr/bin/env python3
"""
Message Store Interface

This module defines the storage protocol shared by every backend, plus the
parent-pointer check each backend applies on append.
"""

from __future__ import annotations

from typing import Any, Protocol

from sopchat.sop.models import SOP, SOPRun

from .models import Chat, FileAttachment, GeneratedDocument, Message, Role, StoredToolCall


class ParentMessageError(ValueError):
    """Raised when a message names a parent that does not exist in its chat."""


def check_parent(parent: Message | None, chat_id: int, parent_message_id: int | None) -> None:
    """Every non-root message needs an existing parent in the same chat."""
    if parent_message_id is None:
        return
    if parent is None:
        raise ParentMessageError(f"Parent message {parent_message_id} does not exist")
    if parent.chat_id != chat_id:
        raise ParentMessageError(
            f"Parent message {parent_message_id} belongs to chat {parent.chat_id}, not {chat_id}"
        )


# ---------- Repository interface ----------


class MessageStore(Protocol):
    """Protocol defining the interface for chat storage backends."""

    # Chats
    async def create_chat(self, model: str, title: str | None = None) -> Chat: ...

    async def get_chat(self, chat_id: int) -> Chat | None: ...

    async def list_chats(self) -> list[Chat]: ...

    async def update_chat_title(self, chat_id: int, title: str) -> None: ...

    # Messages
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
        """
        Persist a new message. Each append is its own atomic write.

        Raises:
            ParentMessageError: If ``parent_message_id`` is not a message of ``chat_id``.
        """
        ...

    async def list_by_chat(self, chat_id: int) -> list[Message]: ...

    async def get_message(self, message_id: int) -> Message | None: ...

    # SOPs
    async def get_sop(self, sop_id: str) -> SOP | None: ...

    async def save_sop(self, sop: SOP) -> None: ...

    async def list_sops(self) -> list[SOP]: ...

    async def delete_sop(self, sop_id: str) -> bool: ...

    # Runs
    async def create_run(self, chat_id: int, sop_id: str, first_step_id: str) -> SOPRun: ...

    async def get_active_run(self, chat_id: int) -> SOPRun | None: ...

    async def get_latest_run(self, chat_id: int) -> SOPRun | None: ...

    async def update_run_step(self, run_id: int, step_id: str) -> None: ...

    async def complete_run(self, run_id: int) -> None: ...

    # Generated documents
    async def save_document(
        self,
        chat_id: int,
        document_name: str,
        content: str,
        run_id: int | None = None,
        step_id: str | None = None,
    ) -> GeneratedDocument: ...

    async def get_document(self, document_id: int) -> GeneratedDocument | None: ...

    async def list_documents(self, chat_id: int) -> list[GeneratedDocument]: ...

    async def close(self) -> None: ...
