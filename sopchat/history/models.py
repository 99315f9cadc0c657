#!/usr/bin/env python3
"""
Chat History Data Models

This module contains all Pydantic models persisted by the message store.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

# ---------- Type definitions ----------

Role = Literal["system", "user", "assistant", "tool"]


def utc_now() -> datetime:
    return datetime.now(UTC)


# ---------- Content models ----------


class StoredToolCall(BaseModel):
    """A tool call as persisted on an assistant message (arguments stay a JSON string)."""

    id: str
    name: str
    arguments: str = "{}"

    def to_api(self) -> dict[str, Any]:
        """OpenAI wire shape."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> StoredToolCall:
        function = data.get("function", {})
        return cls(
            id=data["id"],
            name=function.get("name", ""),
            arguments=function.get("arguments") or "{}",
        )


class FileAttachment(BaseModel):
    name: str
    mime_type: str = "text/plain"
    size: int = 0
    # Extracted text, when the upload layer could read it
    content: str | None = None


# ---------- Main records ----------


class Message(BaseModel):
    """A node in a chat's message DAG."""

    id: int
    chat_id: int
    role: Role
    content: str | None = None
    tool_calls: list[StoredToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None
    tool_name: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    file_attachments: list[FileAttachment] = Field(default_factory=list)
    parent_message_id: int | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def is_root(self) -> bool:
        return self.parent_message_id is None


class Chat(BaseModel):
    id: int
    model: str
    title: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class GeneratedDocument(BaseModel):
    """A document written by the assistant through the document tool."""

    id: int
    chat_id: int
    run_id: int | None = None
    step_id: str | None = None
    document_name: str
    content: str
    created_at: datetime = Field(default_factory=utc_now)
