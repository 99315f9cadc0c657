"""
Shared types for built-in tool handlers.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sopchat.history.repository import MessageStore
from sopchat.sop.models import SOP


class ToolExecutionContext(BaseModel):
    """Everything a tool may act on during one turn, passed explicitly."""

    model_config = ConfigDict(frozen=True)

    chat_id: int
    sop: SOP | None = None
    sop_run_id: int | None = None
    current_step_id: str | None = None


class ToolOutput(BaseModel):
    """Natural-language result for the model plus display hints for the UI."""

    result: str
    metadata: dict[str, Any] = Field(default_factory=dict)


ToolHandler = Callable[[dict[str, Any], ToolExecutionContext, MessageStore], Awaitable[ToolOutput]]


def missing_fields(args: dict[str, Any], required: tuple[str, ...]) -> list[str]:
    """Required string arguments that are absent or blank."""
    return [
        field
        for field in required
        if not isinstance(args.get(field), str) or not args[field].strip()
    ]
