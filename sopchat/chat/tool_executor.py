"""
Tool Execution Handler

Runs one reconstructed tool call against an explicit execution context and
turns the outcome into text the model can read back. Nothing raised by a tool
escapes: unknown tools, malformed JSON arguments and handler failures all
become textual results so the conversation can continue.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from mcp import McpError
from pydantic import BaseModel, Field

from sopchat.chat.logging_utils import (
    log_tool_args_error,
    log_tool_arguments,
    log_tool_execution_error,
    log_tool_execution_start,
    log_tool_execution_success,
    log_tool_results,
)
from sopchat.chat.models import AssistantMessage, ToolCall, ToolMessage
from sopchat.tools import ToolExecutionContext

if TYPE_CHECKING:
    from sopchat.history.repository import MessageStore
    from sopchat.tool_schema_manager import ToolSchemaManager

logger = logging.getLogger(__name__)

__all__ = ["ToolExecutionContext", "ToolExecutionResult", "ToolExecutor", "to_conversation_messages"]


class ToolExecutionResult(BaseModel):
    """Outcome of one tool call."""

    tool_call: ToolCall
    result: str
    args: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


def to_conversation_messages(
    call: ToolCall, result: ToolExecutionResult
) -> list[AssistantMessage | ToolMessage]:
    """The assistant's call message followed by the tool's result message."""
    return [
        AssistantMessage(content=None, tool_calls=[call]),
        ToolMessage(content=json.dumps(result.result), tool_call_id=call.id),
    ]


class ToolExecutor:
    """Dispatches tool calls through the schema manager's handler table."""

    def __init__(
        self,
        tool_mgr: ToolSchemaManager,
        store: MessageStore,
        chat_conf: dict[str, Any] | None = None,
    ):
        self.tool_mgr = tool_mgr
        self.store = store
        self.chat_conf = chat_conf or {}

    async def execute(
        self,
        call: ToolCall,
        context: ToolExecutionContext,
        call_index: int = 0,
        total_calls: int = 1,
    ) -> ToolExecutionResult:
        tool_name = call.function.name

        try:
            args = json.loads(call.function.arguments or "{}")
        except json.JSONDecodeError as e:
            log_tool_args_error(tool_name, e)
            message = f"Error: arguments for {tool_name} were not valid JSON ({e.msg}). Please retry."
            return ToolExecutionResult(tool_call=call, result=message, error=message)
        if not isinstance(args, dict):
            message = f"Error: arguments for {tool_name} must be a JSON object."
            log_tool_execution_error(tool_name, message)
            return ToolExecutionResult(tool_call=call, result=message, error=message)

        try:
            handler = self.tool_mgr.get_handler(tool_name)
        except McpError as e:
            message = f"Unknown tool: {tool_name}"
            log_tool_execution_error(tool_name, e.error.message)
            return ToolExecutionResult(tool_call=call, result=message, args=args, error=message)

        log_tool_arguments(
            tool_name,
            args,
            f"call {call_index + 1}/{total_calls}",
            self.chat_conf.get("logging", {}).get("tool_arguments_truncate", 500),
        )
        log_tool_execution_start(tool_name, call_index, total_calls)

        try:
            output = await handler(args, context, self.store)
        except Exception as e:
            message = f"Tool execution failed: {e!s}"
            log_tool_execution_error(tool_name, message)
            return ToolExecutionResult(tool_call=call, result=message, args=args, error=message)

        log_tool_execution_success(tool_name, len(output.result))
        log_tool_results(tool_name, output.result, f"call {call_index + 1}/{total_calls}")
        return ToolExecutionResult(
            tool_call=call,
            result=output.result,
            args=args,
            metadata=output.metadata,
        )
