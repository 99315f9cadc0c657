"""
Chat Service Data Models

Data structures for chat functionality: LLM API message types, tool
definitions, streaming deltas from the completion source, and the events a
turn emits to its caller. All strongly typed with Pydantic.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator

# ==============================================================================
# CORE CHAT MESSAGES (LLM API Types)
# ==============================================================================


class SystemMessage(BaseModel):
    """System message for setting context."""

    role: Literal["system"] = "system"
    content: str


class UserMessage(BaseModel):
    """User message."""

    role: Literal["user"] = "user"
    content: str


class FunctionCall(BaseModel):
    """Function call within a tool call."""

    name: str
    arguments: str = Field(default="{}")  # JSON string


class ToolCall(BaseModel):
    """Tool call from LLM."""

    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


class AssistantMessage(BaseModel):
    """Assistant message with optional tool calls."""

    role: Literal["assistant"] = "assistant"
    content: str | None = None
    tool_calls: list[ToolCall] | None = None

    @field_validator("tool_calls")
    @classmethod
    def validate_tool_calls(cls, v: list[ToolCall] | None) -> list[ToolCall] | None:
        """Convert empty tool_calls list to None to avoid API errors."""
        if v is not None and len(v) == 0:
            return None
        return v

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AssistantMessage:
        """Create AssistantMessage from an API response message."""
        tool_calls = None
        if data.get("tool_calls"):
            tool_calls = [
                ToolCall(
                    id=tc["id"],
                    type=tc.get("type", "function"),
                    function=FunctionCall(
                        name=tc["function"]["name"],
                        arguments=tc["function"].get("arguments") or "{}",
                    ),
                )
                for tc in data["tool_calls"]
            ]

        return cls(content=data.get("content"), tool_calls=tool_calls)

    def to_dict(self) -> dict[str, Any]:
        """API shape; ``content`` stays present (as null) on tool-call messages."""
        result: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            result["tool_calls"] = [tc.model_dump() for tc in self.tool_calls]
        return result


class ToolMessage(BaseModel):
    """Tool response message."""

    role: Literal["tool"] = "tool"
    content: str
    tool_call_id: str


# Union of all message types for conversation
ChatCompletionMessage = SystemMessage | UserMessage | AssistantMessage | ToolMessage


def message_to_dict(message: ChatCompletionMessage) -> dict[str, Any]:
    """Serialize one conversation message for the completion API."""
    if isinstance(message, AssistantMessage):
        return message.to_dict()
    return message.model_dump(exclude_none=True)


# ==============================================================================
# TOOL DEFINITIONS AND SCHEMAS
# ==============================================================================


class ToolFunctionDefinition(BaseModel):
    """Tool function definition."""

    name: str
    description: str
    parameters: dict[str, Any]


class ToolDefinition(BaseModel):
    """Complete tool definition for OpenAI API."""

    type: Literal["function"] = "function"
    function: ToolFunctionDefinition


# ==============================================================================
# REQUEST/RESPONSE MODELS
# ==============================================================================


class LLMResponseData(BaseModel):
    """Structured LLM response data."""

    message: AssistantMessage
    finish_reason: str | None = None
    index: int = 0
    model: str


# ==============================================================================
# STREAMING MODELS
# ==============================================================================


class FunctionCallDelta(BaseModel):
    """Partial function call data in streaming response."""

    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(BaseModel):
    """Partial tool call data in streaming response."""

    index: int = 0
    id: str | None = None
    type: Literal["function"] | None = None
    function: FunctionCallDelta | None = None


class CompletionDelta(BaseModel):
    """One increment from the completion source; ``finish_reason`` ends the stream."""

    content: str | None = None
    tool_calls: list[ToolCallDelta] = Field(default_factory=list)
    finish_reason: str | None = None

    @classmethod
    def from_chunk(cls, chunk: dict[str, Any]) -> CompletionDelta:
        """Build from a raw ``chat.completion.chunk`` dict."""
        choices = chunk.get("choices") or [{}]
        choice = choices[0]
        delta = choice.get("delta") or {}
        return cls(
            content=delta.get("content"),
            tool_calls=[ToolCallDelta.model_validate(tc) for tc in delta.get("tool_calls") or []],
            finish_reason=choice.get("finish_reason"),
        )


# ==============================================================================
# STREAM EVENTS (emitted by a turn)
# ==============================================================================


class ContentEvent(BaseModel):
    type: Literal["content"] = "content"
    content: str


class ToolCallsEvent(BaseModel):
    """In-progress view of the first tool call, re-sent as it grows."""

    type: Literal["tool_calls"] = "tool_calls"
    tool_calls: list[ToolCall]


class ToolEvent(BaseModel):
    """A completed, executed tool call."""

    type: Literal["tool"] = "tool"
    tool_call: ToolCall
    result: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    # Assistant call message followed by the tool result message
    messages_to_save: list[AssistantMessage | ToolMessage] = Field(default_factory=list)


class DocumentStreamEvent(BaseModel):
    """Best-effort partial document while the writing tool is still streaming."""

    type: Literal["document_stream"] = "document_stream"
    tool_call_id: str | None = None
    html: str
    document_name: str | None = None


class StepTransitionEvent(BaseModel):
    type: Literal["step_transition"] = "step_transition"
    previous_step: str
    next_step: str


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"
    content: str = ""
    message_id: int | None = None


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str


StreamEvent = Annotated[
    ContentEvent
    | ToolCallsEvent
    | ToolEvent
    | DocumentStreamEvent
    | StepTransitionEvent
    | DoneEvent
    | ErrorEvent,
    Field(discriminator="type"),
]


def encode_event(event: BaseModel) -> str:
    """One newline-terminated JSON record per event."""
    return event.model_dump_json(exclude_none=True) + "\n"
