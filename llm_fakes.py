"""
Scripted stand-ins for LLMClient used by the test modules.
"""

from __future__ import annotations

import json
from typing import Any

from sopchat.chat.models import (
    AssistantMessage,
    CompletionDelta,
    FunctionCall,
    FunctionCallDelta,
    LLMResponseData,
    ToolCall,
    ToolCallDelta,
)


def text(content: str) -> CompletionDelta:
    return CompletionDelta(content=content)


def finish(reason: str = "stop") -> CompletionDelta:
    return CompletionDelta(finish_reason=reason)


def tool_delta(
    index: int = 0,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> CompletionDelta:
    return CompletionDelta(
        tool_calls=[
            ToolCallDelta(
                index=index,
                id=call_id,
                function=FunctionCallDelta(name=name, arguments=arguments),
            )
        ]
    )


def function_call_response(name: str, arguments: dict[str, Any]) -> LLMResponseData:
    return LLMResponseData(
        message=AssistantMessage(
            tool_calls=[
                ToolCall(id="call_fc", function=FunctionCall(name=name, arguments=json.dumps(arguments)))
            ]
        ),
        finish_reason="tool_calls",
        model="test-model",
    )


class ScriptedLLMClient:
    """
    Replays one scripted delta list per ``stream_completion`` call and answers
    forced function calls from per-function queues.

    Items in a stream that are exceptions are raised at that point. A stream
    call with nothing scripted answers ``"ok"``.
    """

    def __init__(
        self,
        streams: list[list[Any]] | None = None,
        responses: dict[str, list[Any]] | None = None,
    ):
        self.streams = list(streams or [])
        self.responses = {name: list(queue) for name, queue in (responses or {}).items()}
        self.stream_calls: list[dict[str, Any]] = []
        self.response_calls: list[dict[str, Any]] = []
        self.closed = False

    async def stream_completion(self, model, messages, tools=None):
        self.stream_calls.append({"model": model, "messages": list(messages), "tools": tools})
        deltas = self.streams.pop(0) if self.streams else [text("ok"), finish()]
        for delta in deltas:
            if isinstance(delta, Exception):
                raise delta
            yield delta

    async def get_response_with_tools(self, messages, tools=None, model=None, tool_choice=None):
        name = (tool_choice or {}).get("function", {}).get("name", "")
        self.response_calls.append({"name": name, "messages": list(messages), "tools": tools})
        queue = self.responses.get(name)
        if not queue:
            raise RuntimeError(f"no scripted response for {name}")
        response = queue.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True
