"""
Streaming Response Handler

Drives one turn against the completion source:
- Content deltas are forwarded as they arrive
- Fragmented tool-call deltas are reassembled by index
- The first tool call is announced live, with a document preview when it is
  the document-writing tool
- On a ``tool_calls`` finish, calls run sequentially and the model is asked
  once more, without tools, for the final reply

Per-turn states::

    INIT -> STREAMING -> FINISHED_NO_TOOLS -> DONE
    INIT -> STREAMING -> FINISHED_WITH_TOOLS -> EXECUTING_TOOLS
         -> STREAMING_FINAL_CONTENT -> DONE

ERROR is reachable from any state and ends the turn. Content already sent is
not retracted.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from sopchat.chat.document_preview import extract_partial_field, extract_partial_html
from sopchat.chat.logging_utils import log_llm_reply
from sopchat.chat.models import (
    AssistantMessage,
    ChatCompletionMessage,
    ContentEvent,
    DocumentStreamEvent,
    DoneEvent,
    ErrorEvent,
    FunctionCall,
    StreamEvent,
    ToolCall,
    ToolCallDelta,
    ToolCallsEvent,
    ToolDefinition,
    ToolEvent,
    ToolMessage,
)
from sopchat.chat.tool_executor import (
    ToolExecutionContext,
    ToolExecutionResult,
    to_conversation_messages,
)

if TYPE_CHECKING:
    from sopchat.chat.tool_executor import ToolExecutor
    from sopchat.clients import LLMClient

logger = logging.getLogger(__name__)

ToolResultCallback = Callable[[ToolExecutionResult, list[AssistantMessage | ToolMessage]], Awaitable[None]]


class TurnState(Enum):
    INIT = "init"
    STREAMING = "streaming"
    FINISHED_NO_TOOLS = "finished_no_tools"
    FINISHED_WITH_TOOLS = "finished_with_tools"
    EXECUTING_TOOLS = "executing_tools"
    STREAMING_FINAL_CONTENT = "streaming_final_content"
    DONE = "done"
    ERROR = "error"


class ToolCallAccumulator:
    """
    Reassembles tool calls from indexed, fragmented deltas.

    Argument fragments are only ever appended. ``id`` and ``name`` are
    backfilled whenever a delta carries them, in any order relative to the
    argument fragments.
    """

    def __init__(self) -> None:
        self._calls: list[dict[str, Any]] = []

    def add_delta(self, delta: ToolCallDelta) -> None:
        index = delta.index
        while len(self._calls) <= index:
            self._calls.append({"id": None, "name": "", "arguments": ""})

        current = self._calls[index]
        if delta.id:
            current["id"] = delta.id
        if delta.function is not None:
            if delta.function.name:
                current["name"] = delta.function.name
            if delta.function.arguments:
                current["arguments"] += delta.function.arguments

    def _as_tool_call(self, index: int) -> ToolCall:
        call = self._calls[index]
        return ToolCall(
            id=call["id"] or f"call_{index}",
            function=FunctionCall(name=call["name"], arguments=call["arguments"]),
        )

    def first_call(self) -> ToolCall | None:
        """The lowest-index call that has a name or arguments yet."""
        for index, call in enumerate(self._calls):
            if call["name"] or call["arguments"]:
                return self._as_tool_call(index)
        return None

    def complete_calls(self) -> list[ToolCall]:
        """Calls in index order, skipping slots that never received a name."""
        calls = []
        for index, call in enumerate(self._calls):
            if not call["name"]:
                logger.warning("Dropping tool call slot %d with no function name", index)
                continue
            calls.append(self._as_tool_call(index))
        return calls

    def __len__(self) -> int:
        return len(self._calls)


class StreamingHandler:
    """Handles streaming responses and the single tool round of a turn."""

    def __init__(
        self,
        llm_client: LLMClient,
        tool_executor: ToolExecutor,
        chat_conf: dict[str, Any],
    ):
        self.llm_client = llm_client
        self.tool_executor = tool_executor
        self.chat_conf = chat_conf
        self.document_tool: str = chat_conf.get("document_tool", "write_document")
        self._tool_tasks: set[asyncio.Task[Any]] = set()

    def _set_state(self, state: TurnState, new_state: TurnState) -> TurnState:
        logger.debug("Turn state %s -> %s", state.value, new_state.value)
        return new_state

    def _live_events(
        self, accumulator: ToolCallAccumulator, last: dict[str, Any]
    ) -> list[StreamEvent]:
        """Announce the first call once per turn, then preview it while it grows."""
        events: list[StreamEvent] = []
        first = accumulator.first_call()
        if first is None:
            return events

        if "call" not in last:
            last["call"] = first.id
            events.append(ToolCallsEvent(tool_calls=[first]))

        if first.function.name == self.document_tool:
            try:
                html = extract_partial_html(first.function.arguments)
                name = extract_partial_field(first.function.arguments, "documentName")
            except Exception as e:
                logger.debug("Document preview extraction failed: %s", e)
                return events
            if html is not None and (html, name) != last.get("preview"):
                last["preview"] = (html, name)
                events.append(
                    DocumentStreamEvent(tool_call_id=first.id, html=html, document_name=name)
                )
        return events

    async def _execute_and_record(
        self,
        call: ToolCall,
        context: ToolExecutionContext,
        index: int,
        total: int,
        on_tool_result: ToolResultCallback | None,
    ) -> tuple[ToolExecutionResult, list[AssistantMessage | ToolMessage]]:
        result = await self.tool_executor.execute(call, context, index, total)
        messages = to_conversation_messages(call, result)
        if on_tool_result is not None:
            await on_tool_result(result, messages)
        return result, messages

    async def _run_tool(
        self,
        call: ToolCall,
        context: ToolExecutionContext,
        index: int,
        total: int,
        on_tool_result: ToolResultCallback | None,
    ) -> tuple[ToolExecutionResult, list[AssistantMessage | ToolMessage]]:
        """Execute and persist one call; finishes even if the consumer goes away."""
        task = asyncio.ensure_future(
            self._execute_and_record(call, context, index, total, on_tool_result)
        )
        self._tool_tasks.add(task)
        task.add_done_callback(self._tool_tasks.discard)
        return await asyncio.shield(task)

    async def stream_turn(
        self,
        messages: list[ChatCompletionMessage],
        tools: list[ToolDefinition],
        context: ToolExecutionContext,
        model: str | None = None,
        on_tool_result: ToolResultCallback | None = None,
    ) -> AsyncGenerator[StreamEvent]:
        """
        Stream one turn. Yields zero or more events then exactly one ``done``
        or ``error``.

        ``on_tool_result`` receives each executed call with its two
        conversation messages before the ``tool`` event is yielded.
        """
        state = TurnState.INIT
        content_parts: list[str] = []
        accumulator = ToolCallAccumulator()
        last_live: dict[str, Any] = {}
        finish_reason: str | None = None

        try:
            state = self._set_state(state, TurnState.STREAMING)
            logger.info("→ LLM: starting streaming request for chat %d", context.chat_id)
            async for delta in self.llm_client.stream_completion(model, messages, tools or None):
                if delta.content:
                    content_parts.append(delta.content)
                    yield ContentEvent(content=delta.content)

                if delta.tool_calls:
                    for tool_call_delta in delta.tool_calls:
                        accumulator.add_delta(tool_call_delta)
                    for event in self._live_events(accumulator, last_live):
                        yield event

                if delta.finish_reason:
                    finish_reason = delta.finish_reason
                    break

            logger.info("← LLM: streaming completed, finish_reason=%s", finish_reason)
            calls = accumulator.complete_calls() if finish_reason == "tool_calls" else []

            if not calls:
                state = self._set_state(state, TurnState.FINISHED_NO_TOOLS)
                log_llm_reply("".join(content_parts), [], model or "", "final", self.chat_conf)
            else:
                state = self._set_state(state, TurnState.FINISHED_WITH_TOOLS)
                log_llm_reply(
                    "".join(content_parts),
                    [call.model_dump() for call in calls],
                    model or "",
                    "tool call",
                    self.chat_conf,
                )

                state = self._set_state(state, TurnState.EXECUTING_TOOLS)
                conversation: list[ChatCompletionMessage] = list(messages)
                for index, call in enumerate(calls):
                    result, tool_messages = await self._run_tool(
                        call, context, index, len(calls), on_tool_result
                    )
                    conversation.extend(tool_messages)
                    yield ToolEvent(
                        tool_call=call,
                        result=result.result,
                        metadata=result.metadata,
                        error=result.error,
                        messages_to_save=tool_messages,
                    )

                state = self._set_state(state, TurnState.STREAMING_FINAL_CONTENT)
                logger.info("→ LLM: requesting final reply after %d tool call(s)", len(calls))
                async for delta in self.llm_client.stream_completion(model, conversation, None):
                    if delta.content:
                        content_parts.append(delta.content)
                        yield ContentEvent(content=delta.content)
                    if delta.finish_reason:
                        break
                log_llm_reply("".join(content_parts), [], model or "", "final", self.chat_conf)

            state = self._set_state(state, TurnState.DONE)
            yield DoneEvent(content="".join(content_parts))
        except Exception as e:
            state = self._set_state(state, TurnState.ERROR)
            logger.error("Turn failed for chat %d: %s", context.chat_id, e)
            yield ErrorEvent(error=str(e) or type(e).__name__)
