"""
Chat Orchestrator

Main coordination layer for one request/response cycle:

1. Resolve the parent message (explicit, or the latest leaf)
2. Persist the user message (skipped for the SOP start command)
3. Rebuild the thread ending at that message
4. Load the active SOP run and let the step manager move it
5. Assemble the prompt and stream the turn
6. Persist tool call/result pairs as a linear chain, then the final reply

Every turn ends its event stream with exactly one ``done`` or ``error``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from sopchat.config import Configuration
from sopchat.history.models import FileAttachment, Message, StoredToolCall
from sopchat.history.repository import ParentMessageError
from sopchat.sop.models import SOP, TERMINAL_STEP, SOPRun

from .chat_title import ChatTitleGenerator
from .message_tree import BranchInfo, branch_info, branch_leaf, latest_leaf, thread
from .models import (
    AssistantMessage,
    DoneEvent,
    ErrorEvent,
    StepTransitionEvent,
    StreamEvent,
    ToolMessage,
    encode_event,
)
from .prompt_builder import build_conversation
from .step_manager import StepManager
from .streaming_handler import StreamingHandler
from .tool_executor import ToolExecutionContext, ToolExecutionResult, ToolExecutor

if TYPE_CHECKING:
    from sopchat.tool_schema_manager import ToolSchemaManager

logger = logging.getLogger(__name__)

__all__ = ["ChatOrchestrator", "encode_event"]


class ChatOrchestrator:
    """
    Turn orchestrator - coordinates the store, the step manager and the
    streaming handler for each user message.
    """

    class ChatOrchestratorConfig(BaseModel):
        model_config = ConfigDict(arbitrary_types_allowed=True)

        llm_client: Any  # LLMClient or anything with the same two methods
        repo: Any  # MessageStore protocol
        tool_mgr: Any  # ToolSchemaManager
        configuration: Configuration

    def __init__(self, service_config: ChatOrchestratorConfig):
        self.llm_client = service_config.llm_client
        self.repo = service_config.repo
        self.configuration = service_config.configuration
        self.chat_conf = self.configuration.get_chat_service_config()
        self.model = self.configuration.get_model()
        self.sop_start_command = self.configuration.get_sop_start_command()
        self.document_tool: str = self.chat_conf.get("document_tool", "write_document")

        self.tool_mgr: ToolSchemaManager = service_config.tool_mgr
        self.tool_executor = ToolExecutor(self.tool_mgr, self.repo, self.chat_conf)
        self.streaming_handler = StreamingHandler(self.llm_client, self.tool_executor, self.chat_conf)
        self.step_manager = StepManager(
            self.llm_client, self.configuration.get_step_manager_config(), model=self.model
        )
        self.title_generator = ChatTitleGenerator(
            self.llm_client,
            self.configuration.get_title_config(),
            self.configuration.get_cheap_model(),
        )

        self._background_tasks: set[asyncio.Task[Any]] = set()

    # ---------- Public entry points ----------

    async def process_message(
        self,
        chat_id: int,
        message: str,
        parent_message_id: int | None = None,
        file_attachments: list[FileAttachment] | None = None,
    ) -> AsyncGenerator[StreamEvent]:
        """
        Process a user message with streaming response.

        Without ``parent_message_id`` the message continues the latest leaf.
        """
        async for event in self._process(
            chat_id, message, parent_message_id, file_attachments, explicit_parent=parent_message_id is not None
        ):
            yield event

    async def edit_message(
        self, chat_id: int, message_id: int, new_content: str
    ) -> AsyncGenerator[StreamEvent]:
        """Edit-as-branch: add a sibling of ``message_id`` and regenerate from it."""
        original = await self.repo.get_message(message_id)
        if original is None or original.chat_id != chat_id:
            yield ErrorEvent(error=f"Message {message_id} not found in chat {chat_id}")
            return
        if original.role != "user":
            yield ErrorEvent(error="Only user messages can be edited")
            return

        logger.info("→ Orchestrator: editing message %d in chat %d as a new branch", message_id, chat_id)
        async for event in self._process(
            chat_id,
            new_content,
            original.parent_message_id,
            original.file_attachments,
            explicit_parent=True,
        ):
            yield event

    async def start_sop(self, chat_id: int, sop_id: str) -> AsyncGenerator[StreamEvent]:
        """Start a run at the SOP's first step and let the assistant open it."""
        sop = await self.repo.get_sop(sop_id)
        if sop is None:
            yield ErrorEvent(error=f"SOP not found: {sop_id}")
            return
        first_step = sop.first_step()
        if first_step is None:
            yield ErrorEvent(error=f"SOP {sop_id} has no steps")
            return
        if await self.repo.get_chat(chat_id) is None:
            yield ErrorEvent(error=f"Chat not found: {chat_id}")
            return

        run = await self.repo.create_run(chat_id, sop.id, first_step.id)
        logger.info("← Repository: started run %d of %s at %s", run.id, sop.id, first_step.id)
        async for event in self.process_message(chat_id, self.sop_start_command):
            yield event

    async def get_thread(self, chat_id: int, leaf_id: int | None = None) -> list[Message]:
        messages = await self.repo.list_by_chat(chat_id)
        leaf = leaf_id if leaf_id is not None else latest_leaf(messages)
        return thread(leaf, messages) if leaf is not None else []

    async def switch_branch(self, chat_id: int, message_id: int) -> list[Message]:
        """Thread ending at the newest leaf under ``message_id``."""
        messages = await self.repo.list_by_chat(chat_id)
        leaf = branch_leaf(message_id, messages)
        return thread(leaf, messages) if leaf is not None else []

    async def get_branch_info(self, chat_id: int, message_id: int) -> BranchInfo | None:
        return branch_info(message_id, await self.repo.list_by_chat(chat_id))

    async def wait_for_background_tasks(self) -> None:
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    async def cleanup(self) -> None:
        """Let title tasks finish, then close the LLM client."""
        logger.info("→ Orchestrator: starting cleanup")
        await self.wait_for_background_tasks()
        try:
            await self.llm_client.close()
        except Exception as e:
            logger.warning("Error closing LLM client: %s", e)
        logger.info("← Orchestrator: cleanup completed")

    # ---------- Turn pipeline ----------

    async def _process(
        self,
        chat_id: int,
        message: str,
        parent_message_id: int | None,
        file_attachments: list[FileAttachment] | None,
        explicit_parent: bool,
    ) -> AsyncGenerator[StreamEvent]:
        chat = await self.repo.get_chat(chat_id)
        if chat is None:
            yield ErrorEvent(error=f"Chat not found: {chat_id}")
            return

        messages = await self.repo.list_by_chat(chat_id)
        parent_id = parent_message_id if explicit_parent else latest_leaf(messages)
        is_sop_start = message.strip() == self.sop_start_command

        if is_sop_start:
            leaf_id = parent_id
            first_user_message = False
        else:
            try:
                user_message = await self.repo.append(
                    chat_id,
                    "user",
                    message,
                    file_attachments=file_attachments,
                    parent_message_id=parent_id,
                )
            except ParentMessageError as e:
                yield ErrorEvent(error=str(e))
                return
            logger.info("← Repository: user message %d persisted for chat %d", user_message.id, chat_id)
            first_user_message = not any(m.role == "user" for m in messages)
            messages.append(user_message)
            leaf_id = user_message.id

        history = thread(leaf_id, messages) if leaf_id is not None else []

        run = await self.repo.get_active_run(chat_id)
        sop = await self.repo.get_sop(run.sop_id) if run else None
        if run and sop is None:
            logger.warning("Active run %d references missing SOP %s", run.id, run.sop_id)

        current_step_id = run.current_step_id if run else None
        if run and sop and not is_sop_start:
            step = sop.find_step(run.current_step_id)
            if step is not None:
                decision = await self.step_manager.decide(message, step, sop, history[:-1])
                if decision.changed:
                    run = await self.step_manager.apply(run, decision, self.repo)
                    yield StepTransitionEvent(
                        previous_step=decision.previous_step, next_step=decision.next_step
                    )
                    # A finished run keeps the last real step as prompt context
                    current_step_id = (
                        decision.previous_step
                        if decision.next_step == TERMINAL_STEP
                        else decision.next_step
                    )

        async for event in self._stream(chat_id, leaf_id, history, run, sop, current_step_id):
            if isinstance(event, DoneEvent) and first_user_message:
                self._schedule_title(chat_id, sop)
            yield event

    async def _stream(
        self,
        chat_id: int,
        leaf_id: int | None,
        history: list[Message],
        run: SOPRun | None,
        sop: SOP | None,
        current_step_id: str | None,
    ) -> AsyncGenerator[StreamEvent]:
        conversation = build_conversation(
            self.model, history, sop, current_step_id, document_tool=self.document_tool
        )

        tool_names = self.tool_mgr.tools_for(sop)
        sop_ids: list[str] = []
        if self.tool_mgr.needs_sop_ids(tool_names):
            sop_ids = [s.id for s in await self.repo.list_sops()]
        tools = self.tool_mgr.get_openai_tools(tool_names, sop_ids)

        context = ToolExecutionContext(
            chat_id=chat_id,
            sop=sop,
            sop_run_id=run.id if run else None,
            current_step_id=current_step_id,
        )

        # Tool pairs are chained: each call message hangs off the previous result
        last_persisted = leaf_id

        async def persist_tool_pair(
            result: ToolExecutionResult, tool_messages: list[AssistantMessage | ToolMessage]
        ) -> None:
            nonlocal last_persisted
            call = result.tool_call
            call_message = await self.repo.append(
                chat_id,
                "assistant",
                None,
                tool_calls=[
                    StoredToolCall(id=call.id, name=call.function.name, arguments=call.function.arguments)
                ],
                parent_message_id=last_persisted,
            )
            result_message = await self.repo.append(
                chat_id,
                "tool",
                tool_messages[-1].content,
                tool_call_id=call.id,
                tool_name=call.function.name,
                metadata=result.metadata,
                parent_message_id=call_message.id,
            )
            last_persisted = result_message.id
            logger.info(
                "← Repository: tool pair %d/%d persisted for %s",
                call_message.id,
                result_message.id,
                call.function.name,
            )

        async for event in self.streaming_handler.stream_turn(
            conversation, tools, context, model=self.model, on_tool_result=persist_tool_pair
        ):
            if isinstance(event, DoneEvent) and event.content:
                final = await self.repo.append(
                    chat_id, "assistant", event.content, parent_message_id=last_persisted
                )
                logger.info("← Repository: assistant message %d persisted", final.id)
                event = event.model_copy(update={"message_id": final.id})
            yield event

    # ---------- Title generation ----------

    def _schedule_title(self, chat_id: int, sop: SOP | None) -> None:
        task = asyncio.create_task(self._generate_title(chat_id, sop))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _generate_title(self, chat_id: int, sop: SOP | None) -> None:
        try:
            history = await self.repo.list_by_chat(chat_id)
            title = await self.title_generator.generate(history, sop)
            if title:
                await self.repo.update_chat_title(chat_id, title)
                logger.info("← Repository: chat %d titled %r", chat_id, title)
        except Exception as e:
            logger.warning("Chat title generation failed for chat %d: %s", chat_id, e)
