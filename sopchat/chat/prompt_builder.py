"""
Prompt assembly.

Builds the system prompt (model, date, optional SOP context) and converts a
stored thread into the message list the completion API expects.
"""

from __future__ import annotations

import json
import logging
from datetime import date

from sopchat.chat.logging_utils import should_log_feature
from sopchat.chat.models import (
    AssistantMessage,
    ChatCompletionMessage,
    SystemMessage,
    ToolMessage,
    UserMessage,
)
from sopchat.history.models import FileAttachment, Message
from sopchat.sop.models import SOP

logger = logging.getLogger(__name__)

DOCUMENT_INSTRUCTIONS = """## Important Instructions

Whenever providing output that requires a specific format (markdown-document, structured, etc.), you MUST call the `{tool}` tool with the current step ID and the complete proposed output.

**CRITICAL**: After calling the {tool} tool:
- NEVER paste, repeat, or include the document content in your response
- NEVER summarize or quote the document text
- DO briefly confirm that you did create a document. ("I've created a document...")
- DO proceed directly to the next step or ask the user what they'd like to do next

The tool is the final output. Your response should only explain what was done, not reproduce what was written."""


def format_date(today: date) -> str:
    """``Sunday, October 18, 2026``."""
    return f"{today.strftime('%A, %B')} {today.day}, {today.year}"


def create_system_prompt(
    model: str,
    sop: SOP | None = None,
    current_step_id: str | None = None,
    today: date | None = None,
    document_tool: str = "write_document",
) -> str:
    prompt = f"You are {model}. Today's date is {format_date(today or date.today())}."
    if sop is None:
        return prompt

    current_step = sop.find_step(current_step_id) if current_step_id else sop.first_step()
    next_steps = current_step.next_step_ids() if current_step else []

    prompt += (
        "\n\n## SOP (Standard Operating Procedure)\n\nYou are running this workflow:\n\n"
        f"{json.dumps(sop.to_wire(), indent=2)}"
    )
    prompt += (
        "\n\n## Current Step\n\nYou are currently on this step:\n\n"
        f"{json.dumps(current_step.to_wire() if current_step else None, indent=2)}"
    )
    if next_steps:
        listed = "\n".join(f"- {step_id}" for step_id in next_steps)
        prompt += (
            "\n\n## Valid Next Steps\n\nWhen you complete the current step, you can advance "
            f"to one of these steps:\n{listed}"
        )
    prompt += "\n\n" + DOCUMENT_INSTRUCTIONS.format(tool=document_tool)

    if should_log_feature("chat", "system_prompt"):
        logger.info("System prompt (%d chars):\n%s", len(prompt), prompt)
    return prompt


def _attachment_text(attachments: list[FileAttachment]) -> str:
    parts = []
    for attachment in attachments:
        if attachment.content:
            parts.append(f"\n\n--- Attached file: {attachment.name} ---\n{attachment.content}")
        else:
            parts.append(f"\n\n[Attached file: {attachment.name} ({attachment.mime_type}, {attachment.size} bytes)]")
    return "".join(parts)


def to_llm_messages(thread: list[Message]) -> list[ChatCompletionMessage]:
    """Stored messages (root first) to API messages; system messages are dropped."""
    converted: list[ChatCompletionMessage] = []
    for message in thread:
        if message.role == "assistant" and message.tool_calls:
            converted.append(
                AssistantMessage.from_dict(
                    {"content": None, "tool_calls": [tc.to_api() for tc in message.tool_calls]}
                )
            )
        elif message.role == "tool":
            if not message.tool_call_id:
                logger.warning("Skipping tool message %d without tool_call_id", message.id)
                continue
            converted.append(ToolMessage(content=message.content or "", tool_call_id=message.tool_call_id))
        elif message.role == "user":
            content = (message.content or "") + _attachment_text(message.file_attachments)
            converted.append(UserMessage(content=content))
        elif message.role == "assistant":
            converted.append(AssistantMessage(content=message.content or ""))
    return converted


def build_conversation(
    model: str,
    thread: list[Message],
    sop: SOP | None = None,
    current_step_id: str | None = None,
    document_tool: str = "write_document",
) -> list[ChatCompletionMessage]:
    system = SystemMessage(
        content=create_system_prompt(model, sop, current_step_id, document_tool=document_tool)
    )
    return [system, *to_llm_messages(thread)]
