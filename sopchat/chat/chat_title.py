"""
Chat title generation.

Asks a cheap model for a short sidebar title through a forced function call.
Cosmetic: every failure returns ``None``.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from sopchat.chat.models import ToolDefinition, ToolFunctionDefinition, UserMessage
from sopchat.history.models import Message
from sopchat.sop.models import SOP

if TYPE_CHECKING:
    from sopchat.clients import LLMClient

logger = logging.getLogger(__name__)

TITLE_FUNCTION = "set_chat_title"
RECENT_MESSAGE_LIMIT = 10

TITLE_TOOL = ToolDefinition(
    function=ToolFunctionDefinition(
        name=TITLE_FUNCTION,
        description="Set the chat's sidebar title.",
        parameters={
            "type": "object",
            "properties": {"title": {"type": "string", "minLength": 1}},
            "required": ["title"],
            "additionalProperties": False,
        },
    )
)


def build_title_prompt(history: list[Message], sop: SOP | None = None) -> str:
    recent = [m for m in history if m.content and m.role in ("user", "assistant")][-RECENT_MESSAGE_LIMIT:]
    summary = (
        "\n".join(f"{m.role.upper()}: {m.content}" for m in recent) if recent else "(no messages yet)"
    )
    sop_context = (
        "\n\nThe user is currently following this SOP:\n"
        f"- Name: {sop.display_name}\n- ID: {sop.id}\n- Description: {sop.description}"
        if sop
        else ""
    )
    return (
        "You are a helper that writes concise, human-friendly chat titles for a sidebar list.\n\n"
        f"Conversation so far:\n{summary}{sop_context}\n\n"
        "Rules:\n"
        "- Respond with a short descriptive chat title.\n"
        "- Maximum 60 characters, ideally 3-8 words.\n"
        "- Use sentence case (capitalize only the first word and proper nouns).\n"
        "- Do NOT include quotation marks around the title.\n"
        "- Do NOT include step numbers or SOP IDs unless they are essential."
    )


class ChatTitleGenerator:
    def __init__(self, llm_client: LLMClient, title_conf: dict[str, Any], model: str):
        self.llm_client = llm_client
        self.model = model
        self.enabled = bool(title_conf.get("enabled", True))
        self.max_length = int(title_conf.get("max_length", 80))

    async def generate(self, history: list[Message], sop: SOP | None = None) -> str | None:
        if not self.enabled:
            return None
        try:
            response = await self.llm_client.get_response_with_tools(
                [UserMessage(content=build_title_prompt(history, sop))],
                [TITLE_TOOL],
                model=self.model,
                tool_choice={"type": "function", "function": {"name": TITLE_FUNCTION}},
            )
            tool_calls = response.message.tool_calls or []
            if not tool_calls:
                return None
            title = json.loads(tool_calls[0].function.arguments).get("title")
        except Exception as e:
            logger.warning("Error generating chat title: %s", e)
            return None

        if not isinstance(title, str):
            return None
        title = title.strip().strip('"').strip()
        return title[: self.max_length].rstrip() or None
