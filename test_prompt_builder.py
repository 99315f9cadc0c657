#!/usr/bin/env python3
"""
Tests for system prompt assembly, thread conversion and chat titles.
"""

import asyncio
from datetime import date

from llm_fakes import ScriptedLLMClient, function_call_response
from sopchat.chat.chat_title import TITLE_FUNCTION, ChatTitleGenerator, build_title_prompt
from sopchat.chat.models import AssistantMessage, SystemMessage, ToolMessage, UserMessage
from sopchat.chat.prompt_builder import build_conversation, create_system_prompt, to_llm_messages
from sopchat.history.models import FileAttachment, Message, StoredToolCall
from sopchat.sop import get_default_sops

CONTENT_PLAN = next(sop for sop in get_default_sops() if sop.id == "content-plan")


def test_plain_prompt_has_model_and_date():
    prompt = create_system_prompt("gpt-test", today=date(2026, 10, 18))
    assert prompt == "You are gpt-test. Today's date is Sunday, October 18, 2026."


def test_sop_prompt_sections():
    print("Testing SOP system prompt...")
    prompt = create_system_prompt(
        "gpt-test", CONTENT_PLAN, "step-4-script-ideas", today=date(2026, 10, 18)
    )
    assert "## SOP (Standard Operating Procedure)" in prompt
    assert '"id": "content-plan"' in prompt
    assert "## Current Step" in prompt
    assert '"id": "step-4-script-ideas"' in prompt.split("## Current Step")[1]
    assert "## Valid Next Steps" in prompt
    assert "- step-3-video-ideas\n- DONE" in prompt
    assert "## Important Instructions" in prompt
    assert "`write_document`" in prompt


def test_sop_prompt_defaults_to_first_step():
    prompt = create_system_prompt("gpt-test", CONTENT_PLAN, today=date(2026, 10, 18))
    assert '"id": "step-1-gather-inputs"' in prompt.split("## Current Step")[1]


def test_thread_conversion():
    print("Testing thread conversion...")
    thread = [
        Message(
            id=1,
            chat_id=1,
            role="user",
            content="Summarize this",
            file_attachments=[FileAttachment(name="notes.txt", content="line one")],
        ),
        Message(
            id=2,
            chat_id=1,
            role="assistant",
            tool_calls=[StoredToolCall(id="c1", name="write_document", arguments="{}")],
            parent_message_id=1,
        ),
        Message(id=3, chat_id=1, role="tool", content='"done"', tool_call_id="c1", parent_message_id=2),
        Message(id=4, chat_id=1, role="tool", content="lost", parent_message_id=3),
        Message(id=5, chat_id=1, role="system", content="ignored", parent_message_id=4),
        Message(id=6, chat_id=1, role="assistant", content="Here you go", parent_message_id=5),
    ]
    converted = to_llm_messages(thread)

    assert [type(m) for m in converted] == [UserMessage, AssistantMessage, ToolMessage, AssistantMessage]
    assert "--- Attached file: notes.txt ---\nline one" in converted[0].content
    assert converted[1].content is None
    assert converted[1].tool_calls[0].id == "c1"
    assert converted[2].tool_call_id == "c1"
    assert converted[3].content == "Here you go"

    conversation = build_conversation("gpt-test", thread)
    assert isinstance(conversation[0], SystemMessage)
    assert len(conversation) == 5


def test_title_prompt_uses_recent_messages():
    history = [
        Message(id=i, chat_id=1, role="user" if i % 2 else "assistant", content=f"msg {i}")
        for i in range(1, 15)
    ]
    prompt = build_title_prompt(history, CONTENT_PLAN)
    assert "msg 4" not in prompt
    assert "msg 5" in prompt
    assert "msg 14" in prompt
    assert "Content" in prompt


def test_title_generation():
    print("Testing chat title generation...")
    llm = ScriptedLLMClient(
        responses={TITLE_FUNCTION: [function_call_response(TITLE_FUNCTION, {"title": '"' + "x" * 100 + '"'})]}
    )
    generator = ChatTitleGenerator(llm, {"enabled": True, "max_length": 20}, "cheap")
    history = [Message(id=1, chat_id=1, role="user", content="hi")]
    assert asyncio.run(generator.generate(history)) == "x" * 20
    assert llm.response_calls[0]["name"] == TITLE_FUNCTION

    # Failures are cosmetic
    assert asyncio.run(generator.generate(history)) is None

    disabled = ChatTitleGenerator(llm, {"enabled": False}, "cheap")
    assert asyncio.run(disabled.generate(history)) is None


if __name__ == "__main__":
    test_plain_prompt_has_model_and_date()
    test_sop_prompt_sections()
    test_sop_prompt_defaults_to_first_step()
    test_thread_conversion()
    test_title_prompt_uses_recent_messages()
    test_title_generation()
    print("✅ Prompt builder tests passed!")
