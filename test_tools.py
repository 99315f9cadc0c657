#!/usr/bin/env python3
"""
Tests for the tool registry, the dispatcher and the built-in tool handlers.
"""

import asyncio
import json

import pytest
from mcp import McpError

from sopchat.chat.models import FunctionCall, ToolCall
from sopchat.chat.tool_executor import ToolExecutionContext, ToolExecutor, to_conversation_messages
from sopchat.history import InMemoryRepo, seed_default_sops
from sopchat.sop import parse_sop_payload, validate_sop_structure
from sopchat.sop.models import SOP
from sopchat.tool_schema_manager import HANDLERS, SOP_AUTHORING_TOOLS, ToolName, ToolSchemaManager

SINGLE_STEP_SOP = {
    "id": "x",
    "name": "x",
    "displayName": "X",
    "description": "One step",
    "steps": [{"id": "only", "stepNumber": 1, "assistantFacingTitle": "Only step", "nextStep": "DONE"}],
}


def call(name, arguments, call_id="call_1"):
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return ToolCall(id=call_id, function=FunctionCall(name=name, arguments=raw))


async def run_tool(executor, tool_call, chat_id=1, sop=None):
    return await executor.execute(tool_call, ToolExecutionContext(chat_id=chat_id, sop=sop))


def make_executor():
    store = InMemoryRepo()
    return ToolExecutor(ToolSchemaManager(), store), store


def test_registry_validates():
    print("Testing tool registry validation...")
    ToolSchemaManager().validate()


def test_registry_mismatch_is_rejected():
    handlers = {name: handler for name, handler in HANDLERS.items() if name != ToolName.DELETE_SOP}
    with pytest.raises(ValueError, match="no handler"):
        ToolSchemaManager(handlers=handlers).validate()


def test_unknown_handler_raises_mcp_error():
    with pytest.raises(McpError):
        ToolSchemaManager().get_handler("launch_rocket")


def test_tools_offered_per_sop():
    mgr = ToolSchemaManager()
    assert mgr.tools_for(None) == [ToolName.WRITE_DOCUMENT]
    management = SOP.model_validate({**SINGLE_STEP_SOP, "id": "sop-management"})
    assert mgr.tools_for(management) == [ToolName.WRITE_DOCUMENT, *SOP_AUTHORING_TOOLS]

    tools = mgr.get_openai_tools([ToolName.DELETE_SOP], ["pdf-summary", "my-sop"])
    description = tools[0].function.description
    assert "protected" in description
    assert "Custom SOPs: my-sop" in description


def test_sop_validation_scenario():
    print("Testing SOP validation scenario...")
    executor, store = make_executor()

    async def scenario():
        rejected = await run_tool(executor, call("create_sop", {"newSOP": json.dumps({"id": "x"})}))
        assert rejected.metadata["validationErrors"] == ["Missing steps array"]
        assert "Missing steps array" in rejected.result
        assert await store.get_sop("x") is None

        created = await run_tool(executor, call("create_sop", {"newSOP": json.dumps(SINGLE_STEP_SOP)}))
        assert created.error is None
        assert created.metadata == {"sopId": "x", "action": "created"}

        stored = await store.get_sop("x")
        assert stored is not None
        assert [step.id for step in stored.steps] == ["only"]

    asyncio.run(scenario())


def test_validation_collects_step_errors():
    errors = validate_sop_structure(
        {
            "id": "y",
            "name": "",
            "displayName": "Y",
            "steps": [
                {"id": "a", "stepNumber": "one"},
                {"id": "a", "stepNumber": 2},
            ],
        }
    )
    assert "Missing required field: name" in errors
    assert "Duplicate step id: a" in errors
    assert any("numeric stepNumber" in error for error in errors)


def test_validation_flags_unknown_next_step():
    data = json.loads(json.dumps(SINGLE_STEP_SOP))
    data["steps"][0]["nextStep"] = ["nowhere", "DONE"]
    assert validate_sop_structure(data) == ["Step only points to unknown step: nowhere"]



def test_validation_reports_non_string_next_step():
    data = json.loads(json.dumps(SINGLE_STEP_SOP))
    data["steps"][0]["nextStep"] = [{"id": "b"}, "DONE"]
    sop, errors = parse_sop_payload(json.dumps(data))
    assert sop is None
    assert errors == ["Step only has a non-string nextStep entry"]

    executor, store = make_executor()
    rejected = asyncio.run(run_tool(executor, call("create_sop", {"newSOP": json.dumps(data)})))
    assert rejected.metadata["validationErrors"] == errors
    assert asyncio.run(store.get_sop("x")) is None


def test_validation_rejects_unreachable_steps_but_allows_loops():
    data = {
        **SINGLE_STEP_SOP,
        "steps": [
            {"id": "draft", "stepNumber": 1, "nextStep": ["review"]},
            {"id": "review", "stepNumber": 2, "nextStep": ["draft", "DONE"]},
            {"id": "orphan", "stepNumber": 3, "nextStep": "DONE"},
        ],
    }
    assert validate_sop_structure(data) == ["Step orphan cannot be reached from the first step"]

    data["steps"] = data["steps"][:2]
    assert validate_sop_structure(data) == []

def test_create_refuses_existing_and_overwrite_refuses_missing():
    executor, store = make_executor()

    async def scenario():
        await run_tool(executor, call("create_sop", {"newSOP": json.dumps(SINGLE_STEP_SOP)}))
        again = await run_tool(executor, call("create_sop", {"newSOP": json.dumps(SINGLE_STEP_SOP)}))
        assert "already exists" in again.result

        missing = await run_tool(
            executor, call("overwrite_sop", {"modifiedSOP": json.dumps({**SINGLE_STEP_SOP, "id": "z"})})
        )
        assert "SOP not found: z" in missing.result

        changed = await run_tool(
            executor,
            call("overwrite_sop", {"modifiedSOP": json.dumps({**SINGLE_STEP_SOP, "displayName": "X2"})}),
        )
        assert changed.metadata["action"] == "updated"
        assert (await store.get_sop("x")).display_name == "X2"

    asyncio.run(scenario())


def test_builtin_sops_cannot_be_deleted():
    print("Testing SOP deletion rules...")
    executor, store = make_executor()

    async def scenario():
        await seed_default_sops(store)
        refused = await run_tool(executor, call("delete_sop", {"sopId": "pdf-summary"}))
        assert "protected" in refused.result
        assert await store.get_sop("pdf-summary") is not None

        unknown = await run_tool(executor, call("delete_sop", {"sopId": "nope"}))
        assert "SOP not found: nope" in unknown.result

        await run_tool(executor, call("create_sop", {"newSOP": json.dumps(SINGLE_STEP_SOP)}))
        deleted = await run_tool(executor, call("delete_sop", {"sopId": "x"}))
        assert deleted.metadata["action"] == "deleted"
        assert await store.get_sop("x") is None

    asyncio.run(scenario())


def test_display_sop():
    executor, store = make_executor()

    async def scenario():
        await seed_default_sops(store)
        shown = await run_tool(executor, call("display_sop_to_user", {"sopId": "content-plan"}))
        assert shown.metadata == {"sopId": "content-plan", "displaySop": True}
        assert json.loads(shown.result)["id"] == "content-plan"

        missing = await run_tool(executor, call("display_sop_to_user", {"sopId": "nope"}))
        assert "Available SOPs" in missing.result

    asyncio.run(scenario())


def test_write_document_requires_fields():
    executor, store = make_executor()

    async def scenario():
        result = await run_tool(executor, call("write_document", {"stepId": "s1", "content": "<p>x</p>"}))
        assert "Missing: documentName" in result.result
        assert await store.list_documents(1) == []

    asyncio.run(scenario())


def test_handler_failure_becomes_text():
    async def broken(args, context, store):
        raise RuntimeError("disk full")

    handlers = {**HANDLERS, ToolName.WRITE_DOCUMENT: broken}
    executor = ToolExecutor(ToolSchemaManager(handlers=handlers), InMemoryRepo())
    result = asyncio.run(run_tool(executor, call("write_document", {})))
    assert result.result == "Tool execution failed: disk full"
    assert result.error == result.result


def test_conversation_messages_pair():
    tool_call = call("write_document", {"stepId": "s"}, call_id="abc")
    executor, _ = make_executor()
    result = asyncio.run(run_tool(executor, tool_call))
    assistant, tool = to_conversation_messages(tool_call, result)
    assert assistant.to_dict()["content"] is None
    assert assistant.tool_calls == [tool_call]
    assert tool.tool_call_id == "abc"
    assert json.loads(tool.content) == result.result


if __name__ == "__main__":
    test_registry_validates()
    test_registry_mismatch_is_rejected()
    test_unknown_handler_raises_mcp_error()
    test_tools_offered_per_sop()
    test_sop_validation_scenario()
    test_validation_collects_step_errors()
    test_validation_flags_unknown_next_step()
    test_validation_reports_non_string_next_step()
    test_validation_rejects_unreachable_steps_but_allows_loops()
    test_create_refuses_existing_and_overwrite_refuses_missing()
    test_builtin_sops_cannot_be_deleted()
    test_display_sop()
    test_write_document_requires_fields()
    test_handler_failure_becomes_text()
    test_conversation_messages_pair()
    print("✅ Tool tests passed!")
