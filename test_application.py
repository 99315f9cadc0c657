#!/usr/bin/env python3
"""
Tests for application wiring and orchestrator shutdown.
"""

import asyncio
import logging
import os
import tempfile
from unittest.mock import AsyncMock

import yaml

from sopchat.application import create_orchestrator
from sopchat.chat import ChatOrchestrator
from sopchat.chat.logging_utils import should_log_feature
from sopchat.config import OVERRIDE_CONFIG_ENV, Configuration
from sopchat.history import InMemoryRepo
from sopchat.sop import PROTECTED_SOP_IDS
from sopchat.tool_schema_manager import ToolSchemaManager


def test_create_orchestrator_seeds_and_closes():
    print("Testing application wiring...")
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(
            {
                "chat": {"storage": {"type": "memory"}},
                "llm": {"active": "openai"},
                "logging": {
                    "level": "WARNING",
                    "modules": {"clients": {"level": "ERROR", "enable_features": {"raw_stream": True}}},
                },
            },
            f,
        )
        path = f.name

    previous = {key: os.environ.get(key) for key in (OVERRIDE_CONFIG_ENV, "OPENAI_API_KEY")}
    os.environ[OVERRIDE_CONFIG_ENV] = path
    os.environ["OPENAI_API_KEY"] = "test-key"

    async def scenario():
        async with create_orchestrator(Configuration()) as orchestrator:
            # The logging section is applied on startup
            assert logging.getLogger("sopchat.clients").level == logging.ERROR
            assert should_log_feature("clients", "raw_stream") is True

            sops = await orchestrator.repo.list_sops()
            assert set(PROTECTED_SOP_IDS) <= {sop.id for sop in sops}
            chat = await orchestrator.repo.create_chat(orchestrator.model)
            assert await orchestrator.get_thread(chat.id) == []
        assert orchestrator.llm_client.client.is_closed

    try:
        asyncio.run(scenario())
    finally:
        for key, value in previous.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        os.unlink(path)


def test_cleanup_closes_llm_client():
    print("Testing orchestrator cleanup...")
    llm = AsyncMock()
    orchestrator = ChatOrchestrator(
        ChatOrchestrator.ChatOrchestratorConfig(
            llm_client=llm, repo=InMemoryRepo(), tool_mgr=ToolSchemaManager(), configuration=Configuration()
        )
    )
    asyncio.run(orchestrator.cleanup())
    llm.close.assert_awaited_once()

    # A failing close is logged, not raised
    llm.close.side_effect = RuntimeError("already closed")
    asyncio.run(orchestrator.cleanup())


if __name__ == "__main__":
    test_create_orchestrator_seeds_and_closes()
    test_cleanup_closes_llm_client()
    print("✅ Application tests passed!")
