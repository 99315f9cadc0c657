"""
Application wiring - logging setup and orchestrator construction.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator
from typing import Any

from sopchat.chat import ChatOrchestrator
from sopchat.clients import LLMClient
from sopchat.config import Configuration
from sopchat.history import create_repository, seed_default_sops
from sopchat.tool_schema_manager import ToolSchemaManager

logger = logging.getLogger(__name__)

LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Config module name -> logger hierarchy it controls
MODULE_LOGGERS = {
    "chat": ["sopchat.chat", "sopchat.tools", "sopchat.tool_schema_manager"],
    "history": ["sopchat.history"],
    "clients": ["sopchat.clients"],
}


def configure_logging(logging_config: dict[str, Any]) -> None:
    """
    Apply the ``logging`` config section: root level and format, per-module
    levels, and feature flags read back by ``should_log_feature``.
    """
    global_level = LEVEL_MAP.get(str(logging_config.get("level", "WARNING")).upper(), logging.WARNING)
    logging.basicConfig(level=global_level)
    logging.getLogger().setLevel(global_level)

    if "format" in logging_config:
        for handler in logging.getLogger().handlers:
            if isinstance(handler, logging.StreamHandler):
                handler.setFormatter(logging.Formatter(logging_config["format"]))

    for module_name, module_config in (logging_config.get("modules") or {}).items():
        if not isinstance(module_config, dict):
            continue

        level_name = str(module_config.get("level", logging_config.get("level", "WARNING"))).upper()
        for logger_name in MODULE_LOGGERS.get(module_name, []):
            logging.getLogger(logger_name).setLevel(LEVEL_MAP.get(level_name, logging.WARNING))

        if not hasattr(logging, "_module_features"):
            logging._module_features = {}  # type: ignore[attr-defined]
        logging._module_features[module_name] = module_config.get("enable_features", {})  # type: ignore[attr-defined]


@contextlib.asynccontextmanager
async def create_orchestrator(
    configuration: Configuration,
) -> AsyncIterator[ChatOrchestrator]:
    """Build the store, LLM client and orchestrator; close them on exit."""
    configure_logging(configuration.get_logging_config())

    repo = create_repository(configuration.get_chat_storage_config())
    await seed_default_sops(repo)

    tool_mgr = ToolSchemaManager()
    tool_mgr.validate()

    async with LLMClient(configuration) as llm_client:
        orchestrator = ChatOrchestrator(
            ChatOrchestrator.ChatOrchestratorConfig(
                llm_client=llm_client,
                repo=repo,
                configuration=configuration,
                tool_mgr=tool_mgr,
            )
        )
        try:
            yield orchestrator
        finally:
            await orchestrator.wait_for_background_tasks()
            await repo.close()
            logger.info("Application shutdown complete")

