"""
Chat Logging Utilities

Shared logging helpers with per-module feature flags.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


def should_log_feature(module: str, feature: str) -> bool:
    """
    Check if a specific logging feature should be enabled.

    Feature flags are installed on the logging module by
    ``sopchat.application.configure_logging``.
    """
    if hasattr(logging, "_module_features"):
        module_features = getattr(logging, "_module_features", {}).get(module, {})
        return module_features.get(feature, False)
    return False


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def log_llm_reply(
    content: str, tool_calls: list[dict[str, Any]], model: str, context: str, chat_conf: dict[str, Any]
) -> None:
    """
    Log an LLM reply when the ``chat.llm_replies`` feature is on.

    Args:
        content: Accumulated reply text
        tool_calls: Tool calls in API shape
        model: Model that produced the reply
        context: Descriptive context for the log entry
        chat_conf: Chat service configuration containing logging settings
    """
    if not should_log_feature("chat", "llm_replies"):
        return

    truncate_length = chat_conf.get("logging", {}).get("llm_reply", 500)
    log_parts = [f"LLM Reply ({context}):"]
    if content:
        log_parts.append(f"Content: {_truncate(content, truncate_length)}")
    if tool_calls:
        log_parts.append(f"Tool calls: {len(tool_calls)}")
        for i, call in enumerate(tool_calls):
            name = call.get("function", {}).get("name", "unknown")
            log_parts.append(f"  [{i}] {name}")
    log_parts.append(f"Model: {model}")

    logger.info(" | ".join(log_parts))


def log_tool_execution_start(tool_name: str, call_index: int = 0, total_calls: int = 1) -> None:
    """
    Log the start of tool execution with consistent formatting.

    Args:
        tool_name: Name of the tool being executed
        call_index: Index of current call (0-based)
        total_calls: Total number of calls in the turn
    """
    if total_calls > 1:
        logger.info("→ Tool[%s]: executing tool call %d/%d", tool_name, call_index + 1, total_calls)
    else:
        logger.info("→ Tool[%s]: executing tool", tool_name)


def log_tool_execution_success(tool_name: str, content_length: int) -> None:
    logger.info("← Tool[%s]: success, content length: %d", tool_name, content_length)


def log_tool_execution_error(tool_name: str, error_msg: str) -> None:
    logger.error("← Tool[%s]: failed with error: %s", tool_name, error_msg)


def log_tool_args_error(tool_name: str, error: Exception) -> None:
    """
    Log malformed tool arguments.

    Args:
        tool_name: Name of the tool with malformed arguments
        error: The JSON decode or validation error
    """
    logger.error("Malformed JSON arguments for %s: %s", tool_name, error)


def log_tool_arguments(
    tool_name: str, arguments: dict[str, Any], context: str, truncate_length: int = 500
) -> None:
    """Log tool arguments when the ``chat.tool_arguments`` feature is on."""
    if not should_log_feature("chat", "tool_arguments"):
        return
    logger.info("→ Tool[%s]: arguments (%s): %s", tool_name, context, _truncate(str(arguments), truncate_length))


def log_tool_results(tool_name: str, results: Any, context: str, truncate_length: int = 200) -> None:
    """Log tool results when the ``chat.tool_results`` feature is on."""
    if not should_log_feature("chat", "tool_results"):
        return
    logger.info("← Tool[%s]: results (%s): %s", tool_name, context, _truncate(str(results), truncate_length))


def log_step_transition(chat_id: int, previous_step: str, next_step: str) -> None:
    logger.info("↪ Step: chat %d moved %s → %s", chat_id, previous_step, next_step)
