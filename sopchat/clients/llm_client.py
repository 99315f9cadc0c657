"""
LLM HTTP client for OpenAI-compatible chat completion APIs.

Streams completion deltas over SSE and performs non-streaming calls with
optional forced tool choice. Every upstream failure surfaces as ``McpError``.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncGenerator
from typing import Any

import httpx
from mcp import McpError, types

from sopchat.chat.models import (
    AssistantMessage,
    ChatCompletionMessage,
    CompletionDelta,
    LLMResponseData,
    ToolDefinition,
    message_to_dict,
)
from sopchat.config import Configuration

logger = logging.getLogger(__name__)

HTTP_OK = 200

# Provider config keys that are infrastructure, not request parameters
_EXCLUDED_PAYLOAD_KEYS = {"base_url", "model"}


def _upstream_error(message: str, code: int = types.INTERNAL_ERROR) -> McpError:
    return McpError(error=types.ErrorData(code=code, message=message))


class LLMClient:
    """Pooled HTTP/2 client for the active LLM provider."""

    def __init__(
        self,
        configuration: Configuration,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.configuration = configuration
        self.config: dict[str, Any] = configuration.get_llm_config()
        self.provider = self._detect_provider(self.config.get("base_url", ""))

        if http_client is not None:
            self.client = http_client
        else:
            pool = configuration.get_connection_pool_config()
            self.client = httpx.AsyncClient(
                base_url=self.config["base_url"],
                headers={
                    "Authorization": f"Bearer {configuration.llm_api_key}",
                    "Content-Type": "application/json",
                },
                timeout=pool["request_timeout_seconds"],
                http2=True,
                limits=httpx.Limits(
                    max_connections=pool["max_connections"],
                    max_keepalive_connections=pool["max_keepalive_connections"],
                    keepalive_expiry=pool["keepalive_expiry_seconds"],
                ),
                trust_env=False,
            )

        logger.info("LLM client initialized with provider: %s", self.provider)
        logger.info("Model: %s", self.config.get("model", "unknown"))

    def _detect_provider(self, base_url: str) -> str:
        """Detect provider from base URL for logging."""
        if "openai.com" in base_url:
            return "openai"
        if "groq.com" in base_url:
            return "groq"
        if "openrouter.ai" in base_url:
            return "openrouter"
        return "unknown"

    def _build_payload(
        self,
        model: str | None,
        messages: list[ChatCompletionMessage],
        tools: list[ToolDefinition] | None = None,
        stream: bool = False,
        tool_choice: dict[str, Any] | str | None = None,
    ) -> dict[str, Any]:
        """
        Build API payload, passing through the provider's extra parameters.

        ``model`` overrides the provider's configured model for this call.
        """
        payload: dict[str, Any] = {
            "model": model or self.config["model"],
            "messages": [message_to_dict(m) for m in messages],
        }
        if stream:
            payload["stream"] = True

        for key, value in self.config.items():
            if key not in _EXCLUDED_PAYLOAD_KEYS and value is not None:
                payload[key] = value

        if tools:
            payload["tools"] = [tool.model_dump(exclude_none=True) for tool in tools]
            if tool_choice is not None:
                payload["tool_choice"] = tool_choice

        return payload

    async def get_response_with_tools(
        self,
        messages: list[ChatCompletionMessage],
        tools: list[ToolDefinition] | None = None,
        model: str | None = None,
        tool_choice: dict[str, Any] | str | None = None,
    ) -> LLMResponseData:
        """Non-streaming completion. ``tool_choice`` can pin a single function."""
        payload = self._build_payload(model, messages, tools, stream=False, tool_choice=tool_choice)
        logger.debug("→ LLM: non-streaming request, model=%s", payload["model"])

        try:
            start_time = time.monotonic()
            response = await self.client.post("/chat/completions", json=payload)
            response.raise_for_status()
            result = response.json()
            logger.debug(
                "← LLM: %d in %.2fms", response.status_code, (time.monotonic() - start_time) * 1000
            )

            if not result.get("choices"):
                raise _upstream_error("No choices in API response", types.PARSE_ERROR)

            choice = result["choices"][0]
            return LLMResponseData(
                message=AssistantMessage.from_dict(choice["message"]),
                finish_reason=choice.get("finish_reason"),
                index=choice.get("index", 0),
                model=result.get("model", payload["model"]),
            )
        except McpError:
            raise
        except httpx.HTTPError as e:
            logger.error("HTTP error: %s", e)
            raise _upstream_error(f"HTTP error: {e!s}") from e
        except (KeyError, ValueError) as e:
            logger.error("Unexpected response format: %s", e)
            raise _upstream_error(f"Unexpected response format: {e!s}", types.PARSE_ERROR) from e

    async def stream_completion(
        self,
        model: str | None,
        messages: list[ChatCompletionMessage],
        tools: list[ToolDefinition] | None = None,
    ) -> AsyncGenerator[CompletionDelta]:
        """
        Stream completion deltas. The last delta carries ``finish_reason``.

        Raises:
            McpError: On HTTP failures, non-200 status, malformed chunks, or an
                empty stream.
        """
        payload = self._build_payload(
            model, messages, tools, stream=True, tool_choice="auto" if tools else None
        )
        logger.info("→ LLM: streaming request, model=%s, tools=%d", payload["model"], len(tools or []))

        try:
            async with self.client.stream(
                "POST",
                "/chat/completions",
                json=payload,
                headers={"Accept": "text/event-stream", "Accept-Encoding": "identity"},
            ) as response:
                if response.status_code != HTTP_OK:
                    error_text = await response.aread()
                    raise _upstream_error(
                        f"Streaming API error {response.status_code}: {error_text.decode(errors='replace')}"
                    )

                chunk_count = 0
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[5:].strip()
                    if data == "[DONE]":
                        break
                    try:
                        chunk: dict[str, Any] = json.loads(data)
                    except json.JSONDecodeError as e:
                        raise _upstream_error(
                            f"Invalid JSON in stream chunk: {e}", types.PARSE_ERROR
                        ) from e
                    if "choices" not in chunk:
                        continue
                    chunk_count += 1
                    delta = CompletionDelta.from_chunk(chunk)
                    yield delta
                    if delta.finish_reason:
                        break

                if chunk_count == 0:
                    raise _upstream_error("No streaming chunks received from API")
                logger.debug("← LLM: stream finished after %d chunks", chunk_count)
        except McpError:
            raise
        except httpx.HTTPError as e:
            logger.error("HTTP error during streaming: %s (%s)", e, type(e).__name__)
            raise _upstream_error(f"HTTP error: {e!s}") from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> LLMClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()
