"""Configuration management for the SOP chat backend."""

from __future__ import annotations

import logging
import os
from typing import Any, cast

import yaml
from dotenv import load_dotenv

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.yaml")
OVERRIDE_CONFIG_ENV = "SOPCHAT_CONFIG"


class Configuration:
    """YAML-backed configuration with environment overrides for secrets and models."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self._default_config = self._load_yaml_config(config_path or DEFAULT_CONFIG_PATH)

        override_path = os.getenv(OVERRIDE_CONFIG_ENV)
        if override_path:
            override = self._load_yaml_config(override_path)
            self._current_config = self._deep_merge(self._default_config, override)
            logging.info("Applied configuration overrides from %s", override_path)
        else:
            self._current_config = self._default_config

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(config_path: str) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError("Configuration file must contain a dictionary")
            return cast(dict[str, Any], config)

    def _deep_merge(
        self, base: dict[str, Any], override: dict[str, Any]
    ) -> dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._deep_merge(
                    cast(dict[str, Any], result[key]), cast(dict[str, Any], value)
                )
            else:
                result[key] = value

        return result

    def _get_current_config(self) -> dict[str, Any]:
        return self._current_config

    def _get_config_value(self, path: list[str], default: Any = None) -> Any:
        """Get a configuration value by path."""
        current: Any = self._get_current_config()
        for key in path:
            if isinstance(current, dict) and key in current:
                current = current[key]  # type: ignore[assignment]
            else:
                return default
        return current  # type: ignore[return-value]

    @property
    def llm_api_key(self) -> str:
        """Get the API key for the active LLM provider.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        llm_config = self._get_current_config().get("llm", {})
        active_provider = llm_config.get("active", "openai")

        # Map provider names to environment variable names
        provider_key_map = {
            "openai": "OPENAI_API_KEY",
            "groq": "GROQ_API_KEY",
            "openrouter": "OPENROUTER_API_KEY",
        }

        env_key = provider_key_map.get(active_provider)
        if not env_key:
            raise ValueError(
                f"Unknown provider '{active_provider}' - no API key mapping found"
            )

        api_key = os.getenv(env_key)
        if not api_key:
            raise ValueError(
                f"API key '{env_key}' not found in environment variables "
                f"for provider '{active_provider}'"
            )

        return api_key

    def get_llm_config(self) -> dict[str, Any]:
        """Get active LLM provider configuration from YAML.

        Returns:
            Active LLM provider configuration dictionary.
        """
        llm_config = self._get_current_config().get("llm", {})
        active_provider = llm_config.get("active", "openai")
        providers = llm_config.get("providers", {})

        if active_provider not in providers:
            raise ValueError(
                f"Active provider '{active_provider}' not found in providers config"
            )

        return providers[active_provider]

    def get_model(self) -> str:
        """Model used for the main conversation. ``MODEL`` env var wins."""
        return os.getenv("MODEL") or self.get_llm_config().get("model", "gpt-5-nano")

    def get_cheap_model(self) -> str:
        """Model used for chat titles. ``CHEAP_MODEL`` env var wins."""
        return (
            os.getenv("CHEAP_MODEL")
            or self.get_title_config().get("model")
            or self.get_model()
        )

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._get_current_config().get("logging", {})

    def get_chat_service_config(self) -> dict[str, Any]:
        """Get chat service configuration from YAML."""
        return self._get_current_config().get("chat", {}).get("service", {})

    def get_chat_storage_config(self) -> dict[str, Any]:
        """Get chat storage configuration from YAML."""
        return self._get_current_config().get("chat", {}).get("storage", {})

    def get_step_manager_config(self) -> dict[str, Any]:
        """Get step manager configuration from YAML."""
        return self._get_current_config().get("chat", {}).get("step_manager", {})

    def get_title_config(self) -> dict[str, Any]:
        """Get chat title generation configuration from YAML."""
        return self._get_current_config().get("chat", {}).get("title", {})

    def get_sop_start_command(self) -> str:
        return self._get_config_value(
            ["chat", "service", "sop_start_command"], "[SOP_START]"
        )

    def get_connection_pool_config(self) -> dict[str, Any]:
        """Get HTTP connection pool configuration with validated defaults."""
        pool_config = self._get_config_value(["llm", "connection_pool"], {}) or {}

        max_connections = pool_config.get("max_connections", 20)
        max_keepalive = pool_config.get("max_keepalive_connections", 10)
        keepalive_expiry = pool_config.get("keepalive_expiry_seconds", 30.0)
        request_timeout = pool_config.get("request_timeout_seconds", 60.0)

        if max_connections < 1:
            raise ValueError("max_connections must be at least 1")
        if max_keepalive < 0 or max_keepalive > max_connections:
            raise ValueError(
                "max_keepalive_connections must be between 0 and max_connections"
            )
        if keepalive_expiry <= 0:
            raise ValueError("keepalive_expiry_seconds must be positive")
        if request_timeout <= 0:
            raise ValueError("request_timeout_seconds must be positive")

        return {
            "max_connections": max_connections,
            "max_keepalive_connections": max_keepalive,
            "keepalive_expiry_seconds": keepalive_expiry,
            "request_timeout_seconds": request_timeout,
        }
