#!/usr/bin/env python3
"""
Tests for YAML configuration, environment overrides and logging setup.
"""

import logging
import os
import tempfile

import pytest
import yaml

from sopchat.application import configure_logging
from sopchat.chat.logging_utils import should_log_feature
from sopchat.config import OVERRIDE_CONFIG_ENV, Configuration


def write_yaml(data):
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(data, f)
        return f.name


def test_defaults():
    print("Testing default configuration...")
    config = Configuration()
    assert config.get_sop_start_command() == "[SOP_START]"
    assert config.get_chat_service_config()["document_tool"] == "write_document"
    assert config.get_chat_storage_config()["type"] == "sqlite"
    assert config.get_step_manager_config()["recent_messages"] == 6
    assert config.get_title_config()["max_length"] == 80
    assert config.get_llm_config()["base_url"].startswith("https://")

    pool = config.get_connection_pool_config()
    assert pool["max_keepalive_connections"] <= pool["max_connections"]


def test_override_file_is_deep_merged():
    print("Testing configuration overrides...")
    path = write_yaml({"chat": {"storage": {"type": "memory"}, "title": {"enabled": False}}})
    previous = os.environ.get(OVERRIDE_CONFIG_ENV)
    os.environ[OVERRIDE_CONFIG_ENV] = path
    try:
        config = Configuration()
        assert config.get_chat_storage_config()["type"] == "memory"
        # Sibling keys survive the merge
        assert config.get_chat_storage_config()["db_path"] == "chat.db"
        assert config.get_title_config()["enabled"] is False
        assert config.get_title_config()["max_length"] == 80
    finally:
        if previous is None:
            del os.environ[OVERRIDE_CONFIG_ENV]
        else:
            os.environ[OVERRIDE_CONFIG_ENV] = previous
        os.unlink(path)


def test_model_environment_overrides():
    previous = {key: os.environ.get(key) for key in ("MODEL", "CHEAP_MODEL")}
    os.environ["MODEL"] = "env-model"
    os.environ["CHEAP_MODEL"] = "env-cheap"
    try:
        config = Configuration()
        assert config.get_model() == "env-model"
        assert config.get_cheap_model() == "env-cheap"
    finally:
        for key, value in previous.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value


def test_missing_api_key_is_reported():
    path = write_yaml({"llm": {"active": "groq"}})
    previous = {key: os.environ.get(key) for key in (OVERRIDE_CONFIG_ENV, "GROQ_API_KEY")}
    os.environ[OVERRIDE_CONFIG_ENV] = path
    os.environ.pop("GROQ_API_KEY", None)
    try:
        config = Configuration()
        with pytest.raises(ValueError, match="GROQ_API_KEY"):
            _ = config.llm_api_key
    finally:
        for key, value in previous.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        os.unlink(path)


def test_invalid_pool_settings_rejected():
    path = write_yaml({"llm": {"connection_pool": {"max_connections": 2, "max_keepalive_connections": 5}}})
    previous = os.environ.get(OVERRIDE_CONFIG_ENV)
    os.environ[OVERRIDE_CONFIG_ENV] = path
    try:
        with pytest.raises(ValueError, match="max_keepalive_connections"):
            Configuration().get_connection_pool_config()
    finally:
        if previous is None:
            del os.environ[OVERRIDE_CONFIG_ENV]
        else:
            os.environ[OVERRIDE_CONFIG_ENV] = previous
        os.unlink(path)


def test_configure_logging_sets_levels_and_features():
    print("Testing logging configuration...")
    configure_logging(
        {
            "level": "WARNING",
            "modules": {
                "chat": {"level": "DEBUG", "enable_features": {"tool_results": True, "llm_replies": False}},
                "history": {"level": "ERROR"},
            },
        }
    )
    assert logging.getLogger("sopchat.chat").level == logging.DEBUG
    assert logging.getLogger("sopchat.history").level == logging.ERROR
    assert should_log_feature("chat", "tool_results") is True
    assert should_log_feature("chat", "llm_replies") is False
    assert should_log_feature("history", "anything") is False


if __name__ == "__main__":
    test_defaults()
    test_override_file_is_deep_merged()
    test_model_environment_overrides()
    test_missing_api_key_is_reported()
    test_invalid_pool_settings_rejected()
    test_configure_logging_sets_levels_and_features()
    print("✅ Configuration tests passed!")
