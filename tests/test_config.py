"""Tests for configuration loading and validation."""

import pytest
import yaml

from mcp_hub.config import (
    apply_env_overrides,
    config_to_yaml,
    load_config,
    parse_config,
    save_config,
    validate_group_references,
)
from mcp_hub.errors import ConfigError, ErrorCode
from mcp_hub.models import McpServerConfig

SAMPLE = {
    "servers": {
        "weather": {
            "base_url": "https://weather.test",
            "env": {"API_KEY": "secret"},
            "connection": {"timeout": 10, "max_retries": 2, "heartbeat_interval": 30},
            "tools": [
                {
                    "name": "get_weather",
                    "parameters": [{"name": "city", "required": True}],
                    "endpoint": {"url": "/weather", "method": "get", "query_params": {"q": "{{data.city}}"}},
                }
            ],
        }
    },
    "groups": {"public": {"name": "Public", "servers": ["weather"]}},
    "settings": {"log_level": "debug"},
}


class TestParseConfig:
    """Tests for parse_config."""

    def test_full_config(self):
        config = parse_config(SAMPLE)
        server = config.servers["weather"]
        assert server.connection.max_retries == 2
        assert server.connection.retry_interval == 1.0
        assert server.tools[0].endpoint.method == "GET"
        assert config.groups["public"].servers == ["weather"]
        assert config.settings.log_level == "debug"

    def test_none_is_empty(self):
        config = parse_config(None)
        assert config.servers == {}
        assert config.settings.log_level == "info"

    def test_model_passes_through(self):
        config = McpServerConfig()
        assert parse_config(config) is config

    def test_non_mapping(self):
        with pytest.raises(ConfigError) as exc_info:
            parse_config(["not", "a", "mapping"])
        assert exc_info.value.code is ErrorCode.INVALID_CONFIG_FORMAT

    def test_schema_violation(self):
        with pytest.raises(ConfigError) as exc_info:
            parse_config({"servers": {"x": {"connection": {"timeout": -1}}}})
        assert exc_info.value.code is ErrorCode.SCHEMA_VALIDATION_FAILED
        assert exc_info.value.context["errors"]

    def test_unknown_method(self):
        with pytest.raises(ConfigError):
            parse_config({"servers": {"x": {"tools": [{"name": "t", "endpoint": {"url": "/", "method": "FETCH"}}]}}})


class TestEnvOverrides:
    """Tests for apply_env_overrides."""

    def test_no_overrides_returns_same_config(self):
        config = parse_config(SAMPLE)
        assert apply_env_overrides(config, env={}) is config

    def test_overrides(self):
        config = apply_env_overrides(
            parse_config(SAMPLE),
            env={"MCP_HUB_LOG_LEVEL": "ERROR", "MCP_HUB_CONNECTION_TIMEOUT": "2.5"},
        )
        assert config.settings.log_level == "error"
        assert config.settings.connection_timeout == 2.5

    def test_bad_timeout(self):
        with pytest.raises(ConfigError, match="must be a number"):
            apply_env_overrides(McpServerConfig(), env={"MCP_HUB_CONNECTION_TIMEOUT": "soon"})

    def test_bad_log_level(self):
        with pytest.raises(ConfigError) as exc_info:
            apply_env_overrides(McpServerConfig(), env={"MCP_HUB_LOG_LEVEL": "loud"})
        assert exc_info.value.code is ErrorCode.SCHEMA_VALIDATION_FAILED


class TestGroupReferences:
    """Tests for validate_group_references."""

    def test_valid(self):
        assert validate_group_references(parse_config(SAMPLE)) == []

    def test_unknown_server(self):
        config = parse_config({"groups": {"g": {"name": "G", "servers": ["ghost"]}}})
        assert validate_group_references(config) == ["Group 'g' references unknown server 'ghost'"]


class TestLoadAndSave:
    """Tests for YAML files."""

    def test_load(self, tmp_path):
        path = tmp_path / "hub.yaml"
        path.write_text(yaml.dump(SAMPLE))
        config = load_config(path, env={})
        assert list(config.servers) == ["weather"]

    def test_load_applies_env(self, tmp_path):
        path = tmp_path / "hub.yaml"
        path.write_text(yaml.dump(SAMPLE))
        config = load_config(path, env={"MCP_HUB_CONNECTION_TIMEOUT": "3"})
        assert config.settings.connection_timeout == 3.0

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path, env={}).servers == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "nope.yaml")
        assert exc_info.value.code is ErrorCode.CONFIG_FILE_NOT_FOUND

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("servers: [unclosed")
        with pytest.raises(ConfigError) as exc_info:
            load_config(path, env={})
        assert exc_info.value.code is ErrorCode.INVALID_CONFIG_FORMAT

    def test_save_then_load(self, tmp_path):
        config = parse_config(SAMPLE)
        path = save_config(config, tmp_path / "nested" / "hub.yaml")
        assert path.exists()
        assert load_config(path, env={}) == config

    def test_yaml_omits_unset_values(self):
        text = config_to_yaml(parse_config({"servers": {"local": {}}}))
        assert "base_url" not in text
        assert "local" in text
