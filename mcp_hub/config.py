"""Loading and saving hub configuration as YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from .errors import ConfigError, ErrorCode
from .models import GlobalSettings, McpServerConfig


def parse_config(data: Mapping[str, Any] | McpServerConfig | None) -> McpServerConfig:
    """Validate a raw mapping into an McpServerConfig.

    Raises:
        ConfigError: if the mapping does not match the schema.
    """
    if isinstance(data, McpServerConfig):
        return data
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigError(
            f"Configuration must be a mapping, got {type(data).__name__}",
            ErrorCode.INVALID_CONFIG_FORMAT,
        )
    try:
        return McpServerConfig.model_validate(dict(data))
    except ValidationError as e:
        raise ConfigError(
            f"Configuration schema validation failed: {e.error_count()} error(s)",
            ErrorCode.SCHEMA_VALIDATION_FAILED,
            context={"errors": e.errors(include_url=False)},
        ) from e


def apply_env_overrides(
    config: McpServerConfig, env: Mapping[str, str] | None = None
) -> McpServerConfig:
    """Apply MCP_HUB_* environment overrides on top of a loaded config."""
    env = os.environ if env is None else env
    updates: dict[str, Any] = {}

    log_level = env.get("MCP_HUB_LOG_LEVEL")
    if log_level:
        updates["log_level"] = log_level.lower()

    timeout = env.get("MCP_HUB_CONNECTION_TIMEOUT")
    if timeout:
        try:
            updates["connection_timeout"] = float(timeout)
        except ValueError as e:
            raise ConfigError(
                f"MCP_HUB_CONNECTION_TIMEOUT must be a number, got {timeout!r}",
                ErrorCode.INVALID_CONFIG_FORMAT,
            ) from e

    if not updates:
        return config

    try:
        settings = GlobalSettings.model_validate({**config.settings.model_dump(), **updates})
    except ValidationError as e:
        raise ConfigError(
            f"Invalid environment override: {e.errors(include_url=False)[0]['msg']}",
            ErrorCode.SCHEMA_VALIDATION_FAILED,
        ) from e
    return config.model_copy(update={"settings": settings})


def validate_group_references(config: McpServerConfig) -> list[str]:
    """Return one message per group entry that names an unknown server."""
    problems = []
    for group_id, group in config.groups.items():
        for server_id in group.servers:
            if server_id not in config.servers:
                problems.append(f"Group '{group_id}' references unknown server '{server_id}'")
    return problems


def load_config(path: str | Path, env: Mapping[str, str] | None = None) -> McpServerConfig:
    """Load a YAML config file and apply environment overrides."""
    path = Path(path)
    if not path.is_file():
        raise ConfigError(
            f"Configuration file not found: {path}",
            ErrorCode.CONFIG_FILE_NOT_FOUND,
            context={"path": str(path)},
        )

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML in {path}: {e}",
            ErrorCode.INVALID_CONFIG_FORMAT,
            context={"path": str(path)},
        ) from e

    return apply_env_overrides(parse_config(data), env)


def config_to_yaml(config: McpServerConfig) -> str:
    """Serialize to YAML string."""
    return yaml.dump(
        config.model_dump(mode="json", exclude_none=True),
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )


def save_config(config: McpServerConfig, path: str | Path) -> Path:
    """Save to a YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(config_to_yaml(config))
    return path
