from __future__ import annotations

import logging
import os
import sys
from typing import Mapping

ROOT_LOGGER_NAME = "mcp_hub"

_DEBUG_FLAGS = ("MCP_HUB_DEBUG", "DEBUG")
_QUIET_ENV_MARKERS = ("PYTEST_CURRENT_TEST", "CI")
_TRUTHY = {"1", "true", "yes", "on"}


def _flag_set(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in _TRUTHY


def resolve_log_level(level: str | int | None = None, env: Mapping[str, str] | None = None) -> int:
    """Pick the effective log level.

    Order: explicit argument, MCP_HUB_LOG_LEVEL, then INFO. Under test or CI
    (PYTEST_CURRENT_TEST / CI set) non-error output is silenced unless one of
    the debug flags is set; debug flags always force DEBUG.
    """
    env = os.environ if env is None else env

    if any(_flag_set(env, name) for name in _DEBUG_FLAGS):
        return logging.DEBUG

    if any(env.get(name) for name in _QUIET_ENV_MARKERS):
        return logging.ERROR

    if level is None:
        level = env.get("MCP_HUB_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: str | int | None = None) -> logging.Logger:
    """Configure the package logger with a stderr handler.

    Idempotent: calling multiple times won't add duplicate handlers. stdout is
    left alone because the stdio MCP transport owns it.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(resolve_log_level(level))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logger.addHandler(handler)

    return logger


def get_logger(component: str | None = None) -> logging.Logger:
    """Helper to get a component logger under the package namespace."""
    if not component:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")


class NullLogger(logging.Logger):
    """Logger that drops every record; inject where output must stay silent."""

    def __init__(self, name: str = "null"):
        super().__init__(name, level=logging.CRITICAL + 1)
        self.addHandler(logging.NullHandler())
        self.propagate = False

    def isEnabledFor(self, level: int) -> bool:
        return False
