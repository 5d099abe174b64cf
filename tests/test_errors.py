"""Tests for the error taxonomy and logging helpers."""

import logging

import pytest

from mcp_hub.errors import (
    ConfigError,
    ErrorCategory,
    ErrorCode,
    ErrorSeverity,
    McpHubError,
    ServerFailedError,
    ServerNotFoundError,
    ServiceNotInitializedError,
    ToolNotFoundError,
    UpstreamConnectionError,
)
from mcp_hub.logging_config import (
    ROOT_LOGGER_NAME,
    NullLogger,
    get_logger,
    resolve_log_level,
    setup_logging,
)


class TestErrorCode:
    """Tests for code ranges and categories."""

    @pytest.mark.parametrize(
        "code,category",
        [
            (ErrorCode.CONFIG_FILE_NOT_FOUND, ErrorCategory.CONFIGURATION),
            (ErrorCode.CONNECTION_TIMEOUT, ErrorCategory.CONNECTION),
            (ErrorCode.TOOL_NOT_FOUND, ErrorCategory.RUNTIME),
            (ErrorCode.MISSING_REQUIRED_PARAMETER, ErrorCategory.VALIDATION),
            (ErrorCode.UNKNOWN_ERROR, ErrorCategory.SYSTEM),
        ],
    )
    def test_category_from_range(self, code, category):
        assert code.category is category


class TestMcpHubError:
    """Tests for the base error and its subclasses."""

    def test_defaults(self):
        error = ServiceNotInitializedError()
        assert error.code is ErrorCode.SERVICE_NOT_INITIALIZED
        assert error.message == "Service must be initialized before use"
        assert str(error) == error.message
        assert error.context == {}

    def test_explicit_code(self):
        error = ConfigError("bad", ErrorCode.INVALID_CONFIG_FORMAT, context={"path": "x"})
        assert error.code is ErrorCode.INVALID_CONFIG_FORMAT
        assert error.severity is ErrorSeverity.HIGH
        assert error.category is ErrorCategory.CONFIGURATION

    def test_default_severity(self):
        assert McpHubError("x", ErrorCode.TIMEOUT_ERROR).severity is ErrorSeverity.MEDIUM

    def test_to_dict(self):
        d = ServerNotFoundError("api").to_dict()
        assert d == {
            "error": "ServerNotFoundError",
            "code": 3009,
            "category": "runtime",
            "severity": "medium",
            "message": "Server 'api' not found",
            "context": {"server_id": "api"},
        }

    def test_server_failed_error(self):
        error = ServerFailedError("api", "refused", attempts=4)
        assert isinstance(error, UpstreamConnectionError)
        assert str(error) == "Server 'api' is in failed state: refused"
        assert error.attempts == 4
        assert error.context["reason"] == "refused"

    def test_tool_not_found_message(self):
        assert str(ToolNotFoundError("t")) == "Tool 't' not found"
        assert str(ToolNotFoundError("t", "s")) == "Tool 't' not found on server 's'"


class TestResolveLogLevel:
    """Tests for resolve_log_level."""

    def test_default_info(self):
        assert resolve_log_level(env={}) == logging.INFO

    def test_explicit_level(self):
        assert resolve_log_level("warning", env={}) == logging.WARNING
        assert resolve_log_level("warn", env={}) == logging.WARNING
        assert resolve_log_level(logging.DEBUG, env={}) == logging.DEBUG

    def test_env_level(self):
        assert resolve_log_level(env={"MCP_HUB_LOG_LEVEL": "error"}) == logging.ERROR

    def test_unknown_name_falls_back(self):
        assert resolve_log_level("chatty", env={}) == logging.INFO

    def test_quiet_under_test(self):
        assert resolve_log_level("debug", env={"PYTEST_CURRENT_TEST": "x"}) == logging.ERROR
        assert resolve_log_level(env={"CI": "true"}) == logging.ERROR

    def test_debug_flag_wins(self):
        env = {"PYTEST_CURRENT_TEST": "x", "MCP_HUB_DEBUG": "1"}
        assert resolve_log_level("error", env=env) == logging.DEBUG
        assert resolve_log_level(env={"DEBUG": "true"}) == logging.DEBUG


class TestLoggers:
    """Tests for setup_logging, get_logger and NullLogger."""

    def test_get_logger_namespacing(self):
        assert get_logger().name == ROOT_LOGGER_NAME
        assert get_logger("core").name == f"{ROOT_LOGGER_NAME}.core"

    def test_setup_logging_is_idempotent(self):
        logger = setup_logging()
        count = len(logger.handlers)
        setup_logging()
        assert len(logger.handlers) == count

    def test_null_logger_discards(self):
        logger = NullLogger()
        assert logger.isEnabledFor(logging.CRITICAL) is False
        logger.error("dropped")
        assert logger.propagate is False
