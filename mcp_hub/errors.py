"""Error taxonomy for the MCP hub core.

Every error carries a numeric code whose range determines its category:

- 1xxx: configuration
- 2xxx: connection
- 3xxx: runtime
- 4xxx: validation
- 5xxx: system

Template failures are raised internally as TemplateError but are converted
to a TemplateRenderResult at the render boundary, so callers of the engine
never see them.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any


class ErrorCategory(str, Enum):
    CONFIGURATION = "configuration"
    CONNECTION = "connection"
    RUNTIME = "runtime"
    VALIDATION = "validation"
    SYSTEM = "system"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode(IntEnum):
    # Configuration
    INVALID_SERVER_CONFIG = 1001
    MISSING_GROUP_REFERENCE = 1002
    SCHEMA_VALIDATION_FAILED = 1003
    CONFIG_FILE_NOT_FOUND = 1004
    INVALID_CONFIG_FORMAT = 1005

    # Connection
    SERVER_STARTUP_FAILED = 2001
    NETWORK_CONNECTIVITY_FAILED = 2002
    SERVER_UNAVAILABLE = 2004
    CONNECTION_TIMEOUT = 2005
    CONNECTION_REFUSED = 2006

    # Runtime
    TOOL_EXECUTION_FAILED = 3001
    SERVER_DISCONNECTED = 3002
    INVALID_TOOL_ARGUMENTS = 3003
    TOOL_NOT_FOUND = 3004
    GROUP_NOT_FOUND = 3005
    SERVICE_UNAVAILABLE = 3007
    SERVICE_NOT_INITIALIZED = 3008
    SERVER_NOT_FOUND = 3009
    INITIALIZATION_FAILED = 3010
    NOT_YET_AVAILABLE = 3011
    RESPONSE_PROCESSING_FAILED = 3012

    # Validation
    INVALID_REQUEST_FORMAT = 4001
    MISSING_REQUIRED_PARAMETER = 4002
    PARAMETER_TYPE_MISMATCH = 4003
    INVALID_PARAMETER_VALUE = 4004
    TEMPLATE_SYNTAX_ERROR = 4005
    INVALID_VARIABLE_PATH = 4006

    # System
    INTERNAL_SERVER_ERROR = 5001
    TIMEOUT_ERROR = 5003
    UNKNOWN_ERROR = 5999

    @property
    def category(self) -> ErrorCategory:
        if self < 2000:
            return ErrorCategory.CONFIGURATION
        if self < 3000:
            return ErrorCategory.CONNECTION
        if self < 4000:
            return ErrorCategory.RUNTIME
        if self < 5000:
            return ErrorCategory.VALIDATION
        return ErrorCategory.SYSTEM


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_SERVER_CONFIG: "Invalid server configuration",
    ErrorCode.MISSING_GROUP_REFERENCE: "Group references an unknown server",
    ErrorCode.SCHEMA_VALIDATION_FAILED: "Configuration schema validation failed",
    ErrorCode.CONFIG_FILE_NOT_FOUND: "Configuration file not found",
    ErrorCode.INVALID_CONFIG_FORMAT: "Invalid configuration file format",
    ErrorCode.SERVER_STARTUP_FAILED: "Server failed to start",
    ErrorCode.NETWORK_CONNECTIVITY_FAILED: "Network connectivity failed",
    ErrorCode.SERVER_UNAVAILABLE: "Server unavailable",
    ErrorCode.CONNECTION_TIMEOUT: "Connection timed out",
    ErrorCode.CONNECTION_REFUSED: "Connection refused",
    ErrorCode.TOOL_EXECUTION_FAILED: "Tool execution failed",
    ErrorCode.SERVER_DISCONNECTED: "Server disconnected",
    ErrorCode.INVALID_TOOL_ARGUMENTS: "Invalid tool arguments",
    ErrorCode.TOOL_NOT_FOUND: "Tool not found",
    ErrorCode.GROUP_NOT_FOUND: "Group not found",
    ErrorCode.SERVICE_UNAVAILABLE: "Service unavailable",
    ErrorCode.SERVICE_NOT_INITIALIZED: "Service must be initialized before use",
    ErrorCode.SERVER_NOT_FOUND: "Server not found",
    ErrorCode.INITIALIZATION_FAILED: "Service initialization failed",
    ErrorCode.NOT_YET_AVAILABLE: "Implementation not yet available",
    ErrorCode.RESPONSE_PROCESSING_FAILED: "Response processing failed",
    ErrorCode.INVALID_REQUEST_FORMAT: "Invalid request format",
    ErrorCode.MISSING_REQUIRED_PARAMETER: "Missing required parameter",
    ErrorCode.PARAMETER_TYPE_MISMATCH: "Parameter type mismatch",
    ErrorCode.INVALID_PARAMETER_VALUE: "Invalid parameter value",
    ErrorCode.TEMPLATE_SYNTAX_ERROR: "Template syntax error",
    ErrorCode.INVALID_VARIABLE_PATH: "Invalid variable path",
    ErrorCode.INTERNAL_SERVER_ERROR: "Internal server error",
    ErrorCode.TIMEOUT_ERROR: "Operation timed out",
    ErrorCode.UNKNOWN_ERROR: "Unknown error",
}

ERROR_SEVERITY: dict[ErrorCode, ErrorSeverity] = {
    ErrorCode.SERVER_STARTUP_FAILED: ErrorSeverity.CRITICAL,
    ErrorCode.INITIALIZATION_FAILED: ErrorSeverity.CRITICAL,
    ErrorCode.INVALID_SERVER_CONFIG: ErrorSeverity.HIGH,
    ErrorCode.SCHEMA_VALIDATION_FAILED: ErrorSeverity.HIGH,
    ErrorCode.CONFIG_FILE_NOT_FOUND: ErrorSeverity.HIGH,
    ErrorCode.INVALID_CONFIG_FORMAT: ErrorSeverity.HIGH,
    ErrorCode.NETWORK_CONNECTIVITY_FAILED: ErrorSeverity.HIGH,
    ErrorCode.INVALID_REQUEST_FORMAT: ErrorSeverity.LOW,
    ErrorCode.MISSING_REQUIRED_PARAMETER: ErrorSeverity.LOW,
    ErrorCode.PARAMETER_TYPE_MISMATCH: ErrorSeverity.LOW,
    ErrorCode.INVALID_PARAMETER_VALUE: ErrorSeverity.LOW,
    ErrorCode.TEMPLATE_SYNTAX_ERROR: ErrorSeverity.LOW,
    ErrorCode.INVALID_VARIABLE_PATH: ErrorSeverity.LOW,
    ErrorCode.TOOL_NOT_FOUND: ErrorSeverity.LOW,
    ErrorCode.INVALID_TOOL_ARGUMENTS: ErrorSeverity.LOW,
}


class McpHubError(Exception):
    """Base class for all errors raised by the hub core."""

    default_code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str | None = None,
        code: ErrorCode | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.code = code if code is not None else self.default_code
        self.message = message or ERROR_MESSAGES.get(self.code, "Unknown error")
        self.context = context or {}
        super().__init__(self.message)

    @property
    def category(self) -> ErrorCategory:
        return self.code.category

    @property
    def severity(self) -> ErrorSeverity:
        return ERROR_SEVERITY.get(self.code, ErrorSeverity.MEDIUM)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "error": type(self).__name__,
            "code": int(self.code),
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "context": self.context,
        }


class ConfigError(McpHubError):
    default_code = ErrorCode.INVALID_SERVER_CONFIG


class TemplateError(McpHubError):
    """Raised inside the template engine; never crosses the render boundary."""

    default_code = ErrorCode.TEMPLATE_SYNTAX_ERROR


class UpstreamConnectionError(McpHubError):
    """Timeout, refusal or transient network failure talking to a server."""

    default_code = ErrorCode.NETWORK_CONNECTIVITY_FAILED


class ServerFailedError(UpstreamConnectionError):
    """A server exhausted its retries and sits in the terminal failed state."""

    default_code = ErrorCode.SERVER_UNAVAILABLE

    def __init__(self, server_id: str, reason: str | None = None, attempts: int = 0):
        message = f"Server '{server_id}' is in failed state"
        if reason:
            message += f": {reason}"
        super().__init__(
            message,
            context={"server_id": server_id, "reason": reason, "attempts": attempts},
        )
        self.server_id = server_id
        self.reason = reason
        self.attempts = attempts


class McpServiceError(McpHubError):
    default_code = ErrorCode.SERVICE_UNAVAILABLE


class ResponseProcessingError(McpHubError):
    """A response extraction expression is invalid or matched nothing in strict mode."""

    default_code = ErrorCode.RESPONSE_PROCESSING_FAILED


class ServiceNotInitializedError(McpServiceError):
    default_code = ErrorCode.SERVICE_NOT_INITIALIZED


class ServerNotFoundError(McpServiceError):
    default_code = ErrorCode.SERVER_NOT_FOUND

    def __init__(self, server_id: str):
        super().__init__(f"Server '{server_id}' not found", context={"server_id": server_id})
        self.server_id = server_id


class ToolNotFoundError(McpServiceError):
    default_code = ErrorCode.TOOL_NOT_FOUND

    def __init__(self, tool_name: str, server_id: str | None = None):
        message = f"Tool '{tool_name}' not found"
        if server_id:
            message += f" on server '{server_id}'"
        super().__init__(message, context={"tool_name": tool_name, "server_id": server_id})
        self.tool_name = tool_name
        self.server_id = server_id


class NotYetAvailableError(McpHubError, NotImplementedError):
    """A requested service composition has no backing implementation."""

    default_code = ErrorCode.NOT_YET_AVAILABLE
    component: str = "component"

    def __init__(self, message: str | None = None):
        super().__init__(
            message or f"{self.component} implementation not yet available",
            context={"component": self.component},
        )


class GroupServiceUnavailableError(NotYetAvailableError):
    component = "GroupMcpService"


class CliAggregatorUnavailableError(NotYetAvailableError):
    component = "CliMcpAggregator"
