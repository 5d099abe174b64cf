"""MCP Hub core: expose HTTP APIs as MCP tools.

This package turns configured API endpoints into tools an MCP client can
call:

- **Templates**: `{{data.x}}` / `{{env.X}}` placeholders in URLs, headers and bodies
- **Connections**: per-server connection lifecycle with retries and heartbeats
- **Monitoring**: call latency, error rate and percentile statistics
- **Services**: the Core Service that ties these together, plus the factory

Usage:
    from mcp_hub import service_factory

    core = service_factory.create_core_service({"servers": {...}})
    await core.initialize()

    result = await core.execute_tool_call("get_weather", {"city": "Oslo"})

    await core.shutdown()
"""

from .config import load_config, parse_config, save_config
from .connection import ConnectionManager
from .errors import (
    CliAggregatorUnavailableError,
    ConfigError,
    ErrorCode,
    GroupServiceUnavailableError,
    McpHubError,
    McpServiceError,
    NotYetAvailableError,
    ServerFailedError,
    ServerNotFoundError,
    ServiceNotInitializedError,
    ToolNotFoundError,
    UpstreamConnectionError,
)
from .models import (
    ConnectionConfig,
    ConnectionEvent,
    ConnectionState,
    ConnectionStatus,
    McpServerConfig,
    TemplateContext,
    TemplateRenderResult,
    ToolResult,
)
from .monitoring import PerformanceMonitor
from .services import CoreService, ServiceFactory, ServiceKind, service_factory
from .templates import HttpRequestBuilder, TemplateEngine

__version__ = "0.1.0"

__all__ = [
    # Services
    "CoreService",
    "ServiceFactory",
    "ServiceKind",
    "service_factory",
    # Components
    "TemplateEngine",
    "HttpRequestBuilder",
    "ConnectionManager",
    "PerformanceMonitor",
    # Config
    "load_config",
    "parse_config",
    "save_config",
    "McpServerConfig",
    "ConnectionConfig",
    # Values
    "ConnectionEvent",
    "ConnectionState",
    "ConnectionStatus",
    "TemplateContext",
    "TemplateRenderResult",
    "ToolResult",
    # Errors
    "ErrorCode",
    "McpHubError",
    "ConfigError",
    "UpstreamConnectionError",
    "ServerFailedError",
    "McpServiceError",
    "ServiceNotInitializedError",
    "ServerNotFoundError",
    "ToolNotFoundError",
    "NotYetAvailableError",
    "GroupServiceUnavailableError",
    "CliAggregatorUnavailableError",
]
