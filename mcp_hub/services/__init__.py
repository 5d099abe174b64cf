"""MCP services built on the template engine, connections and monitor."""

from .arguments import ArgumentCheck, ArgumentIssue, check_arguments
from .core import CoreService, tool_infos
from .executor import ApiExecutor, ApiResponse, ResponseCache
from .factory import (
    CliMcpAggregator,
    GroupMcpService,
    ServiceFactory,
    ServiceKind,
    service_factory,
)
from .response import ResponseProcessor

__all__ = [
    "CoreService",
    "tool_infos",
    "ApiExecutor",
    "ApiResponse",
    "ResponseCache",
    "CliMcpAggregator",
    "GroupMcpService",
    "ServiceFactory",
    "ServiceKind",
    "service_factory",
    "ArgumentCheck",
    "ArgumentIssue",
    "check_arguments",
    "ResponseProcessor",
]
