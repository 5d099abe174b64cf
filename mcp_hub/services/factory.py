"""Service factory.

Builds the service variants that exist and refuses the ones that do not:

    ServiceKind.CORE   -> CoreService
    ServiceKind.GROUP  -> GroupMcpService (not yet available)
    ServiceKind.CLI    -> CliMcpAggregator (not yet available)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, Callable, Protocol, runtime_checkable

import httpx

from ..connection import ConnectionManager, Connector
from ..errors import CliAggregatorUnavailableError, GroupServiceUnavailableError
from ..models import GroupConfig, McpServerConfig, ToolInfo, ToolResult
from ..monitoring import PerformanceMonitor
from ..templates import TemplateEngine
from .core import CoreService
from .executor import ApiExecutor


class ServiceKind(str, Enum):
    CORE = "core"
    GROUP = "group"
    CLI = "cli"

    @property
    def is_constructible(self) -> bool:
        return self is ServiceKind.CORE


@runtime_checkable
class GroupMcpService(Protocol):
    """Tools of one group of servers, exposed as a single service."""

    async def initialize(self, group_config: GroupConfig) -> None: ...

    async def list_tools(self) -> list[ToolInfo]: ...

    async def call_tool(self, tool_name: str, args: Mapping[str, Any]) -> ToolResult: ...

    async def shutdown(self) -> None: ...


@runtime_checkable
class CliMcpAggregator(Protocol):
    """Every tool of every server, for command-line use."""

    async def get_all_tools(self) -> list[ToolInfo]: ...

    async def execute_tool_call(self, tool_name: str, args: Mapping[str, Any]) -> ToolResult: ...


class ServiceFactory:
    """Creates MCP services. Holds no state; one instance serves everyone."""

    def create_core_service(
        self,
        config: McpServerConfig | Mapping[str, Any] | None = None,
        *,
        connector: Connector | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> CoreService:
        """Create a Core Service with its own engine, connections and monitor.

        Args:
            config: Server configuration, as a model or a plain dict.
            connector: Connection check used instead of the HTTP health probe.
            transport: httpx transport for outbound tool calls.
            logger: Logger for the service itself.

        Returns:
            An uninitialized CoreService.
        """
        return CoreService(
            config,
            template_engine=TemplateEngine(),
            connections=ConnectionManager(connector=connector),
            monitor=PerformanceMonitor(),
            executor=ApiExecutor(transport=transport),
            logger=logger,
        )

    def create_group_service_wrapper(
        self, core_service: CoreService, group_config: GroupConfig | Mapping[str, Any]
    ) -> GroupMcpService:
        raise GroupServiceUnavailableError()

    def create_cli_aggregator(self, core_service: CoreService) -> CliMcpAggregator:
        raise CliAggregatorUnavailableError()

    def create(self, kind: ServiceKind | str, *args: Any, **kwargs: Any) -> Any:
        """Create a service by kind.

        Example:
            core = service_factory.create(ServiceKind.CORE, {"servers": {}})
            service_factory.create("group", core, group)  # raises
        """
        builders: dict[ServiceKind, Callable[..., Any]] = {
            ServiceKind.CORE: self.create_core_service,
            ServiceKind.GROUP: self.create_group_service_wrapper,
            ServiceKind.CLI: self.create_cli_aggregator,
        }
        return builders[ServiceKind(kind)](*args, **kwargs)


service_factory = ServiceFactory()
