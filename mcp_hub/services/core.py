"""Core MCP service: turns configured API endpoints into callable tools.

The core service composes the template engine, connection manager,
performance monitor and API executor. A tool call goes:

1. find the tool and the server that owns it
2. refuse the call while the monitor's error rate is over threshold
3. make sure the server is connected (waiting in the queue meanwhile)
4. check and coerce the arguments against the declared parameters
5. render the endpoint templates against the call arguments
6. execute the request, recording timing and outcome
7. reshape the response body with the tool's JSONPath response config
8. return a ToolResult
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Mapping
from datetime import datetime
from typing import Any

import httpx

from ..config import parse_config
from ..connection import ConnectionManager
from ..errors import (
    ErrorCode,
    McpServiceError,
    ResponseProcessingError,
    ServerNotFoundError,
    ServiceNotInitializedError,
    ToolNotFoundError,
)
from ..logging_config import get_logger
from ..models import (
    ApiToolConfig,
    CallOutcome,
    McpServerConfig,
    ServerConfig,
    ServiceStatus,
    TemplateContext,
    ToolInfo,
    ToolResult,
)
from ..monitoring import PerformanceMonitor
from ..templates import HttpRequestBuilder, TemplateEngine
from .arguments import check_arguments
from .executor import ApiExecutor, ApiResponse
from .response import ResponseProcessor


def tool_infos(server_id: str, server_config: ServerConfig) -> list[ToolInfo]:
    """Describe the tools a server config declares."""
    return [
        ToolInfo(
            name=tool.name,
            description=tool.description,
            parameters=list(tool.parameters),
            server_id=server_id,
        )
        for tool in server_config.tools
    ]


class CoreService:
    """The always-constructible service: template engine + connections + monitor.

    Servers from the config are registered on construction but not
    connected; initialize() connects them.

    Example:
        service = CoreService(config)
        await service.initialize()

        result = await service.execute_tool_call("get_weather", {"city": "Oslo"})
        if result.success:
            print(result.data)

        await service.shutdown()
    """

    def __init__(
        self,
        config: McpServerConfig | Mapping[str, Any] | None = None,
        *,
        template_engine: TemplateEngine | None = None,
        connections: ConnectionManager | None = None,
        monitor: PerformanceMonitor | None = None,
        executor: ApiExecutor | None = None,
        logger: logging.Logger | None = None,
    ):
        self.config = parse_config(config)
        self.logger = logger or get_logger("core")
        self.template_engine = template_engine or TemplateEngine()
        self.request_builder = HttpRequestBuilder(self.template_engine)
        self.connections = connections or ConnectionManager()
        self.monitor = monitor or PerformanceMonitor()
        self.executor = executor or ApiExecutor()
        self.response_processor = ResponseProcessor()

        limit = self.config.settings.max_concurrent_connections
        self._semaphore = asyncio.Semaphore(limit) if limit else None
        self._server_configs: dict[str, ServerConfig] = {}
        self._initialized = False
        self._shutdown_in_progress = False

        self._register_from_config(self.config)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _register_from_config(self, config: McpServerConfig) -> None:
        for server_id, server_config in config.servers.items():
            if server_config.disabled:
                self.logger.debug("Skipping disabled server %s", server_id)
                continue
            self._add_server(server_id, server_config)

    def _add_server(self, server_id: str, server_config: ServerConfig) -> None:
        timeout = self.config.settings.connection_timeout
        if timeout and "timeout" not in server_config.connection.model_fields_set:
            connection = server_config.connection.model_copy(update={"timeout": timeout})
            server_config = server_config.model_copy(update={"connection": connection})

        self._server_configs[server_id] = server_config
        self.connections.register_server(server_id, server_config)

    async def initialize(self, config: McpServerConfig | Mapping[str, Any] | None = None) -> None:
        """Connect every registered server.

        Partial failures are logged and tolerated; if every server fails the
        service stays uninitialized.

        Raises:
            McpServiceError: INITIALIZATION_FAILED when no server connects.
        """
        if self._initialized:
            self.logger.warning("Core service already initialized, skipping")
            return

        if config is not None:
            self.config = parse_config(config)
            self._register_from_config(self.config)

        started = time.perf_counter()
        server_ids = list(self._server_configs)
        self.logger.info("Initializing core service with %d server(s)", len(server_ids))

        results = await asyncio.gather(
            *(self.connections.connect(server_id) for server_id in server_ids),
            return_exceptions=True,
        )
        failures = {
            server_id: result
            for server_id, result in zip(server_ids, results)
            if isinstance(result, BaseException)
        }

        if server_ids and len(failures) == len(server_ids):
            first = next(iter(failures.values()))
            self.logger.error("Core service initialization failed: every server failed to connect")
            raise McpServiceError(
                f"Service initialization failed: {first}",
                ErrorCode.INITIALIZATION_FAILED,
                context={"failures": {k: str(v) for k, v in failures.items()}},
            ) from first

        for server_id, error in failures.items():
            self.logger.warning("Server %s unavailable at startup: %s", server_id, error)

        self._initialized = True
        self.logger.info(
            "Core service initialized: %d/%d server(s) connected in %.1fms",
            len(server_ids) - len(failures),
            len(server_ids),
            (time.perf_counter() - started) * 1000,
        )

    async def register_server(self, server_id: str, config: ServerConfig) -> None:
        """Register a server; connects it right away once initialized."""
        self.logger.info("Registering server %s", server_id)
        self._add_server(server_id, config)
        if self._initialized:
            await self.connections.connect(server_id)

    async def shutdown(self) -> None:
        """Close every connection and the HTTP client. Safe to call twice."""
        if self._shutdown_in_progress:
            self.logger.warning("Shutdown already in progress")
            return

        self._shutdown_in_progress = True
        self.logger.info("Shutting down core service")
        try:
            await self.connections.close()
            await self.executor.aclose()
        finally:
            self._initialized = False
            self._shutdown_in_progress = False

    async def __aenter__(self) -> CoreService:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise ServiceNotInitializedError()

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def list_tools(self, server_id: str | None = None) -> list[ToolInfo]:
        """Tools of connected servers, or of one server.

        A known but disconnected server yields an empty list.
        """
        self._ensure_initialized()

        if server_id is not None:
            server_config = self._server_configs.get(server_id)
            if server_config is None:
                raise ServerNotFoundError(server_id)
            if not self.connections.is_connected(server_id):
                self.logger.warning("Server %s is not connected, no tools listed", server_id)
                return []
            return tool_infos(server_id, server_config)

        active = set(self.connections.get_active_connections())
        return [
            info
            for sid, server_config in self._server_configs.items()
            if sid in active
            for info in tool_infos(sid, server_config)
        ]

    def is_tool_available(self, tool_name: str, server_id: str | None = None) -> bool:
        self._ensure_initialized()
        try:
            target, _ = self._find_tool(tool_name, server_id)
        except (ToolNotFoundError, ServerNotFoundError):
            return False
        return self.connections.is_connected(target)

    def _find_tool(self, tool_name: str, server_id: str | None) -> tuple[str, ApiToolConfig]:
        if server_id is not None:
            server_config = self._server_configs.get(server_id)
            if server_config is None:
                raise ServerNotFoundError(server_id)
            for tool in server_config.tools:
                if tool.name == tool_name:
                    return server_id, tool
            raise ToolNotFoundError(tool_name, server_id)

        # Connected servers win over ones that still need connecting
        active = set(self.connections.get_active_connections())
        ordered = sorted(self._server_configs.items(), key=lambda item: item[0] not in active)
        for sid, server_config in ordered:
            for tool in server_config.tools:
                if tool.name == tool_name:
                    return sid, tool
        raise ToolNotFoundError(tool_name)

    async def execute_tool_call(
        self,
        tool_name: str,
        args: Mapping[str, Any] | None = None,
        server_id: str | None = None,
    ) -> ToolResult:
        """Execute a tool.

        Admission refusals, argument, template, HTTP and response-processing
        failures come back as a failed ToolResult; metadata["error_code"]
        names the ErrorCode where one applies.

        Raises:
            ServiceNotInitializedError: before initialize().
            ServerNotFoundError, ToolNotFoundError: unknown server or tool.
            ServerFailedError: the owning server exhausted its retries.
        """
        self._ensure_initialized()

        args = {} if args is None else args
        if not isinstance(args, Mapping):
            raise McpServiceError(
                f"Tool arguments must be an object, got {type(args).__name__}",
                ErrorCode.INVALID_TOOL_ARGUMENTS,
                context={"tool_name": tool_name},
            )

        target, tool = self._find_tool(tool_name, server_id)
        execution_id = f"exec-{tool_name}-{uuid.uuid4().hex[:8]}"
        self.logger.info("Executing tool %s on %s (%s)", tool_name, target, execution_id)

        # Refused calls are not recorded in the monitor
        if not self.monitor.should_admit():
            self.logger.warning(
                "Rejecting tool %s (%s): error rate above threshold", tool_name, execution_id
            )
            return ToolResult(
                success=False,
                error="Service unavailable: error rate above threshold",
                metadata={
                    "server_id": target,
                    "execution_id": execution_id,
                    "error_code": ErrorCode.SERVICE_UNAVAILABLE.name,
                },
            )

        with self.monitor.queued():
            status = await self.connections.connect(target)
            if self._semaphore is not None:
                await self._semaphore.acquire()

        try:
            if not status.connected:
                self.monitor.record(CallOutcome(success=False, latency_ms=0.0))
                return ToolResult(
                    success=False,
                    error=f"Server '{target}' disconnected",
                    metadata={"server_id": target, "execution_id": execution_id},
                )
            return await self._invoke(target, tool, dict(args), execution_id)
        finally:
            if self._semaphore is not None:
                self._semaphore.release()

    async def _invoke(
        self, server_id: str, tool: ApiToolConfig, args: dict[str, Any], execution_id: str
    ) -> ToolResult:
        server_config = self._server_configs[server_id]
        metadata: dict[str, Any] = {"server_id": server_id, "execution_id": execution_id}
        started = time.perf_counter()

        check = check_arguments(tool.parameters, args)
        if not check.valid:
            return self._rejected(check.error, started, metadata, check.code)

        context = TemplateContext(data=check.arguments, env=server_config.env)
        build = self.request_builder.build_request(
            tool.endpoint, context, base_url=server_config.base_url
        )
        if not build.success:
            return self._rejected(build.error or "Request rendering failed", started, metadata)
        metadata["used_variables"] = build.used_variables

        response: ApiResponse | None = None
        data: Any = None
        error: str | None = None
        with self.monitor.track() as call:
            try:
                response = await self.executor.execute(
                    build.request, cache_ttl=tool.endpoint.cache_ttl
                )
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                call.mark_failed()
                error = f"Request failed: {e}"
            else:
                data = response.body
                if response.cache_hit:
                    call.mark_cache_hit()
                if not response.is_success():
                    call.mark_failed()
                    error = self._http_error(tool, response)
                elif tool.response is not None:
                    try:
                        data = self.response_processor.process(response.body, tool.response)
                    except ResponseProcessingError as e:
                        call.mark_failed()
                        metadata["error_code"] = e.code.name
                        error = e.message
        execution_time = (time.perf_counter() - started) * 1000

        if response is None:
            self.logger.warning("Tool %s failed (%s): %s", tool.name, execution_id, error)
            return ToolResult(
                success=False, error=error, execution_time=execution_time, metadata=metadata
            )

        metadata.update({"status": response.status, "cache_hit": response.cache_hit})
        if error is not None:
            self.logger.warning("Tool %s failed (%s): %s", tool.name, execution_id, error)
            return ToolResult(
                success=False,
                data=data,
                error=error,
                execution_time=execution_time,
                metadata=metadata,
            )

        return ToolResult(
            success=True, data=data, execution_time=execution_time, metadata=metadata
        )

    def _http_error(self, tool: ApiToolConfig, response: ApiResponse) -> str:
        error = f"HTTP {response.status}"
        if tool.response is None or not tool.response.error_path:
            return error
        try:
            detail = self.response_processor.error_message(response.body, tool.response)
        except ResponseProcessingError as e:
            self.logger.warning("Could not extract error from %s response: %s", tool.name, e)
            return error
        return f"{error}: {detail}" if detail else error

    def _rejected(
        self,
        error: str,
        started: float,
        metadata: dict[str, Any],
        code: ErrorCode | None = None,
    ) -> ToolResult:
        latency_ms = (time.perf_counter() - started) * 1000
        self.monitor.record(CallOutcome(success=False, latency_ms=latency_ms))
        if code is not None:
            metadata["error_code"] = code.name
        self.logger.warning("Tool call rejected (%s): %s", metadata["execution_id"], error)
        return ToolResult(success=False, error=error, execution_time=latency_ms, metadata=metadata)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def server_ids(self) -> list[str]:
        return list(self._server_configs)

    def get_service_status(self) -> ServiceStatus:
        return ServiceStatus(
            initialized=self._initialized,
            server_count=len(self._server_configs),
            active_connections=len(self.connections.get_active_connections()),
            last_updated=datetime.now(),
            error=None if self._initialized else "Service not initialized",
        )
