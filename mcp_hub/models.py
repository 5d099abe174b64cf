"""Pydantic models shared across the hub core.

Configuration durations are seconds; latencies and response times reported
by the connection manager and performance monitor are milliseconds.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class TemplateVariable(BaseModel):
    """A placeholder declared in a template."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    required: bool = True


class TemplateContext(BaseModel):
    """Data available to a render call."""

    model_config = ConfigDict(frozen=True)

    data: dict[str, Any] = Field(default_factory=dict)
    env: dict[str, str] = Field(default_factory=dict)


class TemplateRenderResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    result: str = ""
    success: bool
    error: str | None = None
    used_variables: list[str] = Field(default_factory=list)


class ValidationIssue(BaseModel):
    path: str
    message: str
    code: str | None = None


class ValidationResult(BaseModel):
    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    RETRYING = "retrying"
    CONNECTED = "connected"
    FAILED = "failed"


class ConnectionConfig(BaseModel):
    """Connection behaviour for one upstream server."""

    model_config = ConfigDict(frozen=True)

    timeout: float = Field(default=30.0, gt=0, description="Seconds per connect attempt")
    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    retry_interval: float = Field(default=1.0, ge=0, description="Seconds between attempts")
    heartbeat_interval: float | None = Field(
        default=None, gt=0, description="Seconds between heartbeats while connected"
    )


class ConnectionStatus(BaseModel):
    connected: bool = False
    last_connected: datetime | None = None
    error: str | None = None
    latency: float | None = Field(default=None, description="Milliseconds")
    attempts: int | None = None
    state: ConnectionState = ConnectionState.DISCONNECTED


class ConnectionEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["connected", "disconnected", "error", "retry"]
    server_id: str
    timestamp: datetime
    data: Any = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------


class CallOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    latency_ms: float = Field(ge=0)
    cache_hit: bool = False


class PerformanceMetrics(BaseModel):
    latency: float = 0.0
    success_rate: float = 0.0
    error_rate: float = 0.0
    cache_hit_rate: float = 0.0
    concurrent_connections: int = 0
    queue_length: int = 0


class PerformanceStats(BaseModel):
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time: float = 0.0
    min_response_time: float = 0.0
    max_response_time: float = 0.0
    p95_response_time: float = 0.0
    p99_response_time: float = 0.0


class SystemResourceUsage(BaseModel):
    cpu_usage: float = Field(description="CPU percent of the host process")
    memory_usage: int = Field(description="Resident memory in bytes")
    memory_usage_percent: float
    active_connections: int = 0
    idle_connections: int = 0


# ---------------------------------------------------------------------------
# API / tool configuration
# ---------------------------------------------------------------------------

HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


class ApiEndpointConfig(BaseModel):
    """Templated description of one outbound HTTP call."""

    url: str = Field(description="Absolute URL or path relative to the server base_url")
    method: HttpMethod = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    query_params: dict[str, str] = Field(default_factory=dict)
    body: str | dict[str, Any] | None = None
    timeout: float | None = Field(default=None, gt=0, description="Seconds")
    cache_ttl: float | None = Field(
        default=None, gt=0, description="Seconds to cache successful responses"
    )

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class ToolParameter(BaseModel):
    name: str
    type: Literal["string", "number", "integer", "boolean", "object", "array"] = "string"
    description: str = ""
    required: bool = False
    default: Any = None
    enum: list[Any] | None = None


class ResponseConfig(BaseModel):
    """JSONPath extraction applied to an upstream response body.

    ``path`` selects one value (or a list when several nodes match);
    ``fields`` reshapes the body into a dict of named extractions. When both
    are set, ``fields`` is applied to the result of ``path``. ``error_path``
    pulls a message out of a failed response.
    """

    path: str | None = None
    fields: dict[str, str] = Field(default_factory=dict)
    error_path: str | None = None
    strict: bool = Field(default=False, description="Fail when an expression matches nothing")


class ApiToolConfig(BaseModel):
    name: str
    description: str = ""
    parameters: list[ToolParameter] = Field(default_factory=list)
    endpoint: ApiEndpointConfig
    response: ResponseConfig | None = None


class ServerConfig(BaseModel):
    """One upstream API server and the tools it exposes."""

    base_url: str | None = None
    health_path: str = "/"
    env: dict[str, str] = Field(default_factory=dict)
    disabled: bool = False
    tools: list[ApiToolConfig] = Field(default_factory=list)
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)


class ToolFilter(BaseModel):
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)


class GroupConfig(BaseModel):
    name: str
    description: str = ""
    servers: list[str] = Field(default_factory=list)
    tool_filter: ToolFilter | None = None


class GlobalSettings(BaseModel):
    log_level: Literal["debug", "info", "warn", "warning", "error"] = "info"
    connection_timeout: float | None = Field(default=None, gt=0)
    max_concurrent_connections: int | None = Field(default=None, gt=0)


class McpServerConfig(BaseModel):
    """Top-level configuration consumed by the service factory."""

    servers: dict[str, ServerConfig] = Field(default_factory=dict)
    groups: dict[str, GroupConfig] = Field(default_factory=dict)
    settings: GlobalSettings = Field(default_factory=GlobalSettings)


# ---------------------------------------------------------------------------
# Tools and service status
# ---------------------------------------------------------------------------


class ToolInfo(BaseModel):
    name: str
    description: str = ""
    parameters: list[ToolParameter] = Field(default_factory=list)
    server_id: str | None = None

    @property
    def input_schema(self) -> dict[str, Any]:
        """JSON Schema for the tool's arguments."""
        properties: dict[str, Any] = {}
        for param in self.parameters:
            prop: dict[str, Any] = {"type": param.type}
            if param.description:
                prop["description"] = param.description
            if param.default is not None:
                prop["default"] = param.default
            if param.enum:
                prop["enum"] = list(param.enum)
            properties[param.name] = prop

        schema: dict[str, Any] = {"type": "object", "properties": properties}
        required = [p.name for p in self.parameters if p.required]
        if required:
            schema["required"] = required
        return schema


class ToolResult(BaseModel):
    success: bool
    data: Any = None
    error: str | None = None
    execution_time: float | None = Field(default=None, description="Milliseconds")
    metadata: dict[str, Any] = Field(default_factory=dict)


class ServiceStatus(BaseModel):
    initialized: bool
    server_count: int
    active_connections: int
    last_updated: datetime | None = None
    error: str | None = None
