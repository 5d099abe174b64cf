"""MCP stdio server exposing a Core Service's tools.

Run with:
    mcp-hub serve config.yaml
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .config import load_config
from .errors import McpHubError
from .logging_config import get_logger, setup_logging
from .models import McpServerConfig
from .services import CoreService, service_factory

logger = get_logger("server")


def _text(data: Any) -> list[TextContent]:
    """Wrap data as MCP text content."""
    return [TextContent(type="text", text=json.dumps(data, indent=2, default=str))]


def build_mcp_server(core: CoreService, name: str = "mcp-hub") -> Server:
    """Create an MCP server whose tools are the core service's tools.

    The core service must already be initialized.
    """
    app = Server(name)

    @app.list_tools()
    async def list_tools() -> list[Tool]:
        return [
            Tool(name=info.name, description=info.description, inputSchema=info.input_schema)
            for info in core.list_tools()
        ]

    @app.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        try:
            result = await core.execute_tool_call(name, arguments or {})
        except McpHubError as e:
            logger.warning("Tool call %s failed: %s", name, e.message)
            return _text({"error": e.message, "code": e.code.name})

        if not result.success:
            return _text({"error": result.error, "data": result.data, "metadata": result.metadata})
        return _text(result.data)

    return app


async def serve_stdio(config: McpServerConfig | str | Path) -> None:
    """Initialize a Core Service from config and serve it over stdio."""
    if not isinstance(config, McpServerConfig):
        config = load_config(config)
    setup_logging(config.settings.log_level)

    core = service_factory.create_core_service(config)
    await core.initialize()
    app = build_mcp_server(core)
    logger.info("Serving %d tool(s) over stdio", len(core.list_tools()))

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(read_stream, write_stream, app.create_initialization_options())
    finally:
        await core.shutdown()
