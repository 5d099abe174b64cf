"""CLI commands for mcp-hub."""

import asyncio
import json
from typing import Any, Iterator

import click
from rich.console import Console
from rich.table import Table

from .config import load_config, validate_group_references
from .errors import McpHubError
from .logging_config import setup_logging
from .models import (
    ApiEndpointConfig,
    ConnectionState,
    McpServerConfig,
    ResponseConfig,
    TemplateContext,
)
from .services import ResponseProcessor, service_factory, tool_infos
from .templates import TemplateEngine

console = Console()

STATE_STYLES = {
    ConnectionState.CONNECTED: "green",
    ConnectionState.CONNECTING: "yellow",
    ConnectionState.RETRYING: "yellow",
    ConnectionState.DISCONNECTED: "dim",
    ConnectionState.FAILED: "red",
}


def _load(path: str) -> McpServerConfig:
    try:
        return load_config(path)
    except McpHubError as e:
        console.print(f"[red]{e.message}[/red]")
        raise SystemExit(1)


def _parse_pairs(pairs: tuple[str, ...], option: str) -> list[tuple[str, str]]:
    parsed = []
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint=option)
        parsed.append((key, value))
    return parsed


def _nested(pairs: list[tuple[str, str]]) -> dict[str, Any]:
    """Build a nested dict from dotted keys: a.b=1 -> {"a": {"b": "1"}}."""
    data: dict[str, Any] = {}
    for key, value in pairs:
        *parents, leaf = key.split(".")
        node = data
        for part in parents:
            node = node.setdefault(part, {})
            if not isinstance(node, dict):
                raise click.BadParameter(f"{key!r} conflicts with an earlier value", param_hint="-d")
        node[leaf] = value
    return data


def _endpoint_templates(endpoint: ApiEndpointConfig) -> Iterator[tuple[str, str]]:
    yield "url", endpoint.url
    for name, value in endpoint.headers.items():
        yield f"header '{name}'", value
    for name, value in endpoint.query_params.items():
        yield f"query parameter '{name}'", value
    if isinstance(endpoint.body, str):
        yield "body", endpoint.body
    elif isinstance(endpoint.body, dict):
        yield from _body_templates(endpoint.body, "body")


def _body_templates(value: Any, location: str) -> Iterator[tuple[str, str]]:
    if isinstance(value, str):
        yield location, value
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from _body_templates(item, f"{location}.{key}")
    elif isinstance(value, list):
        for index, item in enumerate(value):
            yield from _body_templates(item, f"{location}[{index}]")


def _response_expressions(response: ResponseConfig | None) -> Iterator[tuple[str, str]]:
    if response is None:
        return
    if response.path:
        yield "response path", response.path
    for name, expression in response.fields.items():
        yield f"response field '{name}'", expression
    if response.error_path:
        yield "response error_path", response.error_path


@click.group()
@click.option("--log-level", default=None, help="Log level (debug, info, warning, error)")
def main(log_level: str | None) -> None:
    """MCP Hub - Expose HTTP APIs as MCP tools."""
    setup_logging(log_level)


@main.command("validate")
@click.argument("config_path", type=click.Path())
def validate(config_path: str) -> None:
    """Validate a config file and every endpoint template in it."""
    config = _load(config_path)
    engine = TemplateEngine()
    processor = ResponseProcessor()
    problems = validate_group_references(config)

    for server_id, server in config.servers.items():
        for tool in server.tools:
            for location, template in _endpoint_templates(tool.endpoint):
                result = engine.validate_template(template)
                for issue in result.errors:
                    problems.append(f"{server_id}/{tool.name} {location}: {issue.message}")
            for location, expression in _response_expressions(tool.response):
                message = processor.validate_expression(expression)
                if message:
                    problems.append(f"{server_id}/{tool.name} {location}: {message}")

    tool_count = sum(len(s.tools) for s in config.servers.values())
    console.print(f"[bold]Validating {config_path}[/bold]")
    console.print(
        f"{len(config.servers)} server(s), {tool_count} tool(s), {len(config.groups)} group(s)"
    )

    if problems:
        for problem in problems:
            console.print(f"  [red]✗[/red] {problem}")
        raise SystemExit(1)

    console.print("[green]✓ Configuration is valid[/green]")


@main.command("tools")
@click.argument("config_path", type=click.Path())
@click.option("-s", "--server", "server_id", help="Only list tools of this server")
@click.option("-f", "--format", "fmt", default="table", help="Output format (table, json)")
def list_tools(config_path: str, server_id: str | None, fmt: str) -> None:
    """List the tools declared in a config file."""
    config = _load(config_path)

    if server_id is not None and server_id not in config.servers:
        console.print(f"[red]Server not found: {server_id}[/red]")
        raise SystemExit(1)

    infos = [
        info
        for sid, server in config.servers.items()
        if server_id in (None, sid)
        for info in tool_infos(sid, server)
    ]

    if fmt == "json":
        data = [
            {
                "name": info.name,
                "server_id": info.server_id,
                "description": info.description,
                "input_schema": info.input_schema,
            }
            for info in infos
        ]
        click.echo(json.dumps(data, indent=2))
        return

    if not infos:
        console.print("[yellow]No tools configured.[/yellow]")
        return

    table = Table(title=f"Tools ({len(infos)} total)")
    table.add_column("Name", style="cyan")
    table.add_column("Server")
    table.add_column("Parameters")
    table.add_column("Description", max_width=50)

    for info in infos:
        params = ", ".join(p.name if p.required else f"{p.name}?" for p in info.parameters)
        table.add_row(info.name, info.server_id, params or "-", info.description)

    console.print(table)


async def _collect_status(config: McpServerConfig) -> dict[str, Any]:
    core = service_factory.create_core_service(config)
    init_error = None
    try:
        try:
            await core.initialize()
        except McpHubError as e:
            init_error = e.message

        servers = {
            sid: core.connections.get_status(sid).model_dump(mode="json")
            for sid in core.server_ids
        }
        service = core.get_service_status().model_dump(mode="json")
        if init_error:
            service["error"] = init_error
        return {"service": service, "servers": servers}
    finally:
        await core.shutdown()


@main.command("status")
@click.argument("config_path", type=click.Path())
@click.option("-f", "--format", "fmt", default="table", help="Output format (table, json)")
def status(config_path: str, fmt: str) -> None:
    """Connect to every configured server and report connection status."""
    config = _load(config_path)
    report = asyncio.run(_collect_status(config))

    if fmt == "json":
        click.echo(json.dumps(report, indent=2))
    else:
        table = Table(title="Server Status")
        table.add_column("Server", style="cyan")
        table.add_column("State")
        table.add_column("Latency", justify="right")
        table.add_column("Attempts", justify="right")
        table.add_column("Error", max_width=50)

        for sid, server in report["servers"].items():
            state = ConnectionState(server["state"])
            style = STATE_STYLES[state]
            latency = server["latency"]
            table.add_row(
                sid,
                f"[{style}]{state.value}[/{style}]",
                f"{latency:.1f}ms" if latency is not None else "-",
                str(server["attempts"] or 0),
                server["error"] or "",
            )

        console.print(table)
        service = report["service"]
        console.print(
            f"\n{service['active_connections']}/{service['server_count']} server(s) connected"
        )

    if not report["service"]["initialized"]:
        raise SystemExit(1)


@main.command("render")
@click.argument("template")
@click.option("-d", "--data", "data_pairs", multiple=True, help="Data variable (key=value, dotted keys nest)")
@click.option("-e", "--env", "env_pairs", multiple=True, help="Environment variable (KEY=VALUE)")
def render(template: str, data_pairs: tuple[str, ...], env_pairs: tuple[str, ...]) -> None:
    """Render a template against command-line variables."""
    context = TemplateContext(
        data=_nested(_parse_pairs(data_pairs, "-d")),
        env=dict(_parse_pairs(env_pairs, "-e")),
    )
    result = TemplateEngine().render(template, context)

    if not result.success:
        console.print(f"[red]{result.error}[/red]")
        raise SystemExit(1)

    click.echo(result.result)


@main.command("call")
@click.argument("config_path", type=click.Path())
@click.argument("tool_name")
@click.option("-a", "--arg", "arg_pairs", multiple=True, help="Tool argument (key=value)")
@click.option("-s", "--server", "server_id", help="Server that owns the tool")
def call(config_path: str, tool_name: str, arg_pairs: tuple[str, ...], server_id: str | None) -> None:
    """Execute one tool call and print the result as JSON."""
    config = _load(config_path)
    args = _nested(_parse_pairs(arg_pairs, "-a"))

    async def run() -> Any:
        core = service_factory.create_core_service(config)
        try:
            await core.initialize()
            return await core.execute_tool_call(tool_name, args, server_id=server_id)
        finally:
            await core.shutdown()

    try:
        result = asyncio.run(run())
    except McpHubError as e:
        console.print(f"[red]{e.message}[/red]")
        raise SystemExit(1)

    click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
    if not result.success:
        raise SystemExit(1)


@main.command("serve")
@click.argument("config_path", type=click.Path())
def serve(config_path: str) -> None:
    """Serve the configured tools as an MCP server over stdio."""
    from .server import serve_stdio

    config = _load(config_path)
    asyncio.run(serve_stdio(config))


if __name__ == "__main__":
    main()
