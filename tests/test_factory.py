"""Tests for the service factory."""

import asyncio

import pytest

from mcp_hub.errors import (
    CliAggregatorUnavailableError,
    ConfigError,
    ErrorCode,
    GroupServiceUnavailableError,
    McpHubError,
    NotYetAvailableError,
)
from mcp_hub.models import GroupConfig, McpServerConfig
from mcp_hub.services import (
    CliMcpAggregator,
    CoreService,
    GroupMcpService,
    ServiceFactory,
    ServiceKind,
    service_factory,
)


@pytest.fixture
def core():
    return service_factory.create_core_service({"servers": {}})


class TestCreateCoreService:
    """Tests for ServiceFactory.create_core_service."""

    def test_empty_config_is_usable(self, core):
        assert isinstance(core, CoreService)
        assert core.connections.server_ids == []
        assert core.get_service_status().server_count == 0

        async def run():
            await core.initialize()
            tools = core.list_tools()
            status = core.get_service_status()
            await core.shutdown()
            return tools, status

        tools, status = asyncio.run(run())
        assert tools == []
        assert status.initialized is True
        assert status.active_connections == 0

    def test_accepts_model(self):
        core = service_factory.create_core_service(McpServerConfig())
        assert core.server_ids == []

    def test_registers_configured_servers(self):
        core = service_factory.create_core_service(
            {"servers": {"a": {"base_url": "https://a.test"}, "b": {"disabled": True}}}
        )
        assert core.server_ids == ["a"]
        assert core.connections.server_ids == ["a"]

    def test_instances_share_nothing(self):
        first = service_factory.create_core_service({"servers": {}})
        second = service_factory.create_core_service({"servers": {}})
        assert first.template_engine is not second.template_engine
        assert first.connections is not second.connections
        assert first.monitor is not second.monitor

    def test_invalid_config(self):
        with pytest.raises(ConfigError):
            service_factory.create_core_service({"servers": {"a": {"tools": "nope"}}})


class TestUnavailableVariants:
    """Tests for the service shapes that are not built yet."""

    def test_group_service_wrapper(self, core):
        with pytest.raises(NotImplementedError, match="GroupMcpService implementation not yet available"):
            service_factory.create_group_service_wrapper(core, {"name": "test", "servers": []})

    def test_group_error_type(self, core):
        with pytest.raises(GroupServiceUnavailableError) as exc_info:
            service_factory.create_group_service_wrapper(core, GroupConfig(name="test"))
        error = exc_info.value
        assert isinstance(error, NotYetAvailableError)
        assert isinstance(error, McpHubError)
        assert error.code is ErrorCode.NOT_YET_AVAILABLE
        assert error.context == {"component": "GroupMcpService"}

    def test_cli_aggregator(self, core):
        with pytest.raises(NotImplementedError, match="CliMcpAggregator implementation not yet available"):
            service_factory.create_cli_aggregator(core)

    def test_cli_error_type(self, core):
        with pytest.raises(CliAggregatorUnavailableError) as exc_info:
            service_factory.create_cli_aggregator(core)
        assert exc_info.value.to_dict()["code"] == int(ErrorCode.NOT_YET_AVAILABLE)

    def test_core_left_untouched(self, core):
        with pytest.raises(NotYetAvailableError):
            service_factory.create_cli_aggregator(core)
        assert core.initialized is False
        assert core.server_ids == []


class TestServiceKind:
    """Tests for kind-based dispatch."""

    def test_is_constructible(self):
        assert ServiceKind.CORE.is_constructible is True
        assert ServiceKind.GROUP.is_constructible is False
        assert ServiceKind.CLI.is_constructible is False

    def test_create_core(self):
        core = service_factory.create(ServiceKind.CORE, {"servers": {}})
        assert isinstance(core, CoreService)

    def test_create_by_name(self, core):
        with pytest.raises(GroupServiceUnavailableError):
            service_factory.create("group", core, {"name": "test", "servers": []})
        with pytest.raises(CliAggregatorUnavailableError):
            service_factory.create("cli", core)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            service_factory.create("cluster")

    def test_factory_is_stateless(self):
        assert vars(ServiceFactory()) == {}


class TestProtocols:
    """The not-yet-available interfaces are structural protocols."""

    def test_group_protocol(self):
        class Group:
            async def initialize(self, group_config): ...

            async def list_tools(self): ...

            async def call_tool(self, tool_name, args): ...

            async def shutdown(self): ...

        assert isinstance(Group(), GroupMcpService)
        assert not isinstance(object(), GroupMcpService)

    def test_cli_protocol(self):
        class Aggregator:
            async def get_all_tools(self): ...

            async def execute_tool_call(self, tool_name, args): ...

        assert isinstance(Aggregator(), CliMcpAggregator)
