"""Pytest configuration and fixtures for HITL proxy tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Any

import pytest
from mcp import types

from hitl_proxy.approval.channel import ApprovalChannel, ApprovalCheck
from hitl_proxy.approval.classifier import RiskClassifier
from hitl_proxy.approval.status import StatusChecker
from hitl_proxy.approval.tasks import ApprovalTaskManager
from hitl_proxy.config import Settings
from hitl_proxy.exceptions import ApprovalChannelError
from hitl_proxy.gateway import ToolCallGateway
from hitl_proxy.servers import DownstreamServerConfig, ServerRegistry

TODO_SERVER = "todo-mcp-server"


class FakeDownstream:
    """Downstream connector double that records every call."""

    def __init__(self, tools: list[types.Tool] | None = None):
        self.tools = tools or [
            types.Tool(name="addTodos", description="Add todos", inputSchema={"type": "object"}),
            types.Tool(name="listTodos", description="List todos", inputSchema={"type": "object"}),
            types.Tool(name="welcomeTool", description="Say hi", inputSchema={"type": "object"}),
        ]
        self.calls: list[tuple[str, dict[str, Any] | None]] = []
        self.fail_with: str | None = None

    async def list_tools(self) -> list[types.Tool]:
        return list(self.tools)

    async def call_tool(self, tool_name: str, arguments: dict[str, Any] | None) -> types.CallToolResult:
        self.calls.append((tool_name, arguments))
        if self.fail_with is not None:
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=self.fail_with)],
                isError=True,
            )
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=f"{tool_name} ran")],
            structuredContent={"echo": arguments},
        )


class FakeChannel(ApprovalChannel):
    """Approval channel double with scripted decisions per out-of-band code."""

    def __init__(self):
        self.sent: list[str] = []
        self.checked: list[str] = []
        self.decisions: dict[str, ApprovalCheck] = {}
        self.default = ApprovalCheck.pending(error="authorization_pending")
        self.fail_send: ApprovalChannelError | None = None
        self.closed = False

    async def send_approval_request(self, approver: str) -> str:
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append(approver)
        return f"oob-{len(self.sent)}"

    async def check_approval(self, oob_code: str) -> ApprovalCheck:
        self.checked.append(oob_code)
        return self.decisions.get(oob_code, self.default)

    def approve(self, oob_code: str) -> None:
        self.decisions[oob_code] = ApprovalCheck.approved()

    def deny(self, oob_code: str, error: str = "access_denied") -> None:
        self.decisions[oob_code] = ApprovalCheck.denied(error=error, detail="User rejected the push")

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    """Manually advanced monotonic clock paired with a sleep that advances it."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def temp_data_dir():
    """Create a temporary directory for testing."""
    temp_dir = Path(tempfile.mkdtemp())
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def test_settings(temp_data_dir):
    """Create test settings with short poll timings."""
    return Settings(
        _env_file=None,
        hitl_log_level="DEBUG",
        status_poll_window=0.05,
        status_poll_interval=0.01,
        okta_domain="https://okta.test",
        okta_client_id="client-123",
        okta_client_secret="s3cret",
        access_token="bearer-abc",
    )


@pytest.fixture
def registry():
    """Registry matching the addTodos/welcomeTool scenario."""
    return ServerRegistry(
        {
            TODO_SERVER: DownstreamServerConfig(
                command="node",
                args=("todo-server.js",),
                env={"ACCESS_TOKEN": "bearer-abc"},
                high_risk_tools=("addTodos", "deleteTodos"),
                blocked_tools=("welcomeTool",),
            ),
        }
    )


@pytest.fixture
def downstream():
    return FakeDownstream()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(channel, downstream):
    return ApprovalTaskManager(channel=channel, downstream=downstream, approver_identity="bob@tables.fake")


@pytest.fixture
def status_checker(manager, clock):
    return StatusChecker(manager, window=10.0, interval=4.0, clock=clock, sleep=clock.sleep)


@pytest.fixture
def gateway(registry, downstream, manager, status_checker):
    return ToolCallGateway(
        server_id=TODO_SERVER,
        classifier=RiskClassifier(registry),
        connector=downstream,
        manager=manager,
        status_checker=status_checker,
    )
