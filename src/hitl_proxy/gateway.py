"""Tool-call gateway for the HITL proxy.

Every tool call from the client passes through ``ToolCallGateway.call_tool``:

1. Synthetic tools (status check, high-risk listing) are answered locally
2. Blocked tools are rejected
3. High-risk tools become approval tasks and return a "poll me" receipt
4. Everything else is forwarded to the downstream server unchanged

All proxy errors are converted to ``isError`` results here.
"""

import json
from collections.abc import Awaitable, Callable
from typing import Any

from mcp import types
from pydantic import BaseModel, Field

from hitl_proxy.approval.classifier import RiskClassifier, RiskTier
from hitl_proxy.approval.status import StatusChecker
from hitl_proxy.approval.tasks import ApprovalTaskManager, QueryState, TaskQueryResult, TaskStatus
from hitl_proxy.downstream.connector import DownstreamConnector, error_result
from hitl_proxy.exceptions import (
    ApprovalDenialOrExpiry,
    ApprovalSetupError,
    BlockedToolError,
    HitlProxyError,
)
from hitl_proxy.logging import get_logger

logger = get_logger("hitl_proxy.gateway")

CHECK_TASK_STATUS_TOOL = "check_task_status"
LIST_HIGH_RISK_TOOLS_TOOL = "list_high_risk_tools"

PENDING_APPROVAL_POLL = "PENDING_APPROVAL_POLL"
AWAITING_APPROVAL_MESSAGE = "Awaiting Approval for High Risk Task"


class ToolInvocationRequest(BaseModel):
    """One inbound tool call."""

    tool_name: str = Field(..., description="Requested tool")
    arguments: dict[str, Any] = Field(default_factory=dict, description="Opaque call arguments")
    progress_token: str | int | None = Field(
        default=None,
        description="Caller token for progress notifications tied to this request",
    )


class ProgressNotification(BaseModel):
    """Progress update sent back to the caller for a deferred call."""

    progress_token: str | int
    progress: float = 10
    total: float = 100
    message: str = AWAITING_APPROVAL_MESSAGE


ProgressNotifier = Callable[[ProgressNotification], Awaitable[None]]


CHECK_TASK_STATUS_DEFINITION = types.Tool(
    name=CHECK_TASK_STATUS_TOOL,
    description=(
        "Checks the current approval status of a previously requested high-risk task "
        "using its Task ID. Required for Human-In-The-Loop tasks."
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "taskId": {
                "type": "string",
                "description": "The unique Task ID returned in the structured content of the pending tool call.",
            }
        },
        "required": ["taskId"],
    },
)

LIST_HIGH_RISK_TOOLS_DEFINITION = types.Tool(
    name=LIST_HIGH_RISK_TOOLS_TOOL,
    description=(
        'Displays a list of "High Risk" tools that require approval as part of '
        "Human-In-The-Loop tasks."
    ),
    inputSchema={"type": "object", "properties": {}, "required": []},
)

SYNTHETIC_TOOLS = (CHECK_TASK_STATUS_DEFINITION, LIST_HIGH_RISK_TOOLS_DEFINITION)


def text_result(
    text: str,
    structured: dict[str, Any] | None = None,
    is_error: bool = False,
) -> types.CallToolResult:
    """Build a tool result with a single text block."""
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
        isError=is_error,
    )


def pending_approval_result(tool_name: str, task_id: str) -> types.CallToolResult:
    """Receipt telling the caller to poll the status-check tool."""
    return text_result(
        f"AUTHORIZATION_REQUIRED: Task {tool_name} requires approval. The task is pending. "
        f"The next necessary step is to call the '{CHECK_TASK_STATUS_TOOL}' tool with the "
        f"Task ID to get the current status.",
        structured={
            "status": PENDING_APPROVAL_POLL,
            "next_action": "call_tool",
            "tool_to_call": CHECK_TASK_STATUS_TOOL,
            "taskId": task_id,
            "tool_args": {"taskId": task_id},
        },
    )


def status_result(result: TaskQueryResult) -> types.CallToolResult:
    """Render a status-check observation as a tool result."""
    if result.state == QueryState.NOT_FOUND:
        return text_result(
            f"Error: No active task found with ID {result.task_id}. "
            f"It may have already expired or been completed.",
            is_error=True,
        )

    if result.state == QueryState.PENDING:
        return text_result(
            f"Task {result.task_id} is still PENDING human approval. Please wait and check again.",
            structured={"status": "PENDING", "tool": result.tool_name},
        )

    if result.outcome == TaskStatus.APPROVED and result.execution_result is not None:
        completed = result.execution_result.model_copy(
            update={"structuredContent": {"status": "COMPLETED", "tool": result.tool_name}}
        )
        return completed

    denial = ApprovalDenialOrExpiry(result.task_id, error=result.error, detail=result.detail)
    return text_result(
        str(denial),
        structured={"status": "DENIED", "tool": result.tool_name, "error": result.error},
        is_error=True,
    )


class ToolCallGateway:
    """Routes each tool call by risk tier for one downstream server."""

    def __init__(
        self,
        server_id: str,
        classifier: RiskClassifier,
        connector: DownstreamConnector,
        manager: ApprovalTaskManager,
        status_checker: StatusChecker,
    ):
        """Initialize the gateway.

        Args:
            server_id: Downstream server identifier
            classifier: Risk classifier
            connector: Downstream connector used for NORMAL calls and the catalog
            manager: Approval task manager for HIGH_RISK calls
            status_checker: Bounded-wait status checker
        """
        self.server_id = server_id
        self.classifier = classifier
        self.connector = connector
        self.manager = manager
        self.status_checker = status_checker

    async def list_tools(self) -> list[types.Tool]:
        """Downstream catalog followed by the two synthetic tools."""
        logger.info("Listing tools", server_id=self.server_id)
        downstream_tools = await self.connector.list_tools()
        return [*downstream_tools, *SYNTHETIC_TOOLS]

    async def call_tool(
        self,
        request: ToolInvocationRequest,
        notify: ProgressNotifier | None = None,
    ) -> types.CallToolResult:
        """Handle one tool call.

        Args:
            request: The inbound call
            notify: Sends a progress notification to the caller, if available

        Returns:
            types.CallToolResult: Result for the caller
        """
        logger.info("Call tool", server_id=self.server_id, tool_name=request.tool_name)
        try:
            if request.tool_name == CHECK_TASK_STATUS_TOOL:
                return await self._check_task_status(request.arguments)
            if request.tool_name == LIST_HIGH_RISK_TOOLS_TOOL:
                return self._list_high_risk_tools()
            return await self._route(request, notify)
        except HitlProxyError as e:
            logger.error("Tool call rejected", tool_name=request.tool_name, error=str(e))
            return error_result(str(e))

    async def _route(
        self,
        request: ToolInvocationRequest,
        notify: ProgressNotifier | None,
    ) -> types.CallToolResult:
        tier = self.classifier.classify(self.server_id, request.tool_name)

        if tier == RiskTier.BLOCKED:
            raise BlockedToolError(request.tool_name)

        if tier == RiskTier.HIGH_RISK:
            return await self._defer(request, notify)

        return await self.connector.call_tool(request.tool_name, request.arguments)

    async def _defer(
        self,
        request: ToolInvocationRequest,
        notify: ProgressNotifier | None,
    ) -> types.CallToolResult:
        try:
            task = await self.manager.create(request.tool_name, request.arguments)
        except ApprovalSetupError as e:
            return error_result(str(e))

        if request.progress_token is not None and notify is not None:
            logger.info(
                "Approval required",
                tool_name=request.tool_name,
                task_id=task.task_id,
                progress_token=request.progress_token,
            )
            try:
                await notify(ProgressNotification(progress_token=request.progress_token))
            except Exception as e:
                logger.warning("Failed to send progress notification", error=str(e))

        return pending_approval_result(request.tool_name, task.task_id)

    async def _check_task_status(self, arguments: dict[str, Any]) -> types.CallToolResult:
        task_id = arguments.get("taskId")
        if not isinstance(task_id, str) or not task_id:
            return text_result(
                f"Error: {CHECK_TASK_STATUS_TOOL} requires a valid taskId argument.",
                is_error=True,
            )
        result = await self.status_checker.check(task_id)
        return status_result(result)

    def _list_high_risk_tools(self) -> types.CallToolResult:
        names = self.classifier.list_high_risk_tools(self.server_id)
        return text_result(f"High risk tools are {json.dumps(names)}.")
