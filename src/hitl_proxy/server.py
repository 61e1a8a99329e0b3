"""MCP stdio server exposing the gateway to clients.

The proxy presents itself to the client as an MCP server named after the
downstream server it fronts. Tool listing and tool calls are delegated to the
``ToolCallGateway``; progress notifications travel back through the
requesting session.
"""

from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from hitl_proxy import __version__
from hitl_proxy.approval.channel import ApprovalChannel, OktaApprovalChannel
from hitl_proxy.approval.classifier import RiskClassifier
from hitl_proxy.approval.status import StatusChecker
from hitl_proxy.approval.tasks import ApprovalTaskManager
from hitl_proxy.config import Settings, get_settings
from hitl_proxy.downstream.connector import DownstreamConnector
from hitl_proxy.gateway import ProgressNotification, ToolCallGateway, ToolInvocationRequest
from hitl_proxy.logging import get_logger
from hitl_proxy.servers import ServerRegistry

logger = get_logger("hitl_proxy.server")


class ProxyServer:
    """Wires the proxy components together and serves them over stdio."""

    def __init__(
        self,
        server_id: str,
        settings: Settings | None = None,
        registry: ServerRegistry | None = None,
        channel: ApprovalChannel | None = None,
        connector: DownstreamConnector | None = None,
    ):
        """Build the proxy for one downstream server.

        Args:
            server_id: Downstream server identifier
            settings: Settings instance (uses global if not provided)
            registry: Server registry (built from settings if not provided)
            channel: Approval channel (Okta if not provided)
            connector: Downstream connector (built from the registry if not provided)

        Raises:
            ConfigurationError: If ``server_id`` is not in the registry
        """
        self.settings = settings or get_settings()
        self.registry = registry or ServerRegistry.default(self.settings)
        self.server_id = server_id

        config = self.registry.get_config(server_id)
        self.channel = channel or OktaApprovalChannel(self.settings)
        self.connector = connector or DownstreamConnector(server_id, config)
        self.classifier = RiskClassifier(self.registry)
        self.manager = ApprovalTaskManager(
            channel=self.channel,
            downstream=self.connector,
            approver_identity=self.settings.approver_identity,
        )
        self.status_checker = StatusChecker(
            self.manager,
            window=self.settings.status_poll_window,
            interval=self.settings.status_poll_interval,
        )
        self.gateway = ToolCallGateway(
            server_id=server_id,
            classifier=self.classifier,
            connector=self.connector,
            manager=self.manager,
            status_checker=self.status_checker,
        )

        self.server = Server(server_id, version=__version__)
        self._register_handlers()

    def _register_handlers(self) -> None:
        gateway = self.gateway

        @self.server.list_tools()
        async def handle_list_tools() -> list[types.Tool]:
            return await gateway.list_tools()

        async def handle_call_tool(req: types.CallToolRequest) -> types.ServerResult:
            params = req.params
            meta = params.meta
            request = ToolInvocationRequest(
                tool_name=params.name,
                arguments=params.arguments or {},
                progress_token=meta.progressToken if meta is not None else None,
            )
            result = await gateway.call_tool(request, notify=self._send_progress)
            return types.ServerResult(result)

        # Registered directly so the gateway's CallToolResult (isError,
        # structuredContent) reaches the client as built.
        self.server.request_handlers[types.CallToolRequest] = handle_call_tool

    async def _send_progress(self, notification: ProgressNotification) -> None:
        ctx = self.server.request_context
        await ctx.session.send_progress_notification(
            progress_token=notification.progress_token,
            progress=notification.progress,
            total=notification.total,
            message=notification.message,
            related_request_id=ctx.request_id,
        )

    async def run(self) -> None:
        """Connect downstream, serve MCP on stdio until EOF or cancellation.

        Raises:
            DownstreamConnectionError: If the downstream server cannot be reached
        """
        async with self.connector:
            try:
                async with stdio_server() as (read_stream, write_stream):
                    logger.info(
                        "Serving MCP over stdio",
                        server_id=self.server_id,
                        high_risk=self.classifier.list_high_risk_tools(self.server_id),
                        blocked=self.classifier.list_blocked_tools(self.server_id),
                    )
                    await self.server.run(
                        read_stream,
                        write_stream,
                        self.server.create_initialization_options(),
                    )
            finally:
                logger.info(
                    "Shutting down proxy",
                    server_id=self.server_id,
                    abandoned_tasks=self.manager.pending_count,
                )
                await self.channel.close()
