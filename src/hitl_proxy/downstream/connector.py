"""Persistent MCP client connection to the downstream tool server.

The connector launches the downstream server as a child process, speaks MCP
to it over stdio, and keeps that single session open for the life of the
proxy. There is no reconnect: failing to connect at startup is fatal.
"""

from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession, types
from mcp.client.stdio import StdioServerParameters, stdio_client

from hitl_proxy.exceptions import DownstreamCallError, DownstreamConnectionError
from hitl_proxy.logging import AsyncTimer, get_logger
from hitl_proxy.servers import DownstreamServerConfig

logger = get_logger("hitl_proxy.downstream.connector")


class DownstreamConnector:
    """Owns the one MCP session to a downstream server.

    ``connect`` and ``close`` must run in the same task, since the stdio
    client holds an anyio task group; using the connector as an async
    context manager guarantees that.
    """

    def __init__(self, server_id: str, config: DownstreamServerConfig):
        """Initialize the connector.

        Args:
            server_id: Identifier of the downstream server (used as client name)
            config: Launch spec for the server
        """
        self.server_id = server_id
        self.config = config
        self._exit_stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    def _server_parameters(self) -> StdioServerParameters:
        return StdioServerParameters(
            command=self.config.command,
            args=list(self.config.args),
            env=dict(self.config.env) or None,
        )

    async def connect(self) -> None:
        """Launch the downstream server and complete the MCP handshake.

        Raises:
            DownstreamConnectionError: If the server cannot be started or initialized
        """
        if self._session is not None:
            return

        logger.info(
            "Establishing persistent connection",
            server_id=self.server_id,
            command=self.config.command,
        )
        stack = AsyncExitStack()
        try:
            read_stream, write_stream = await stack.enter_async_context(
                stdio_client(self._server_parameters())
            )
            session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
            await session.initialize()
        except Exception as e:
            await stack.aclose()
            raise DownstreamConnectionError(
                f"Failed to connect to downstream server {self.server_id}: {e}"
            ) from e

        self._exit_stack = stack
        self._session = session
        logger.info("Downstream client connected", server_id=self.server_id)

    async def close(self) -> None:
        """Close the session and stop the downstream process."""
        if self._exit_stack is None:
            return
        stack, self._exit_stack, self._session = self._exit_stack, None, None
        await stack.aclose()
        logger.info("Downstream connection closed", server_id=self.server_id)

    async def __aenter__(self) -> "DownstreamConnector":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def list_tools(self) -> list[types.Tool]:
        """Fetch the downstream tool catalog.

        Returns:
            list[types.Tool]: Downstream tools, or an empty list if the call fails
        """
        if self._session is None:
            logger.error("list_tools called before connect", server_id=self.server_id)
            return []

        try:
            result = await self._session.list_tools()
        except Exception as e:
            logger.error("Failed to list downstream tools", server_id=self.server_id, error=str(e))
            return []
        return list(result.tools)

    async def call_tool(self, tool_name: str, arguments: dict[str, Any] | None) -> types.CallToolResult:
        """Forward a tool call verbatim; failures come back as error results.

        Args:
            tool_name: Downstream tool name
            arguments: Arguments passed through unchanged

        Returns:
            types.CallToolResult: Downstream result, or an ``isError`` result
        """
        try:
            if self._session is None:
                raise DownstreamCallError(tool_name, "not connected")
            async with AsyncTimer(f"downstream call {tool_name}", logger):
                return await self._session.call_tool(tool_name, arguments=arguments)
        except DownstreamCallError as e:
            logger.error("Downstream call failed", tool_name=tool_name, error=str(e))
            return error_result(str(e))
        except Exception as e:
            error = DownstreamCallError(tool_name, str(e) or type(e).__name__)
            logger.error("Downstream call failed", tool_name=tool_name, error=str(error))
            return error_result(str(error))


def error_result(message: str) -> types.CallToolResult:
    """Build an ``isError`` tool result carrying one text block."""
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=message)],
        isError=True,
    )
