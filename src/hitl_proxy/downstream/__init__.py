"""Connection to the downstream MCP tool server."""

from hitl_proxy.downstream.connector import DownstreamConnector, error_result

__all__ = ["DownstreamConnector", "error_result"]
