"""HITL Proxy - Human-in-the-loop gateway for MCP tool servers.

Sits between an MCP client and a downstream MCP server, blocking or deferring
risky tool calls until a human approves them out of band.
"""

__version__ = "0.1.0"

from hitl_proxy.config import Settings, get_settings, reload_settings

__all__ = ["Settings", "get_settings", "reload_settings", "__version__"]
