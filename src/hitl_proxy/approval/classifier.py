"""Risk classification for downstream tools.

This module provides the RiskClassifier which decides, per downstream
server, whether a tool is blocked, needs human approval, or can be forwarded
as is.
"""

from enum import Enum

from hitl_proxy.servers import ServerRegistry
from hitl_proxy.logging import get_logger

logger = get_logger("hitl_proxy.approval.classifier")


class RiskTier(str, Enum):
    """Risk tier of a tool on a given downstream server."""

    BLOCKED = "blocked"  # Never forwarded
    HIGH_RISK = "high_risk"  # Deferred behind out-of-band approval
    NORMAL = "normal"  # Forwarded directly

    @property
    def requires_approval(self) -> bool:
        """Check if calls in this tier wait for a human decision."""
        return self == RiskTier.HIGH_RISK

    def __str__(self) -> str:
        return self.value


class RiskClassifier:
    """Pure lookup of tool risk tiers against the static server registry.

    The blocklist takes precedence when a name appears in both lists.
    """

    def __init__(self, registry: ServerRegistry):
        """Initialize the classifier.

        Args:
            registry: Validated downstream server registry
        """
        self.registry = registry

    def classify(self, server_id: str, tool_name: str) -> RiskTier:
        """Classify a tool on a downstream server.

        Args:
            server_id: Downstream server identifier
            tool_name: Name of the requested tool

        Returns:
            RiskTier: The tool's tier

        Raises:
            ConfigurationError: If the server identifier is unknown
        """
        config = self.registry.get_config(server_id)

        if tool_name in config.blocked_tools:
            tier = RiskTier.BLOCKED
        elif tool_name in config.high_risk_tools:
            tier = RiskTier.HIGH_RISK
        else:
            tier = RiskTier.NORMAL

        logger.debug("Classified tool", server_id=server_id, tool_name=tool_name, tier=tier.value)
        return tier

    def list_high_risk_tools(self, server_id: str) -> list[str]:
        """List the high-risk tool names of a server in configured order.

        Raises:
            ConfigurationError: If the server identifier is unknown
        """
        return list(self.registry.get_config(server_id).high_risk_tools)

    def list_blocked_tools(self, server_id: str) -> list[str]:
        """List the blocked tool names of a server in configured order.

        Raises:
            ConfigurationError: If the server identifier is unknown
        """
        return list(self.registry.get_config(server_id).blocked_tools)
