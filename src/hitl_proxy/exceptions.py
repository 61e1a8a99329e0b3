"""Custom exceptions for the HITL proxy."""


class HitlProxyError(Exception):
    """Base exception for all proxy errors."""

    pass


class ConfigurationError(HitlProxyError):
    """Raised when a downstream server identifier or its config is invalid."""

    def __init__(self, message: str, server_id: str | None = None):
        """Initialize with an optional server identifier.

        Args:
            message: Human-readable description of the problem
            server_id: The server identifier involved, if any
        """
        super().__init__(message)
        self.server_id = server_id


class BlockedToolError(HitlProxyError):
    """Raised when a tool is on the server's blocklist."""

    def __init__(self, tool_name: str):
        """Initialize with the blocked tool name.

        Args:
            tool_name: Name of the tool that was rejected
        """
        self.tool_name = tool_name
        super().__init__(f"Access to {tool_name} has been blocked.")


class ApprovalChannelError(HitlProxyError):
    """Raised when the out-of-band approval channel cannot be reached or rejects a request."""

    def __init__(
        self,
        message: str,
        error: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.error = error
        self.status_code = status_code


class ApprovalSetupError(HitlProxyError):
    """Raised when the initial approval request fails; no task is created."""

    def __init__(self, tool_name: str, detail: str):
        """Initialize with the tool name and failure detail.

        Args:
            tool_name: Tool whose approval could not be requested
            detail: Why the approval channel refused the request
        """
        self.tool_name = tool_name
        self.detail = detail
        super().__init__(f"Authorization setup failed: {detail}")


class ApprovalDenialOrExpiry(HitlProxyError):
    """Raised when the approval channel reports a terminal negative for a task."""

    def __init__(self, task_id: str, error: str | None = None, detail: str | None = None):
        self.task_id = task_id
        self.error = error
        self.detail = detail
        super().__init__(
            f"Task {task_id} approval failed or was denied. Status: {error or 'DENIED/FAILED'}."
        )


class DownstreamConnectionError(HitlProxyError):
    """Raised when the downstream server cannot be launched or initialized."""

    pass


class DownstreamCallError(HitlProxyError):
    """Raised when forwarding a call to the downstream server fails."""

    def __init__(self, tool_name: str, detail: str):
        self.tool_name = tool_name
        self.detail = detail
        super().__init__(f"Downstream call to {tool_name} failed: {detail}")
