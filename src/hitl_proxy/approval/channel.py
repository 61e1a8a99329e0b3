"""Out-of-band approval channel.

The channel sends a push to a human approver and is later polled for the
decision. Okta's direct-authentication OOB grant only signals success
(approved) or an error (still pending, denied, expired, or a transport
failure). ``check_approval`` turns that binary signal into an explicit
``ApprovalCheck`` so callers can branch on all three outcomes.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, Field
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from hitl_proxy.config import Settings, get_settings
from hitl_proxy.exceptions import ApprovalChannelError
from hitl_proxy.logging import get_logger

logger = get_logger("hitl_proxy.approval.channel")

OOB_GRANT_TYPE = "urn:okta:params:oauth:grant-type:oob"

# Token endpoint error codes that mean "ask again later"
PENDING_ERRORS = frozenset({"authorization_pending", "slow_down"})


class ApprovalDecision(str, Enum):
    """Decision reported by the channel for one out-of-band code."""

    APPROVED = "approved"
    PENDING = "pending"
    DENIED = "denied"  # denied, expired, or channel failure


class ApprovalCheck(BaseModel):
    """Result of polling the channel once."""

    decision: ApprovalDecision = Field(..., description="Three-way decision")
    error: str | None = Field(default=None, description="Channel error code, if any")
    detail: str | None = Field(default=None, description="Human-readable failure detail")

    @classmethod
    def approved(cls) -> "ApprovalCheck":
        return cls(decision=ApprovalDecision.APPROVED)

    @classmethod
    def pending(cls, error: str | None = None) -> "ApprovalCheck":
        return cls(decision=ApprovalDecision.PENDING, error=error)

    @classmethod
    def denied(cls, error: str | None = None, detail: str | None = None) -> "ApprovalCheck":
        return cls(decision=ApprovalDecision.DENIED, error=error, detail=detail)


class ApprovalChannel(ABC):
    """Interface to an external human approval service."""

    @abstractmethod
    async def send_approval_request(self, approver: str) -> str:
        """Push an approval request to an approver.

        Args:
            approver: Login of the human who should approve

        Returns:
            str: Opaque out-of-band code identifying the request

        Raises:
            ApprovalChannelError: If the channel refuses or cannot be reached
        """

    @abstractmethod
    async def check_approval(self, oob_code: str) -> ApprovalCheck:
        """Ask the channel for the current decision on a request.

        Channel failures are reported as ``DENIED`` rather than raised.

        Args:
            oob_code: Code returned by ``send_approval_request``

        Returns:
            ApprovalCheck: Current decision
        """

    async def close(self) -> None:
        """Release any resources held by the channel."""


class OktaApprovalChannel(ApprovalChannel):
    """Okta Verify push approval via the OAuth 2.0 OOB direct-auth grant.

    Attributes:
        base_url: Okta org URL
        client_id: OAuth client ID
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the channel.

        Args:
            settings: Settings instance (uses global if not provided)
            transport: Optional httpx transport, mainly for tests
        """
        self.settings = settings or get_settings()
        self.base_url = self.settings.okta_base_url
        self.client_id = self.settings.okta_client_id
        self.timeout = self.settings.okta_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    def _credentials(self) -> dict[str, str]:
        return {
            "client_id": self.client_id,
            "client_secret": self.settings.okta_client_secret.get_secret_value(),
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @retry(
        retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _primary_authenticate(self, approver: str) -> httpx.Response:
        client = self._get_client()
        return await client.post(
            "/oauth2/v1/primary-authenticate",
            data={
                **self._credentials(),
                "login_hint": approver,
                "channel_hint": "push",
                "challenge_hint": OOB_GRANT_TYPE,
            },
        )

    async def send_approval_request(self, approver: str) -> str:
        logger.info("Sending approval push", approver=approver)
        try:
            response = await self._primary_authenticate(approver)
        except httpx.HTTPError as e:
            raise ApprovalChannelError(f"Failed to reach Okta at {self.base_url}: {e}") from e

        body = _json_body(response)
        if response.status_code != 200:
            error = body.get("error")
            description = body.get("error_description") or response.text
            raise ApprovalChannelError(
                f"Okta rejected approval request: {description}",
                error=error,
                status_code=response.status_code,
            )

        oob_code = body.get("oob_code")
        if not oob_code:
            raise ApprovalChannelError("Okta response did not include an oob_code")

        logger.debug("Approval push sent", expires_in=body.get("expires_in"))
        return oob_code

    async def check_approval(self, oob_code: str) -> ApprovalCheck:
        client = self._get_client()
        try:
            response = await client.post(
                "/oauth2/v1/token",
                data={
                    **self._credentials(),
                    "grant_type": OOB_GRANT_TYPE,
                    "oob_code": oob_code,
                    "scope": "openid",
                },
            )
        except httpx.HTTPError as e:
            logger.warning("Approval poll failed", error=str(e))
            return ApprovalCheck.denied(error="network_error", detail=str(e))

        if response.status_code == 200:
            return ApprovalCheck.approved()

        body = _json_body(response)
        error = body.get("error")
        if error in PENDING_ERRORS:
            return ApprovalCheck.pending(error=error)

        return ApprovalCheck.denied(
            error=error,
            detail=body.get("error_description") or f"HTTP {response.status_code}",
        )


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
