"""Approval system for high-risk tool calls.

This package provides risk classification, the out-of-band approval channel,
the approval task state machine and the bounded status check.
"""

from hitl_proxy.approval.classifier import RiskClassifier, RiskTier
from hitl_proxy.approval.channel import (
    ApprovalChannel,
    ApprovalCheck,
    ApprovalDecision,
    OktaApprovalChannel,
)
from hitl_proxy.approval.tasks import (
    ApprovalTask,
    ApprovalTaskManager,
    QueryState,
    TaskQueryResult,
    TaskStatus,
)
from hitl_proxy.approval.status import StatusChecker

__all__ = [
    "RiskClassifier",
    "RiskTier",
    "ApprovalChannel",
    "ApprovalCheck",
    "ApprovalDecision",
    "OktaApprovalChannel",
    "ApprovalTask",
    "ApprovalTaskManager",
    "QueryState",
    "TaskQueryResult",
    "TaskStatus",
    "StatusChecker",
]
