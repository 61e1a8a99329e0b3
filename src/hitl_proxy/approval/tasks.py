"""Approval task state machine.

An ApprovalTask tracks one deferred high-risk tool call. It is created
PENDING when the approval channel accepts a push request, and leaves the live
set the moment it reaches a terminal state:

    PENDING --(channel approves)--> APPROVED (downstream executed once), removed
    PENDING --(denied/expired/error)--> DENIED, removed

A removed task id always reports NOT_FOUND afterwards. Tasks live only in
memory; nothing survives a restart.
"""

import asyncio
import copy
import secrets
import string
import time
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

from mcp import types
from pydantic import BaseModel, Field

from hitl_proxy.approval.channel import ApprovalChannel, ApprovalCheck, ApprovalDecision
from hitl_proxy.exceptions import ApprovalChannelError, ApprovalSetupError
from hitl_proxy.logging import get_logger

logger = get_logger("hitl_proxy.approval.tasks")

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


class TaskStatus(str, Enum):
    """Lifecycle state of an approval task."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"

    @property
    def is_terminal(self) -> bool:
        return self != TaskStatus.PENDING


class QueryState(str, Enum):
    """Outcome kind of a single task query."""

    NOT_FOUND = "NOT_FOUND"
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"


class ApprovalTask(BaseModel):
    """A high-risk tool call waiting for human approval."""

    task_id: str = Field(..., description="Unique identifier for the process lifetime")
    tool_name: str = Field(..., description="Downstream tool to run once approved")
    arguments: dict[str, Any] = Field(default_factory=dict, description="Captured call arguments")
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    oob_code: str = Field(..., description="Out-of-band code from the approval channel")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class TaskQueryResult(BaseModel):
    """What a single query observed about a task."""

    state: QueryState
    task_id: str
    tool_name: str | None = None
    outcome: TaskStatus | None = Field(default=None, description="Terminal status when RESOLVED")
    execution_result: types.CallToolResult | None = Field(
        default=None,
        description="Downstream result when the task was approved and executed",
    )
    error: str | None = Field(default=None, description="Channel error code on denial")
    detail: str | None = Field(default=None, description="Failure detail on denial")

    @property
    def is_pending(self) -> bool:
        return self.state == QueryState.PENDING

    @classmethod
    def not_found(cls, task_id: str) -> "TaskQueryResult":
        return cls(state=QueryState.NOT_FOUND, task_id=task_id)

    @classmethod
    def pending(cls, task: ApprovalTask) -> "TaskQueryResult":
        return cls(state=QueryState.PENDING, task_id=task.task_id, tool_name=task.tool_name)

    @classmethod
    def approved(cls, task: ApprovalTask, result: types.CallToolResult) -> "TaskQueryResult":
        return cls(
            state=QueryState.RESOLVED,
            task_id=task.task_id,
            tool_name=task.tool_name,
            outcome=TaskStatus.APPROVED,
            execution_result=result,
        )

    @classmethod
    def denied(
        cls,
        task: ApprovalTask,
        error: str | None = None,
        detail: str | None = None,
    ) -> "TaskQueryResult":
        return cls(
            state=QueryState.RESOLVED,
            task_id=task.task_id,
            tool_name=task.tool_name,
            outcome=TaskStatus.DENIED,
            error=error,
            detail=detail,
        )


class ToolCaller(Protocol):
    """Anything that can execute a downstream tool call."""

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> types.CallToolResult: ...


class _TaskEntry:
    """A live task plus the lock serializing its resolution."""

    __slots__ = ("task", "lock")

    def __init__(self, task: ApprovalTask):
        self.task = task
        self.lock = asyncio.Lock()


class ApprovalTaskManager:
    """Owns the live set of approval tasks and drives their transitions.

    Each manager keeps its own store, so separate instances never share
    tasks. Resolution of one task is serialized by a per-task lock; queries
    for different tasks run concurrently.
    """

    def __init__(
        self,
        channel: ApprovalChannel,
        downstream: ToolCaller,
        approver_identity: str,
    ):
        """Initialize the task manager.

        Args:
            channel: External approval channel
            downstream: Executor used once a task is approved
            approver_identity: Login that receives every approval push
        """
        self.channel = channel
        self.downstream = downstream
        self.approver_identity = approver_identity
        self._tasks: dict[str, _TaskEntry] = {}
        # Suffixes already used in the newest id millisecond; older ones can't recur
        self._id_millis = 0
        self._id_suffixes: set[str] = set()

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    @property
    def pending_count(self) -> int:
        """Number of tasks still awaiting a decision."""
        return len(self._tasks)

    def get(self, task_id: str) -> ApprovalTask | None:
        """Get a live task by id, or None if absent."""
        entry = self._tasks.get(task_id)
        return entry.task if entry else None

    def _new_task_id(self) -> str:
        # Never step back, so a wall-clock adjustment can't revisit an old millisecond
        millis = max(int(time.time() * 1000), self._id_millis)
        if millis != self._id_millis:
            self._id_millis = millis
            self._id_suffixes.clear()
        while True:
            suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(4))
            if suffix not in self._id_suffixes:
                self._id_suffixes.add(suffix)
                return f"task-{millis}-{suffix}"

    async def create(self, tool_name: str, arguments: dict[str, Any] | None) -> ApprovalTask:
        """Request approval for a tool call and register a pending task.

        Args:
            tool_name: High-risk tool to defer
            arguments: Call arguments, copied so later caller mutation has no effect

        Returns:
            ApprovalTask: The new PENDING task

        Raises:
            ApprovalSetupError: If the approval channel rejects the request
        """
        task_id = self._new_task_id()
        logger.info(
            "Initiating approval",
            tool_name=tool_name,
            task_id=task_id,
            approver=self.approver_identity,
        )

        try:
            oob_code = await self.channel.send_approval_request(self.approver_identity)
        except ApprovalChannelError as e:
            logger.error("Failed to initiate approval", tool_name=tool_name, error=str(e))
            raise ApprovalSetupError(tool_name, str(e)) from e

        task = ApprovalTask(
            task_id=task_id,
            tool_name=tool_name,
            arguments=copy.deepcopy(arguments or {}),
            oob_code=oob_code,
        )
        self._tasks[task_id] = _TaskEntry(task)
        logger.info("Task added to pending tasks", task_id=task_id, tool_name=tool_name)
        return task

    async def query(self, task_id: str) -> TaskQueryResult:
        """Poll the approval channel once for a task and apply the outcome.

        Args:
            task_id: Task to query

        Returns:
            TaskQueryResult: NOT_FOUND, PENDING, or RESOLVED with the outcome
        """
        entry = self._tasks.get(task_id)
        if entry is None:
            logger.warning("Task not found", task_id=task_id)
            return TaskQueryResult.not_found(task_id)

        async with entry.lock:
            # Another query may have resolved the task while we waited.
            if self._tasks.get(task_id) is not entry:
                return TaskQueryResult.not_found(task_id)

            task = entry.task
            logger.debug("Polling approval status", task_id=task_id)
            try:
                check = await self.channel.check_approval(task.oob_code)
            except ApprovalChannelError as e:
                check = ApprovalCheck.denied(error=e.error or "channel_error", detail=str(e))

            match check.decision:
                case ApprovalDecision.PENDING:
                    logger.info("Task still pending approval", task_id=task_id)
                    return TaskQueryResult.pending(task)

                case ApprovalDecision.APPROVED:
                    self._resolve(entry, TaskStatus.APPROVED)
                    logger.info(
                        "Task approved, executing downstream tool",
                        task_id=task_id,
                        tool_name=task.tool_name,
                    )
                    result = await self.downstream.call_tool(task.tool_name, task.arguments)
                    return TaskQueryResult.approved(task, result)

                case ApprovalDecision.DENIED:
                    self._resolve(entry, TaskStatus.DENIED)
                    logger.warning(
                        "Task failed or was denied",
                        task_id=task_id,
                        error=check.error,
                        detail=check.detail,
                    )
                    return TaskQueryResult.denied(task, error=check.error, detail=check.detail)

            raise AssertionError(f"Unhandled approval decision: {check.decision}")

    def _resolve(self, entry: _TaskEntry, status: TaskStatus) -> None:
        # Must be called with entry.lock held.
        entry.task.status = status
        del self._tasks[entry.task.task_id]
