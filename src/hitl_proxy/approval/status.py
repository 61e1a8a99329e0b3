"""Bounded server-side wait for approval task status.

A human may take minutes to answer a push, but a tool call should not hold
the transport that long. ``StatusChecker.check`` polls the task manager for a
short window and hands back the last PENDING observation when the window
runs out, so the caller simply asks again.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from hitl_proxy.approval.tasks import ApprovalTaskManager, TaskQueryResult
from hitl_proxy.logging import get_logger

logger = get_logger("hitl_proxy.approval.status")


class StatusChecker:
    """Polls one task until it resolves or the wait window elapses.

    Attributes:
        window: Maximum seconds spent inside one ``check`` call
        interval: Seconds slept between consecutive queries
    """

    def __init__(
        self,
        manager: ApprovalTaskManager,
        window: float = 10.0,
        interval: float = 4.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the checker.

        Args:
            manager: Task manager to query
            window: Total wait window in seconds
            interval: Sleep between attempts in seconds
            clock: Monotonic clock, injectable for tests
            sleep: Cooperative sleep, injectable for tests
        """
        if window <= 0 or interval <= 0:
            raise ValueError("window and interval must be positive")
        self.manager = manager
        self.window = window
        self.interval = interval
        self._clock = clock
        self._sleep = sleep

    async def check(self, task_id: str) -> TaskQueryResult:
        """Wait a bounded time for a task to leave PENDING.

        Args:
            task_id: Task to check

        Returns:
            TaskQueryResult: The first non-PENDING result, or the last PENDING
            one if the window elapsed
        """
        deadline = self._clock() + self.window
        attempts = 0

        while True:
            attempts += 1
            result = await self.manager.query(task_id)
            if not result.is_pending:
                logger.debug(
                    "Status check finished",
                    task_id=task_id,
                    state=result.state.value,
                    attempts=attempts,
                )
                return result

            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.info("Status check window elapsed", task_id=task_id, attempts=attempts)
                return result

            await self._sleep(min(self.interval, remaining))
