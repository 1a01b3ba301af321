"""
Background dispatch for fire-and-forget work.

Notification delivery launched from a workflow action must never fail that
action. The dispatcher keeps a strong reference to every task it starts,
logs failures when they finish, and lets callers wait for outstanding work.
"""

import asyncio
import logging
from typing import Any, Coroutine, Dict, List

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    """Runs detached coroutines on the current event loop."""

    def __init__(self):
        self._tasks: Dict[asyncio.Task, str] = {}

    @property
    def pending(self) -> int:
        """Number of tasks that have not finished yet."""
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], description: str = "background task") -> asyncio.Task:
        """
        Start a coroutine without awaiting it.

        Args:
            coro: Coroutine to run
            description: Label used when logging a failure

        Returns:
            The scheduled task
        """
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks[task] = description
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        description = self._tasks.pop(task, "background task")
        if task.cancelled():
            logger.debug(f"Background task cancelled: {description}")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background task failed ({description}): {error}")

    async def drain(self) -> None:
        """Wait until every spawned task (including ones spawned while waiting) has finished."""
        while self._tasks:
            tasks: List[asyncio.Task] = list(self._tasks)
            await asyncio.gather(*tasks, return_exceptions=True)
