"""Strict FIFO queue of asynchronous benchmark tasks.

Tasks are zero-argument coroutine functions. ``drain`` awaits them one at a
time in insertion order and yields each result before starting the next task,
so no two tasks ever overlap.
"""

from __future__ import annotations

from collections import deque
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar

from .logger import logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

T = TypeVar("T")


class QueueState(str, Enum):
    """Drain cycle state."""

    IDLE = "idle"
    DRAINING = "draining"


class TaskQueue(Generic[T]):
    """FIFO scheduler that drains tasks sequentially and survives task failures."""

    def __init__(self) -> None:
        """Initialise an empty, idle queue."""
        self._pending: deque[Callable[[], Awaitable[T]]] = deque()
        self._state = QueueState.IDLE

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def state(self) -> QueueState:
        """Current drain state."""
        return self._state

    @property
    def is_draining(self) -> bool:
        """Whether a drain cycle is in progress."""
        return self._state is QueueState.DRAINING

    def enqueue(self, task: Callable[[], Awaitable[T]]) -> None:
        """Append ``task`` to the tail. Allowed at any time, including mid-drain."""
        self._pending.append(task)

    async def drain(
        self, on_error: Callable[[Exception], None] | None = None
    ) -> AsyncIterator[T]:
        """Run pending tasks in order, yielding each result as it completes.

        A failing task is logged and handed to ``on_error``; draining then
        continues with the next task. Tasks enqueued while draining are run
        before the drain finishes. If the drain itself stops early, tasks
        still pending are discarded so the next cycle starts from an empty queue.

        Args:
            on_error: Optional callback receiving each task's exception.

        Yields:
            The result of each task that completed successfully.

        Raises:
            RuntimeError: If another drain is already in progress.
        """
        if self._state is QueueState.DRAINING:
            msg = "Task queue is already draining"
            raise RuntimeError(msg)

        self._state = QueueState.DRAINING
        try:
            while self._pending:
                task = self._pending.popleft()
                try:
                    result = await task()
                except Exception as e:
                    logger.exception("❌ Task execution failed")
                    if on_error is not None:
                        on_error(e)
                    continue
                yield result
        finally:
            if self._pending:
                # Drain stopped early (cancelled or the consumer failed)
                logger.warning(
                    "⚠️ Drain interrupted, discarding %d pending task(s)", len(self._pending)
                )
                self._pending.clear()
            self._state = QueueState.IDLE

