"""TaskManager adapter for an event loop that is already running.

Applications built on asyncio already own a loop; the connection manager
should simply run on it. `LoopTaskManager` captures that loop (the running
loop at first use, or one passed in explicitly) and never starts or stops it.
"""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Optional

from .task_manager import TaskManager
from .exceptions import LoopNotRunningError, TaskSubmissionError

logger = logging.getLogger(__name__)


class LoopTaskManager(TaskManager):
    """Schedules work on an externally managed asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop: Optional[asyncio.AbstractEventLoop] = loop

    def _ensure_initialized(self) -> None:
        """Captures the running loop if no loop was given at construction.

        Raises:
            LoopNotRunningError: If called outside a running event loop.
        """
        if self._loop is not None:
            return
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise LoopNotRunningError("LoopTaskManager must first be used from inside a running event loop.") from e
        logger.debug(f"LoopTaskManager adopted running loop: {self._loop}")

    def ensure_loop_running(self) -> None:
        self._ensure_initialized()

    def is_loop_running(self) -> bool:
        try:
            self._ensure_initialized()
        except LoopNotRunningError:
            return False
        return bool(self._loop and self._loop.is_running())

    def get_loop(self) -> asyncio.AbstractEventLoop:
        self._ensure_initialized()
        if not self._loop: # pragma: no cover
            raise LoopNotRunningError("Event loop reference is not available.")
        return self._loop

    def submit_task(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Schedules the coroutine as a task on the adopted loop.

        Raises:
            TaskSubmissionError: If the loop refuses the task (e.g. it is closed).
        """
        loop = self.get_loop()
        try:
            return loop.create_task(coro)
        except RuntimeError as e:
            coro.close()
            logger.exception(f"LoopTaskManager: Error submitting task: {e}")
            raise TaskSubmissionError(f"Failed to submit task: {e}", original_exception=e) from e

    def call_later(self, delay_seconds: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return self.get_loop().call_later(delay_seconds, callback, *args)

    def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> None:
        self.get_loop().call_soon_threadsafe(callback, *args)

    def stop_loop(self) -> None:
        """Does nothing; the loop belongs to the application."""
        logger.debug("LoopTaskManager.stop_loop() called. The adopted loop is not owned; nothing to do.")

    def wait_for_stop(self) -> None:
        """Returns immediately; there is no owned loop to wait for."""
        logger.debug("LoopTaskManager.wait_for_stop() called. The adopted loop is not owned; nothing to do.")
