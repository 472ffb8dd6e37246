"""Defines the abstract base class for the host event loop.

The connection manager and its transports are single-threaded and
event-driven: every state transition happens in a callback or task on one
asyncio event loop. The `TaskManager` is the only way they reach that loop.

Two implementations exist:

- `LoopTaskManager` adopts a loop that is already running (an asyncio
  application, or a test case).
- `ThreadedTaskManager` runs its own loop in a daemon thread so that a
  synchronous program, such as the interactive console, can drive the
  manager from its main thread.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Coroutine


class TaskManager(ABC):
    """Abstract Base Class for managing an asyncio event loop and tasks."""

    @abstractmethod
    def ensure_loop_running(self) -> None:
        """Ensures that the managed asyncio event loop is running.

        Raises:
            TaskManagerError: If the loop cannot be started or found.
        """
        pass

    @abstractmethod
    def get_loop(self) -> asyncio.AbstractEventLoop:
        """Returns the managed event loop, making sure it is running first.

        Raises:
            LoopNotRunningError: If no loop is available.
        """
        pass

    @abstractmethod
    def is_loop_running(self) -> bool:
        """Checks if the managed asyncio event loop is currently running."""
        pass

    @abstractmethod
    def submit_task(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Schedules a coroutine on the managed loop and returns its task.

        Non-blocking. Implementations that own a loop in another thread must
        make this safe to call from any thread.
        """
        pass

    @abstractmethod
    def call_later(self, delay_seconds: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        """Schedules `callback(*args)` to run on the loop after a delay.

        Must be called from the loop thread. The returned handle can be
        cancelled with `handle.cancel()`.
        """
        pass

    @abstractmethod
    def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> None:
        """Schedules `callback(*args)` on the loop from any thread."""
        pass

    @abstractmethod
    def stop_loop(self) -> None:
        """Requests the managed event loop to shut down.

        Non-blocking. A no-op for implementations that do not own their loop.
        """
        pass

    @abstractmethod
    def wait_for_stop(self) -> None:
        """Blocks until the managed event loop has fully stopped.

        A no-op for implementations that do not own their loop.
        """
        pass
