"""TaskManager that owns an asyncio loop running in a background thread.

Synchronous programs (the interactive console reads stdin with a blocking
`input()`) cannot run the event loop on their main thread. The
`ThreadedTaskManager` runs the loop in a daemon thread instead, and exposes
thread-safe entry points (`submit_task`, `call_soon_threadsafe`) that the
main thread uses to marshal every connection manager call onto that loop.
Everything that touches connection state still runs on the single loop
thread.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Callable, Coroutine, Optional, Set

from .task_manager import TaskManager
from .exceptions import LoopNotRunningError, TaskSubmissionError, TaskManagerError

logger = logging.getLogger(__name__)

_LOOP_STARTUP_TIMEOUT_SECONDS = 10.0
_TASK_REF_TIMEOUT_SECONDS = 5.0


class ThreadedTaskManager(TaskManager):
    """Runs an asyncio event loop in a dedicated daemon thread.

    The loop and its thread are started lazily by the first call that needs
    them, usually `ensure_loop_running()`. `stop_loop()` followed by
    `wait_for_stop()` cancels outstanding tasks and closes the loop.
    """

    def __init__(self, thread_name: str = "TetherAsyncLoop"):
        self._thread_name = thread_name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        # Guards _loop, _loop_thread and _shutdown_event_async across threads.
        self._lock = threading.RLock()

        self._loop_startup_event = threading.Event()
        self._loop_startup_exception: Optional[BaseException] = None
        self._loop_stopped_event = threading.Event()

        # Created on the loop thread; set to end _main_loop_coro.
        self._shutdown_event_async: Optional[asyncio.Event] = None

        self._active_tasks: Set[asyncio.Task] = set()

    def _run_loop_thread_target(self) -> None:
        """Body of the loop thread: create the loop, run it, clean it up."""
        loop_for_this_thread: Optional[asyncio.AbstractEventLoop] = None
        try:
            loop_for_this_thread = asyncio.new_event_loop()
            asyncio.set_event_loop(loop_for_this_thread)

            with self._lock:
                self._loop = loop_for_this_thread
                self._shutdown_event_async = asyncio.Event()

            logger.info(f"Event loop thread (TID: {threading.get_ident()}) initialized its event loop.")
            # The loop is only "running" once run_until_complete starts, so
            # readiness is signalled from a callback scheduled inside it.
            loop_for_this_thread.call_soon(self._loop_startup_event.set)
            loop_for_this_thread.run_until_complete(self._main_loop_coro())

        except Exception as e:
            logger.exception(f"Event loop thread (TID: {threading.get_ident()}) encountered a fatal error: {e}")
            if not self._loop_startup_event.is_set():
                self._loop_startup_exception = e
                self._loop_startup_event.set()
        finally:
            logger.info(f"Event loop thread (TID: {threading.get_ident()}) is shutting down its loop.")
            if loop_for_this_thread and not loop_for_this_thread.is_closed():
                try:
                    loop_for_this_thread.run_until_complete(self._perform_loop_cleanup())
                except Exception as e_cleanup: # pragma: no cover
                    logger.error(f"Error during event loop cleanup: {e_cleanup}")
                finally:
                    loop_for_this_thread.close()
                    logger.info("Event loop closed.")

            with self._lock:
                if self._loop is loop_for_this_thread:
                    self._loop = None
                    self._shutdown_event_async = None

            self._loop_stopped_event.set()
            logger.debug("Loop stopped event has been set.")

    async def _main_loop_coro(self) -> None:
        """Keeps the loop alive until `stop_loop()` sets the shutdown event."""
        if not self._shutdown_event_async: # pragma: no cover
            logger.error("_main_loop_coro: _shutdown_event_async is None. Cannot wait for shutdown.")
            return
        await self._shutdown_event_async.wait()
        logger.debug("Event loop's main coroutine received shutdown signal. Exiting.")

    async def _perform_loop_cleanup(self) -> None:
        """Cancels outstanding tasks and shuts down async generators."""
        tasks_to_cancel = list(self._active_tasks)
        self._active_tasks.clear()

        if tasks_to_cancel:
            logger.debug(f"Cancelling {len(tasks_to_cancel)} active tasks managed by this TaskManager.")
            for task in tasks_to_cancel:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks_to_cancel, return_exceptions=True)

        current_loop = asyncio.get_running_loop()
        try:
            await current_loop.shutdown_asyncgens()
        except Exception as e_gens: # pragma: no cover
            logger.exception(f"Unexpected error during shutdown_asyncgens: {e_gens}")

    def ensure_loop_running(self) -> None:
        """Starts the loop thread if needed and waits until the loop runs."""
        with self._lock:
            if self.is_loop_running():
                return

            if self._loop_thread and self._loop_thread.is_alive(): # pragma: no cover
                logger.warning("ensure_loop_running: Loop thread is alive but state is inconsistent. Attempting to join old thread.")
                self._loop_thread.join(timeout=0.1)

            self._loop_startup_event.clear()
            self._loop_stopped_event.clear()
            self._loop_startup_exception = None
            self._loop = None
            self._shutdown_event_async = None

            logger.info("ensure_loop_running: Initializing and starting event loop thread.")
            self._loop_thread = threading.Thread(
                target=self._run_loop_thread_target,
                daemon=True,
                name=self._thread_name,
            )
            self._loop_thread.start()

        if not self._loop_startup_event.wait(timeout=_LOOP_STARTUP_TIMEOUT_SECONDS):
            raise TaskManagerError(f"Timeout ({_LOOP_STARTUP_TIMEOUT_SECONDS}s) waiting for event loop thread to initialize.")

        with self._lock:
            if self._loop_startup_exception:
                raise TaskManagerError("Event loop thread failed during startup.", original_exception=self._loop_startup_exception)
            if not self._loop or not self._loop.is_running(): # pragma: no cover
                raise TaskManagerError("Loop startup event was set, but the event loop is not running.")
        logger.info("Event loop thread started and asyncio loop initialized successfully.")

    def is_loop_running(self) -> bool:
        with self._lock:
            return bool(self._loop_thread and self._loop_thread.is_alive() and self._loop and self._loop.is_running())

    def is_loop_thread(self) -> bool:
        """True when called from the thread that runs the managed loop."""
        return self._loop_thread is not None and threading.current_thread() is self._loop_thread

    def get_loop(self) -> asyncio.AbstractEventLoop:
        self.ensure_loop_running()
        with self._lock:
            if not self._loop: # pragma: no cover
                raise LoopNotRunningError("Event loop is None after ensure_loop_running succeeded.")
            return self._loop

    def _track_task(self, task: asyncio.Task) -> None:
        self._active_tasks.add(task)
        task.add_done_callback(self._active_tasks.discard)

    def _schedule_task_in_loop(self, coro: Coroutine[Any, Any, Any], task_ref_future: concurrent.futures.Future) -> None:
        """Creates the task on the loop thread; called via `call_soon_threadsafe`."""
        if not (loop_for_task := self._loop) or loop_for_task.is_closed(): # pragma: no cover
            coro.close()
            task_ref_future.set_exception(LoopNotRunningError("Event loop not available or closed for task creation."))
            return
        try:
            task = loop_for_task.create_task(coro)
            self._track_task(task)
            task_ref_future.set_result(task)
        except Exception as e: # pragma: no cover
            task_ref_future.set_exception(TaskSubmissionError(f"Failed to create task in event loop: {e}", original_exception=e))

    def submit_task(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Submits a coroutine to the managed loop from any thread."""
        loop = self.get_loop()
        try:
            if asyncio.get_running_loop() is loop:
                task = loop.create_task(coro)
                self._track_task(task)
                return task
        except RuntimeError:
            # Not on the loop thread.
            pass

        cf_future_for_task_ref: concurrent.futures.Future = concurrent.futures.Future()
        loop.call_soon_threadsafe(self._schedule_task_in_loop, coro, cf_future_for_task_ref)
        try:
            return cf_future_for_task_ref.result(timeout=_TASK_REF_TIMEOUT_SECONDS)
        except concurrent.futures.TimeoutError as e:
            raise TaskSubmissionError(f"Timeout ({_TASK_REF_TIMEOUT_SECONDS}s) waiting for asyncio.Task reference.", original_exception=e) from e
        except Exception as e_get_ref:
            raise TaskSubmissionError("Failed to obtain asyncio.Task reference.", original_exception=e_get_ref) from e_get_ref

    def call_later(self, delay_seconds: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        loop = self.get_loop()
        if not self.is_loop_thread():
            raise TaskSubmissionError("call_later must be called from the event loop thread; use call_soon_threadsafe.")
        return loop.call_later(delay_seconds, callback, *args)

    def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> None:
        loop = self.get_loop()
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError as e: # Loop closing.
            raise TaskSubmissionError("Failed to schedule callback on the event loop.", original_exception=e) from e

    def run_threadsafe(self, coro: Coroutine[Any, Any, Any], timeout: Optional[float] = None) -> Any:
        """Runs a coroutine on the loop and blocks the calling thread for its result.

        Must not be called from the loop thread itself.
        """
        loop = self.get_loop()
        if self.is_loop_thread():
            coro.close()
            raise TaskSubmissionError("run_threadsafe would deadlock when called from the event loop thread.")
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        return future.result(timeout=timeout)

    def stop_loop(self) -> None:
        with self._lock:
            if (loop_ref := self._loop) and not loop_ref.is_closed() and \
               (async_shutdown_event_ref := self._shutdown_event_async) and \
               not async_shutdown_event_ref.is_set():
                logger.info("stop_loop: Signaling event loop's async shutdown event.")
                try:
                    loop_ref.call_soon_threadsafe(async_shutdown_event_ref.set)
                except RuntimeError as e:
                    logger.warning(f"Could not schedule async shutdown event set (loop closing?): {e}")
            else:
                logger.debug("stop_loop: Loop not active or already signaled for shutdown.")

    def wait_for_stop(self) -> None:
        thread_to_join: Optional[threading.Thread] = self._loop_thread

        if thread_to_join and thread_to_join.is_alive():
            logger.info(f"wait_for_stop: Waiting for event loop thread (TID: {thread_to_join.ident}) to stop.")
            self._loop_stopped_event.wait()
            thread_to_join.join(timeout=1.0)
        else:
            logger.debug("wait_for_stop: No active event loop thread to wait for.")

        if thread_to_join and not thread_to_join.is_alive():
            with self._lock:
                if self._loop_thread is thread_to_join:
                    self._loop_thread = None
