import unittest
import asyncio
import threading
from concurrent.futures import Future
from typing import List, Any

from tether.core.threaded_task_manager import ThreadedTaskManager
from tether.core.exceptions import TaskSubmissionError


class TestThreadedTaskManager(unittest.TestCase):
    """Unit tests for the ThreadedTaskManager."""

    def setUp(self):
        self.task_manager = ThreadedTaskManager()
        self.results: List[Any] = []

    def tearDown(self):
        if self.task_manager.is_loop_running():
            self.task_manager.stop_loop()
            self.task_manager.wait_for_stop()

    def _wait_for_task(self, task: asyncio.Task, timeout: float = 1.0) -> Any:
        """Waits from the main thread for an asyncio.Task running on the loop thread."""
        future: Future = Future()

        def on_done(asyncio_task: asyncio.Task):
            try:
                if exc := asyncio_task.exception():
                    future.set_exception(exc)
                else:
                    future.set_result(asyncio_task.result())
            except asyncio.CancelledError:
                future.cancel()

        self.task_manager.call_soon_threadsafe(task.add_done_callback, on_done)
        return future.result(timeout=timeout)

    def test_initial_state(self):
        self.assertFalse(self.task_manager.is_loop_running())
        self.assertIsNone(self.task_manager._loop)
        self.assertIsNone(self.task_manager._loop_thread)

    def test_ensure_loop_running_is_idempotent(self):
        self.task_manager.ensure_loop_running()
        self.assertTrue(self.task_manager.is_loop_running())
        thread = self.task_manager._loop_thread
        self.task_manager.ensure_loop_running()
        self.assertIs(self.task_manager._loop_thread, thread)
        self.assertEqual(thread.name, "TetherAsyncLoop")

    def test_get_loop(self):
        loop = self.task_manager.get_loop()
        self.assertIsInstance(loop, asyncio.AbstractEventLoop)
        self.assertTrue(loop.is_running())

    def test_stop_and_wait_for_stop(self):
        self.task_manager.ensure_loop_running()
        thread_before_stop = self.task_manager._loop_thread

        self.task_manager.stop_loop()
        self.task_manager.wait_for_stop()

        self.assertFalse(self.task_manager.is_loop_running())
        self.assertFalse(thread_before_stop.is_alive())

    def test_submit_task_from_main_thread(self):
        async def simple_coro():
            self.results.append(threading.current_thread().name)
            return "done"

        task = self.task_manager.submit_task(simple_coro())
        self.assertIsInstance(task, asyncio.Task)
        self.assertEqual(self._wait_for_task(task), "done")
        self.assertEqual(self.results, ["TetherAsyncLoop"])

    def test_submit_task_that_raises_exception(self):
        class CustomTestException(Exception):
            pass

        async def coro_that_fails():
            await asyncio.sleep(0.01)
            raise CustomTestException("Task failed as expected")

        task = self.task_manager.submit_task(coro_that_fails())
        with self.assertRaises(CustomTestException):
            self._wait_for_task(task)

    def test_run_threadsafe_returns_result(self):
        async def compute():
            await asyncio.sleep(0.01)
            return 6 * 7

        self.assertEqual(self.task_manager.run_threadsafe(compute(), timeout=1.0), 42)

    def test_call_later_runs_on_loop_thread(self):
        fired = threading.Event()

        async def schedule():
            self.assertTrue(self.task_manager.is_loop_thread())
            self.task_manager.call_later(0.01, fired.set)

        self.task_manager.run_threadsafe(schedule(), timeout=1.0)
        self.assertTrue(fired.wait(timeout=1.0))

    def test_call_later_from_other_thread_is_rejected(self):
        self.task_manager.ensure_loop_running()
        self.assertFalse(self.task_manager.is_loop_thread())
        with self.assertRaises(TaskSubmissionError):
            self.task_manager.call_later(0.01, lambda: None)

    def test_submit_task_from_within_loop(self):
        async def inner_coro():
            self.results.append("inner_done")

        async def outer_coro():
            inner_task = self.task_manager.submit_task(inner_coro())
            await inner_task
            self.results.append("outer_done")

        self.task_manager.run_threadsafe(outer_coro(), timeout=1.0)
        self.assertEqual(self.results, ["inner_done", "outer_done"])

    def test_stop_cancels_outstanding_tasks(self):
        started = threading.Event()
        cancelled = threading.Event()

        async def long_running():
            started.set()
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        self.task_manager.submit_task(long_running())
        self.assertTrue(started.wait(timeout=1.0))
        self.task_manager.stop_loop()
        self.task_manager.wait_for_stop()
        self.assertTrue(cancelled.is_set())


if __name__ == '__main__':
    unittest.main()
