import unittest
import asyncio

from tether.core.loop_task_manager import LoopTaskManager
from tether.core.utils import coerce_text, invoke_handler


class TestCoerceText(unittest.TestCase):

    def test_text_passes_through(self):
        self.assertEqual(coerce_text(" a:b \n"), " a:b \n")

    def test_binary_is_decoded(self):
        self.assertEqual(coerce_text(b"caf\xc3\xa9"), "café")
        self.assertEqual(coerce_text(bytearray(b"\xff")), "�")
        self.assertEqual(coerce_text(None), "")


class TestInvokeHandler(unittest.IsolatedAsyncioTestCase):

    async def test_sync_handler(self):
        seen = []
        invoke_handler(seen.append, 1)
        invoke_handler(None, 2)
        self.assertEqual(seen, [1])

    async def test_handler_exception_is_logged(self):
        def broken(value):
            raise ValueError(value)

        with self.assertLogs("tether.core.utils", level="ERROR"):
            invoke_handler(broken, "x")

    async def test_async_handler_runs_on_task_manager(self):
        done = asyncio.Event()

        async def handler(value):
            done.set()

        invoke_handler(handler, 1, task_manager=LoopTaskManager())
        await asyncio.wait_for(done.wait(), timeout=1.0)

    async def test_async_handler_without_task_manager_is_dropped(self):
        ran = []

        async def handler():
            ran.append(True)

        with self.assertLogs("tether.core.utils", level="WARNING"):
            invoke_handler(handler)
        await asyncio.sleep(0)
        self.assertEqual(ran, [])


if __name__ == '__main__':
    unittest.main()
