import unittest
import asyncio
from unittest.mock import AsyncMock, patch

import websockets
from websockets.protocol import State

from tether.core import line_socket
from tether.core.exceptions import (
    TransportClosedError,
    TransportError,
    TransportOpenError,
    TransportRefusedError,
    TransportTimeoutError,
)
from tether.core.line_socket import LineSocketTransport
from tether.core.loop_task_manager import LoopTaskManager
from tether.core.status import TransportStatus

_END = object()


class FakeWebSocket:
    """Minimal stand-in for a websockets client connection."""

    def __init__(self):
        self.state = State.OPEN
        self.close_code = None
        self.close_reason = ""
        self.sent = []
        self.close_calls = []
        self._inbox: asyncio.Queue = asyncio.Queue()

    def push(self, item):
        self._inbox.put_nowait(item)

    def remote_close(self, code, reason=""):
        self.state = State.CLOSED
        self.close_code = code
        self.close_reason = reason
        self.push(_END)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            item = await self._inbox.get()
            if item is _END:
                return
            if isinstance(item, BaseException):
                self.state = State.CLOSED
                raise item
            yield item

    async def send(self, text):
        await asyncio.sleep(0)
        self.sent.append(text)

    async def close(self, code=1000, reason=""):
        self.close_calls.append((code, reason))
        self.remote_close(code, reason)


class TestLineSocketTransport(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.events = []
        self.ws = FakeWebSocket()
        self.connect_mock = AsyncMock(return_value=self.ws)
        self.patcher = patch.object(line_socket.websockets, "connect", self.connect_mock)
        self.patcher.start()
        self.transport = LineSocketTransport(LoopTaskManager())

    async def asyncTearDown(self):
        self.patcher.stop()

    def _open(self, target="ws://device.local:81/"):
        self.transport.open(
            target,
            on_opened=lambda: self.events.append(("opened",)),
            on_message=lambda text: self.events.append(("message", text)),
            on_error=lambda error: self.events.append(("error", error)),
            on_closed=lambda code, reason: self.events.append(("closed", code, reason)),
        )

    def _of(self, name):
        return [event for event in self.events if event[0] == name]

    async def _until(self, predicate, timeout=1.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                self.fail(f"condition not met; events so far: {self.events}")
            await asyncio.sleep(0.001)

    async def test_open_and_receive_text_unchanged(self):
        self._open()
        await self._until(lambda: self._of("opened"))
        self.assertTrue(self.transport.is_open())
        self.assertEqual(self.transport.status, TransportStatus.CONNECTED)

        self.ws.push("temp:21.5")
        self.ws.push("  spaced : text\t")
        self.ws.push("café".encode("utf-8"))
        await self._until(lambda: len(self._of("message")) == 3)
        self.assertEqual([event[1] for event in self._of("message")], ["temp:21.5", "  spaced : text\t", "café"])

        _, kwargs = self.connect_mock.call_args
        self.assertEqual(self.connect_mock.call_args[0][0], "ws://device.local:81/")
        self.assertIn("open_timeout", kwargs)

    async def test_sends_keep_call_order(self):
        self._open()
        await self._until(lambda: self._of("opened"))
        for i in range(5):
            self.assertTrue(self.transport.send(f"n:{i}"))
        await self._until(lambda: len(self.ws.sent) == 5)
        self.assertEqual(self.ws.sent, [f"n:{i}" for i in range(5)])

    async def test_send_before_open_is_refused(self):
        self.assertFalse(self.transport.send("x"))

    async def test_client_close_reports_requested_code_once(self):
        self._open()
        await self._until(lambda: self._of("opened"))
        self.transport.close(1000, "client-close")
        self.transport.close(1000, "again")
        await self._until(lambda: self._of("closed"))
        await asyncio.sleep(0.01)
        self.assertEqual(self.ws.close_calls, [(1000, "client-close")])
        self.assertEqual(self._of("closed"), [("closed", 1000, "client-close")])
        self.assertFalse(self.transport.is_open())

    async def test_remote_close_reports_peer_code(self):
        self._open()
        await self._until(lambda: self._of("opened"))
        self.ws.remote_close(1001, "going away")
        await self._until(lambda: self._of("closed"))
        self.assertEqual(self._of("closed"), [("closed", 1001, "going away")])
        self.assertEqual(self._of("error"), [])

    async def test_abnormal_close_reports_error_then_closed(self):
        self._open()
        await self._until(lambda: self._of("opened"))
        self.ws.push(websockets.exceptions.ConnectionClosedError(None, None))
        await self._until(lambda: self._of("closed"))
        kinds = [event[0] for event in self.events]
        self.assertEqual(kinds, ["opened", "error", "closed"])
        self.assertIsInstance(self._of("error")[0][1], TransportClosedError)
        self.assertEqual(self._of("closed")[0][1], 1006)

    async def test_refused_connection(self):
        self.connect_mock.side_effect = ConnectionRefusedError("refused")
        self._open()
        await self._until(lambda: self._of("closed"))
        self.assertIsInstance(self._of("error")[0][1], TransportRefusedError)
        self.assertEqual(self._of("closed")[0][1], 1006)
        self.assertEqual(self._of("opened"), [])
        self.assertEqual(self.transport.status, TransportStatus.ERROR)

    async def test_handshake_timeout(self):
        self.connect_mock.side_effect = asyncio.TimeoutError()
        self._open()
        await self._until(lambda: self._of("closed"))
        self.assertIsInstance(self._of("error")[0][1], TransportTimeoutError)

    async def test_close_while_connecting_cancels_handshake(self):
        never = asyncio.Event()

        async def hang(*args, **kwargs):
            await never.wait()

        self.connect_mock.side_effect = hang
        self._open()
        await asyncio.sleep(0.01)
        self.transport.close(1000, "superseded")
        await self._until(lambda: self._of("closed"))
        self.assertEqual(self._of("closed"), [("closed", 1000, "superseded")])
        self.assertEqual(self._of("opened"), [])

    async def test_rejects_non_websocket_targets(self):
        for target in ("http://device.local/", "device.local:81", "ws://"):
            with self.subTest(target=target):
                with self.assertRaises(TransportOpenError):
                    LineSocketTransport(LoopTaskManager()).open(target)
        self.connect_mock.assert_not_called()

    async def test_handles_are_single_use(self):
        self._open()
        with self.assertRaises(TransportError):
            self._open()


if __name__ == '__main__':
    unittest.main()
