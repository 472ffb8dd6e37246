import tempfile
import unittest
from pathlib import Path

import httpx

from tether.app import ClientApp
from tether.commands import CommandRegistry
from tether.config import ClientSettings, SettingsStore
from tether.probe import InfoProbe

from support import FakeTransportFactory, RecordingTaskManager


class TestCommandRegistry(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tm = RecordingTaskManager()
        self.factory = FakeTransportFactory()
        self.http_body = "name: bench\nfirmware: 2.0\n"
        self.requested = []

        def handle(request):
            self.requested.append(str(request.url))
            return httpx.Response(200, text=self.http_body)

        self.app = ClientApp(
            self.tm,
            SettingsStore(Path(self._tmp.name) / "settings.json"),
            settings=ClientSettings(server_url="ws://dev.local/"),
            probe=InfoProbe(transport=httpx.MockTransport(handle)),
            transport_factory=self.factory,
        )

    def tearDown(self):
        self.tm.close_pending()
        self._tmp.cleanup()

    def _open(self):
        self.app.manager.connect()
        self.factory.latest.emit_opened()
        return self.factory.latest

    def test_builtin_names(self):
        self.assertEqual(CommandRegistry().names(), ["app:reconnect", "app:toggle-auto", "http:get", "ws:send"])
        self.assertEqual(CommandRegistry(with_builtins=False).names(), [])

    async def test_ws_send_default_and_explicit_payload(self):
        transport = self._open()
        self.assertTrue(await self.app.run_command("ws:send"))
        self.assertTrue(await self.app.run_command("ws:send", "led:on"))
        self.assertEqual(transport.sent, ["ping:1", "led:on"])

    async def test_http_get_info_updates_device_info(self):
        self.assertTrue(await self.app.run_command("http:get", "/info"))
        self.assertEqual(self.requested, ["http://dev.local/info"])
        self.assertEqual(self.app.device_info, {"name": "bench", "firmware": "2.0"})

    async def test_http_get_default_path_leaves_device_info(self):
        self.assertTrue(await self.app.run_command("http:get"))
        self.assertEqual(self.requested, ["http://dev.local/"])
        self.assertEqual(self.app.device_info, {})

    async def test_reconnect_replaces_transport(self):
        first = self._open()
        self.assertTrue(await self.app.run_command("app:reconnect"))
        self.assertEqual(first.closed_with, (1000, "client-close"))
        self.assertEqual(len(self.factory.created), 2)
        self.assertFalse(self.app.manager.manual_close_requested)

    async def test_toggle_auto(self):
        self.assertTrue(self.app.settings.auto_reconnect)
        await self.app.run_command("app:toggle-auto")
        self.assertFalse(self.app.settings.auto_reconnect)
        self.assertFalse(self.app.store.load().auto_reconnect)

    async def test_unknown_command_is_a_warning(self):
        with self.assertLogs("tether.commands", level="WARNING") as logs:
            self.assertFalse(await self.app.run_command("no:such"))
        self.assertIn("action:unknown:no:such", logs.output[0])

    async def test_failing_command_is_logged(self):
        def broken(ctx, arg):
            raise RuntimeError("kaput")

        self.app.commands.define("custom:broken", broken)
        with self.assertLogs("tether.commands", level="ERROR") as logs:
            self.assertFalse(await self.app.run_command("custom:broken"))
        self.assertIn("action:error:custom:broken:kaput", logs.output[0])

    async def test_custom_async_command(self):
        seen = []

        async def hello(ctx, arg):
            seen.append((ctx, arg))

        self.app.commands.define("custom:hello", hello)
        self.assertTrue(await self.app.run_command("custom:hello", "world"))
        self.assertEqual(seen, [(self.app, "world")])


if __name__ == "__main__":
    unittest.main()
