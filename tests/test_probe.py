import unittest

import httpx

from tether.core.exceptions import ProbeFailure
from tether.probe import InfoProbe, join_path, parse_info, to_http_base


class TestProbeHelpers(unittest.TestCase):

    def test_to_http_base(self):
        self.assertEqual(to_http_base("ws://192.168.4.1:81/stream"), "http://192.168.4.1:81")
        self.assertEqual(to_http_base("wss://dev.example.com/"), "https://dev.example.com")
        self.assertEqual(to_http_base("https://dev.example.com/socket.io"), "https://dev.example.com")

    def test_join_path(self):
        self.assertEqual(join_path("http://h", None), "http://h/")
        self.assertEqual(join_path("http://h/", "info"), "http://h/info")
        self.assertEqual(join_path("http://h", "/info"), "http://h/info")

    def test_parse_info(self):
        info = parse_info("Name: bench\n  firmware : 1.2.3 \nno colon here\n: empty key\nNAME: override\nurl: http://x:1\n")
        self.assertEqual(info["name"], "override")
        self.assertEqual(info["Firmware"], "1.2.3")
        self.assertEqual(info["url"], "http://x:1")
        self.assertEqual(len(info), 3)
        self.assertIn("FIRMWARE", info)
        self.assertNotIn("no colon here", info)

    def test_parse_info_empty(self):
        self.assertEqual(len(parse_info("")), 0)


class TestInfoProbe(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.requests = []

    def _probe(self, handler):
        def record(request):
            self.requests.append(request)
            return handler(request)
        return InfoProbe(timeout=1.0, transport=httpx.MockTransport(record))

    async def test_get_maps_scheme_and_disables_cache(self):
        probe = self._probe(lambda request: httpx.Response(200, text="hello"))
        response = await probe.get("wss://dev.local:8443/ws", "/status")
        self.assertEqual(response.status, 200)
        self.assertEqual(response.text, "hello")
        self.assertTrue(response.ok)
        self.assertEqual(str(self.requests[0].url), "https://dev.local:8443/status")
        self.assertEqual(self.requests[0].headers["cache-control"], "no-store")

    async def test_get_returns_error_statuses(self):
        probe = self._probe(lambda request: httpx.Response(503, text="busy"))
        response = await probe.get("ws://dev.local/", "/")
        self.assertEqual(response.status, 503)
        self.assertFalse(response.ok)

    async def test_fetch_info_parses_document(self):
        probe = self._probe(lambda request: httpx.Response(200, text="name: bench\nuptime: 42\n"))
        info = await probe.fetch_info("ws://dev.local/")
        self.assertEqual(str(self.requests[0].url), "http://dev.local/info")
        self.assertEqual(dict(info), {"name": "bench", "uptime": "42"})

    async def test_fetch_info_raises_on_http_error(self):
        probe = self._probe(lambda request: httpx.Response(404))
        with self.assertRaises(ProbeFailure) as ctx:
            await probe.fetch_info("ws://dev.local/")
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(ctx.exception.url, "http://dev.local/info")

    async def test_network_failure_raises_probe_failure(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        probe = self._probe(refuse)
        with self.assertRaises(ProbeFailure) as ctx:
            await probe.get("ws://dev.local/", "/info")
        self.assertIsInstance(ctx.exception.original_exception, httpx.ConnectError)
        self.assertIsNone(ctx.exception.status_code)


if __name__ == "__main__":
    unittest.main()
