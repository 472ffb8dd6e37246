"""HTTP metadata probe for the configured device.

Devices that speak the line protocol usually also serve a small plain-text
``/info`` document over HTTP, one ``key: value`` pair per line::

    name: bench-sensor
    firmware: 1.4.2
    uptime: 3600

`InfoProbe` fetches it (or any other path) from the HTTP side of a
connection target. Probe failures are never fatal; callers report them as
warnings and carry on.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from .core.exceptions import ProbeFailure

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT_SECONDS = 5.0
INFO_PATH = "/info"

_HTTP_SCHEME_FOR = {"ws": "http", "wss": "https"}


def to_http_base(target: str) -> str:
    """Derives the HTTP base URL of a connection target.

    ``wss`` becomes ``https`` and ``ws`` becomes ``http``; other schemes are
    kept. The host and port are preserved, the path is dropped.
    """
    parts = urlsplit(target.strip())
    scheme = parts.scheme.lower()
    scheme = _HTTP_SCHEME_FOR.get(scheme, scheme)
    return urlunsplit((scheme, parts.netloc, "", "", ""))


def join_path(base: str, path: Optional[str]) -> str:
    path = (path or "/").strip() or "/"
    if not path.startswith("/"):
        path = "/" + path
    return base.rstrip("/") + path


class InfoMap(Mapping[str, str]):
    """Read-only mapping with case-insensitive keys.

    Iteration yields the keys in the spelling they were last stored with.
    """

    def __init__(self, items: Optional[Dict[str, str]] = None):
        self._data: Dict[str, tuple] = {}
        for key, value in (items or {}).items():
            self._store(key, value)

    def _store(self, key: str, value: str) -> None:
        self._data[key.lower()] = (key, value)

    def __getitem__(self, key: str) -> str:
        return self._data[key.lower()][1]

    def __iter__(self) -> Iterator[str]:
        return (original for original, _ in self._data.values())

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._data

    def __repr__(self) -> str:
        return f"InfoMap({dict(self.items())!r})"


def parse_info(text: str) -> InfoMap:
    """Parses a ``key: value`` document.

    Lines are trimmed; lines without a colon or with an empty key are
    skipped. Keys compare case-insensitively and the last occurrence wins.
    """
    info = InfoMap()
    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        key, sep, value = line.partition(":")
        key = key.strip()
        if not sep or not key:
            continue
        info._store(key, value.strip())
    return info


@dataclass(frozen=True)
class ProbeResponse:
    """Status code and body text of one probe request."""
    url: str
    status: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class InfoProbe:
    """Issues HTTP GET requests against the HTTP side of a connection target.

    Args:
        timeout (float): Request timeout in seconds.
        transport (Optional[httpx.AsyncBaseTransport]): Custom httpx
            transport, mainly for tests (`httpx.MockTransport`).
    """

    def __init__(self, timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._timeout = timeout
        self._transport = transport

    async def get(self, target: str, path: Optional[str] = "/") -> ProbeResponse:
        """GETs `path` from the HTTP base of `target`.

        Any HTTP status is returned as a `ProbeResponse`. Raises
        `ProbeFailure` when no response arrives at all.
        """
        url = join_path(to_http_base(target), path)
        logger.debug(f"Probe GET {url}")
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(url, headers={"Cache-Control": "no-store"})
        except httpx.RequestError as e:
            raise ProbeFailure(f"Request to {url} failed", url=url, original_exception=e) from e
        logger.debug(f"Probe GET {url} -> {response.status_code}")
        return ProbeResponse(url=url, status=response.status_code, text=response.text)

    async def fetch_info(self, target: str) -> InfoMap:
        """Fetches and parses ``/info``. Raises `ProbeFailure` on non-2xx."""
        response = await self.get(target, INFO_PATH)
        if not response.ok:
            raise ProbeFailure(f"HTTP {response.status} from {response.url}", url=response.url, status_code=response.status)
        return parse_info(response.text)
