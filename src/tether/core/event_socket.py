"""Socket.IO implementation of the `Transport` interface.

Socket.IO multiplexes named events over one session, while the rest of tether
expects a single stream of text payloads. `EventSocketTransport` folds every
inbound event into the ``message`` notification:

- a ``message`` event carrying exactly one string is delivered verbatim;
- anything else is serialised into a deterministic JSON envelope,
  ``{"args":[...],"event":"<name>"}`` (sorted keys, compact separators), so
  the message router still receives one line of text per event.

Outbound text is sent as a ``message`` event. Reconnection inside the
Socket.IO client is disabled: the `ConnectionManager` owns the retry policy.
"""

import asyncio
import base64
import json
import logging
from typing import Any, Optional, Sequence, Tuple
from urllib.parse import urlparse, urlunparse

import socketio  # type: ignore[import-untyped]

from .exceptions import TransportClosedError, TransportOpenError, TransportTimeoutError
from .selector import EVENT_SOCKET_HINT, TransportKind
from .task_manager import TaskManager
from .transport import ABNORMAL_CLOSURE, Transport

logger = logging.getLogger(__name__)

_DEFAULT_WAIT_TIMEOUT_SECONDS = 5.0
_SCHEME_MAP = {"ws": "http", "wss": "https", "http": "http", "https": "https"}
_DEFAULT_SOCKETIO_PATH = "socket.io"
_MESSAGE_EVENT = "message"


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return str(value)


def event_envelope(event: str, args: Sequence[Any]) -> str:
    """Serialises one Socket.IO event as a single line of JSON.

    Binary attachments are base64-encoded; other non-JSON values are
    stringified.
    """
    return json.dumps({"event": event, "args": list(args)}, sort_keys=True,
                      separators=(",", ":"), ensure_ascii=False, default=_json_default)


def fold_event(event: str, args: Sequence[Any]) -> str:
    """Returns the text delivered for an inbound event."""
    if event == _MESSAGE_EVENT and len(args) == 1 and isinstance(args[0], str):
        return args[0]
    return event_envelope(event, args)


def split_target(target: str) -> Tuple[str, str, str]:
    """Splits a target into ``(server_url, socketio_path, namespace)``.

    ``ws``/``wss`` schemes are mapped to ``http``/``https``. A path mentioning
    ``socket.io`` is the Socket.IO endpoint path; any other non-empty path is
    the namespace to join.

    Raises:
        TransportOpenError: If the target has no host or an unknown scheme.
    """
    try:
        parsed = urlparse(target)
        host = parsed.hostname
    except ValueError as e:
        raise TransportOpenError(f"Malformed Socket.IO URL: {target!r}", url=target, original_exception=e) from e
    scheme = _SCHEME_MAP.get(parsed.scheme.lower())
    if scheme is None or not host:
        raise TransportOpenError(f"Not a Socket.IO URL (expected http(s):// or ws(s)://): {target!r}", url=target)

    path = parsed.path.strip("/")
    socketio_path = _DEFAULT_SOCKETIO_PATH
    namespace = "/"
    if EVENT_SOCKET_HINT in path.lower():
        socketio_path = path
    elif path:
        namespace = "/" + path
    server_url = urlunparse((scheme, parsed.netloc, "", "", parsed.query, ""))
    return server_url, socketio_path, namespace


class EventSocketTransport(Transport):
    """A Socket.IO client session presented as a text transport."""

    kind = TransportKind.EVENT_SOCKET

    def __init__(self,
                 task_manager: TaskManager,
                 wait_timeout: float = _DEFAULT_WAIT_TIMEOUT_SECONDS,
                 client: Optional[Any] = None):
        """Initializes the transport.

        Args:
            task_manager (TaskManager): Loop on which the session runs.
            wait_timeout (float): Seconds to wait for the namespace connection.
            client (Optional[socketio.AsyncClient]): Pre-built client, mainly
                for tests. A new `socketio.AsyncClient` is created otherwise.
        """
        super().__init__(task_manager)
        self._wait_timeout = wait_timeout
        self._client = client if client is not None else socketio.AsyncClient(
            reconnection=False, logger=False, engineio_logger=False)
        self._namespace = "/"
        self._disconnected: Optional[asyncio.Event] = None
        self._disconnect_reason = ""

    def _validate_target(self, target: str) -> None:
        split_target(target)

    def _register_handlers(self) -> None:
        ns = self._namespace
        self._client.on("connect", self._on_sio_connect, namespace=ns)
        self._client.on("disconnect", self._on_sio_disconnect, namespace=ns)
        self._client.on("connect_error", self._on_sio_connect_error, namespace=ns)
        self._client.on("*", self._on_sio_event, namespace=ns)

    async def _run_async(self, target: str) -> None:
        server_url, socketio_path, self._namespace = split_target(target)
        self._disconnected = asyncio.Event()
        self._register_handlers()
        try:
            await self._client.connect(
                server_url, namespaces=[self._namespace], socketio_path=socketio_path,
                wait_timeout=self._wait_timeout,
            )
        except asyncio.CancelledError:
            # The engine.io session may already be up while the namespace
            # handshake is pending; cancelling connect() leaves it running.
            await self._disconnect_quietly()
            raise
        except socketio.exceptions.ConnectionError as e:
            logger.error(f"Socket.IO connection to {target} failed: {e}")
            if "timeout" in str(e).lower():
                self._fail(TransportTimeoutError(target, self._wait_timeout, e))
            else:
                self._fail(TransportOpenError(f"Socket.IO connection failed: {e}", url=target, original_exception=e))
            return

        # The connect handler normally fires first; make sure opened is reported.
        self._notify_opened()
        await self._disconnected.wait()
        self._notify_closed(ABNORMAL_CLOSURE, self._disconnect_reason or "transport close")

    async def _on_sio_connect(self) -> None:
        self._notify_opened()

    async def _on_sio_disconnect(self, *args: Any) -> None:
        # Newer python-socketio releases pass a reason argument.
        self._disconnect_reason = str(args[0]) if args else "disconnected"
        logger.info(f"Socket.IO session for {self._target} disconnected: {self._disconnect_reason}")
        if self._disconnected is not None:
            self._disconnected.set()

    async def _on_sio_connect_error(self, data: Any = None) -> None:
        logger.debug(f"Socket.IO connect_error for {self._target}: {data}")

    async def _on_sio_event(self, event: str, *args: Any) -> None:
        self._notify_message(fold_event(event, args))

    async def _send_async(self, text: str) -> None:
        try:
            await self._client.send(text, namespace=self._namespace)
        except socketio.exceptions.SocketIOError as e:
            raise TransportClosedError(f"Failed to send message: {e}", url=self._target, original_exception=e) from e

    async def _close_async(self, code: int, reason: str) -> None:
        await self._client.disconnect()
        if self._disconnected is not None:
            self._disconnected.set()

    async def _disconnect_quietly(self) -> None:
        try:
            await self._client.disconnect()
        except Exception as e:
            logger.warning(f"Error tearing down Socket.IO session for {self._target}: {e}")

    def _is_link_open(self) -> bool:
        return bool(self._client.connected)
