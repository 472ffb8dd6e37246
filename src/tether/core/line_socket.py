"""WebSocket implementation of the `Transport` interface.

`LineSocketTransport` uses the `websockets` library. Each text frame is one
payload and is delivered to the owner exactly as received; the transport
never parses or re-encodes it. Keep-alive pings are handled by the library.
"""

import asyncio
import logging
from typing import Optional
from urllib.parse import urlparse

import websockets  # type: ignore[import-untyped]
from websockets.protocol import State  # type: ignore[import-untyped]

from .exceptions import (
    TransportClosedError,
    TransportError,
    TransportOpenError,
    TransportRefusedError,
    TransportTimeoutError,
)
from .selector import TransportKind
from .task_manager import TaskManager
from .transport import ABNORMAL_CLOSURE, Transport
from .utils import coerce_text

logger = logging.getLogger(__name__)

_DEFAULT_OPEN_TIMEOUT_SECONDS = 5.0
_DEFAULT_CLOSE_TIMEOUT_SECONDS = 1.0
_DEFAULT_PING_INTERVAL_SECONDS = 20.0
_DEFAULT_PING_TIMEOUT_SECONDS = 10.0

LINE_SOCKET_SCHEMES = ("ws", "wss")


class LineSocketTransport(Transport):
    """A single WebSocket connection carrying line-oriented text payloads."""

    kind = TransportKind.LINE_SOCKET

    def __init__(self,
                 task_manager: TaskManager,
                 open_timeout: Optional[float] = _DEFAULT_OPEN_TIMEOUT_SECONDS,
                 ping_interval: Optional[float] = _DEFAULT_PING_INTERVAL_SECONDS,
                 ping_timeout: Optional[float] = _DEFAULT_PING_TIMEOUT_SECONDS,
                 close_timeout: Optional[float] = _DEFAULT_CLOSE_TIMEOUT_SECONDS):
        """Initializes the transport.

        Args:
            task_manager (TaskManager): Loop on which the handshake, reads and
                writes run.
            open_timeout (Optional[float]): Timeout for the opening handshake.
            ping_interval (Optional[float]): Interval between keep-alive pings.
                `None` disables client pings.
            ping_timeout (Optional[float]): Time to wait for a pong.
            close_timeout (Optional[float]): Time allowed for the closing handshake.
        """
        super().__init__(task_manager)
        self._open_timeout = open_timeout
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._close_timeout = close_timeout
        self._ws_connection = None

    def _validate_target(self, target: str) -> None:
        try:
            parsed = urlparse(target)
            host = parsed.hostname
        except ValueError as e:
            raise TransportOpenError(f"Malformed WebSocket URL: {target!r}", url=target, original_exception=e) from e
        if parsed.scheme.lower() not in LINE_SOCKET_SCHEMES or not host:
            raise TransportOpenError(f"Not a WebSocket URL (expected ws:// or wss://): {target!r}", url=target)

    def _classify_open_error(self, target: str, error: Exception) -> TransportError:
        if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return TransportTimeoutError(target, self._open_timeout, error)
        if isinstance(error, ConnectionRefusedError):
            return TransportRefusedError(target, error)
        return TransportOpenError(f"WebSocket connection failed: {error}", url=target, original_exception=error)

    async def _run_async(self, target: str) -> None:
        try:
            connection = await websockets.connect(
                target, open_timeout=self._open_timeout, ping_interval=self._ping_interval,
                ping_timeout=self._ping_timeout, close_timeout=self._close_timeout,
            )
        except (websockets.exceptions.WebSocketException, asyncio.TimeoutError, OSError) as e:
            logger.error(f"WebSocket connection to {target} failed: {e}")
            self._fail(self._classify_open_error(target, e))
            return

        self._ws_connection = connection
        self._notify_opened()
        try:
            async for message in connection:
                if not isinstance(message, str):
                    logger.debug(f"Received binary frame of {len(message)} bytes from {target}; decoding as UTF-8.")
                self._notify_message(coerce_text(message))
        except websockets.exceptions.ConnectionClosedError as e:
            logger.warning(f"WebSocket connection to {target} closed with an error: {e}")
            self._notify_error(TransportClosedError(f"Connection lost: {e}", code=connection.close_code, url=target, original_exception=e))
        finally:
            self._ws_connection = None

        code = connection.close_code if connection.close_code is not None else ABNORMAL_CLOSURE
        self._notify_closed(code, connection.close_reason or "")

    async def _send_async(self, text: str) -> None:
        connection = self._ws_connection
        if connection is None:
            raise TransportClosedError("Cannot send, the WebSocket is not connected.", url=self._target)
        try:
            await connection.send(text)
        except websockets.exceptions.ConnectionClosed as e:
            raise TransportClosedError(f"Failed to send message: {e}", code=connection.close_code, url=self._target, original_exception=e) from e

    async def _close_async(self, code: int, reason: str) -> None:
        connection = self._ws_connection
        if connection is None:
            return
        try:
            await asyncio.wait_for(connection.close(code=code, reason=reason), timeout=self._close_timeout)
        except (asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
            logger.debug(f"Closing handshake with {self._target} did not complete cleanly: {e}")

    def _is_link_open(self) -> bool:
        connection = self._ws_connection
        return connection is not None and getattr(connection, "state", None) is State.OPEN
