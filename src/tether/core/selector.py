"""Chooses the wire protocol for a connection target.

Two incompatible protocols are supported:

- `LINE_SOCKET`: a plain WebSocket carrying one text payload per frame.
- `EVENT_SOCKET`: a Socket.IO connection, an HTTP-family transport that
  multiplexes named events over one session.

The choice is a heuristic on the target string alone. It never consults the
network, so a target is always classified the same way.
"""

from enum import Enum
from urllib.parse import urlparse

EVENT_SOCKET_SCHEMES = frozenset({"http", "https"})
EVENT_SOCKET_HINT = "socket.io"


class TransportKind(Enum):
    """Tag selecting which transport implementation handles a target."""
    LINE_SOCKET = "line-socket"
    EVENT_SOCKET = "event-socket"

    def __str__(self) -> str:
        return self.value


def classify(target: str) -> TransportKind:
    """Classifies a connection target.

    A target is an event socket when its scheme is ``http`` or ``https`` or
    when it mentions ``socket.io`` anywhere (case-insensitive). Anything else,
    including input that cannot be parsed, is a line socket.

    Example:
        >>> classify("ws://host/x")
        <TransportKind.LINE_SOCKET: 'line-socket'>
        >>> classify("https://host")
        <TransportKind.EVENT_SOCKET: 'event-socket'>
    """
    if not isinstance(target, str):
        return TransportKind.LINE_SOCKET
    candidate = target.strip()
    if EVENT_SOCKET_HINT in candidate.lower():
        return TransportKind.EVENT_SOCKET
    try:
        scheme = urlparse(candidate).scheme.lower()
    except ValueError:
        return TransportKind.LINE_SOCKET
    if scheme in EVENT_SOCKET_SCHEMES:
        return TransportKind.EVENT_SOCKET
    return TransportKind.LINE_SOCKET
