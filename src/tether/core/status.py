"""Status enumerations for transports and the connection manager.

Two levels of state are tracked:

- `TransportStatus` describes a single transport handle (one WebSocket or
  one Socket.IO client) from creation until it is closed.
- `ConnectionState` describes the `ConnectionManager` as a whole, which
  outlives any individual transport and may open many of them over time.
"""

from enum import Enum, auto


class TransportStatus(Enum):
    """Represents the states of a single transport handle.

    A transport is single-use: it starts `DISCONNECTED`, moves through
    `CONNECTING` and `CONNECTED`, and ends `DISCONNECTED` (or `ERROR`) once
    its one `closed` notification has been delivered.
    """
    DISCONNECTED = auto()
    """The handle is not connected.
    This is the initial state, and the final state after a close.
    """

    CONNECTING = auto()
    """The handle is performing its opening handshake."""

    CONNECTED = auto()
    """The handshake completed and text can be sent and received."""

    CLOSING = auto()
    """A client-initiated close is in progress."""

    ERROR = auto()
    """The handle failed and will not become usable again."""

    def __str__(self) -> str:
        return self.name


class ConnectionState(Enum):
    """Lifecycle state of a `ConnectionManager`.

    `IDLE` and `CLOSED` are both resting states. `IDLE` is reached before the
    first `connect()` and after `disconnect()`; `CLOSED` after an unintended
    close, from which a scheduled reconnect may move back to `CONNECTING`.
    """
    IDLE = auto()
    CONNECTING = auto()
    OPEN = auto()
    CLOSED = auto()

    def __str__(self) -> str:
        return self.name
