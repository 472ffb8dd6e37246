"""Structured event objects delivered to connection observers.

Closes and errors carry data, so the `ConnectionManager` reports them as
dataclasses here. The other notifications need no object: ``on_open`` is
called without arguments and ``on_message`` receives the text itself.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ConnectionEvent:
    """Base class for all connection events."""
    pass


@dataclass(frozen=True)
class Closed(ConnectionEvent):
    """The active transport closed.

    Attributes:
        code (int): Close code (1000 for a normal close, 1006 when the
            connection dropped without a closing handshake).
        reason (str): Close reason as reported by the peer or the client.
    """
    code: int
    reason: str = ""


@dataclass(frozen=True)
class ErrorOccurred(ConnectionEvent):
    """Something failed on the active transport.

    Attributes:
        detail (str): Human-readable description.
        error (Optional[Exception]): The underlying exception, if any.
    """
    detail: str
    error: Optional[Exception] = None
