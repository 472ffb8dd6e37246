"""Factory functions for creating transports.

The `ConnectionManager` never names a concrete transport class. It asks
`create_transport` for a fresh handle of the kind `classify` picked, which
keeps the manager unaware of which wire protocol is active and lets tests
substitute their own factory.
"""

import logging
from typing import Callable

from .event_socket import EventSocketTransport
from .line_socket import LineSocketTransport
from .selector import TransportKind
from .task_manager import TaskManager
from .transport import Transport

logger = logging.getLogger(__name__)

TransportFactoryType = Callable[[TransportKind, TaskManager], Transport]
"""Signature of a transport factory: ``(kind, task_manager) -> Transport``."""


def create_line_socket_transport(task_manager: TaskManager) -> LineSocketTransport:
    logger.debug("Creating new LineSocketTransport instance.")
    return LineSocketTransport(task_manager=task_manager)


def create_event_socket_transport(task_manager: TaskManager) -> EventSocketTransport:
    logger.debug("Creating new EventSocketTransport instance.")
    return EventSocketTransport(task_manager=task_manager)


def create_transport(kind: TransportKind, task_manager: TaskManager) -> Transport:
    """Creates a new, unopened transport of the given kind.

    Raises:
        ValueError: If `kind` is not a known `TransportKind`.
    """
    if kind is TransportKind.EVENT_SOCKET:
        return create_event_socket_transport(task_manager)
    if kind is TransportKind.LINE_SOCKET:
        return create_line_socket_transport(task_manager)
    raise ValueError(f"Unknown transport kind: {kind!r}")
