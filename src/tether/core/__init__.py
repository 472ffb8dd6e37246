"""Core infrastructure for tether.

This sub-package (`tether.core`) holds the low-level pieces the connection
manager is built from:

-   `TaskManager`: access to the single asyncio event loop all connection
    state lives on, with `LoopTaskManager` (adopt a running loop) and
    `ThreadedTaskManager` (own a loop in a background thread).
-   `Transport`: the uniform text-transport interface, implemented by
    `LineSocketTransport` (WebSocket) and `EventSocketTransport` (Socket.IO).
-   `classify` / `TransportKind`: picks the transport for a target.
-   `create_transport`: builds a fresh transport of a given kind.
-   Status enumerations and the `TetherError` exception hierarchy.
"""

# --- Status Enums ---
from .status import TransportStatus, ConnectionState

# --- Exceptions ---
from .exceptions import (
    TetherError,
    ConfigurationError,
    TransportError,
    TransportOpenError,
    TransportRefusedError,
    TransportTimeoutError,
    TransportClosedError,
    SendRejected,
    ProbeFailure,
    TaskManagerError,
    LoopNotRunningError,
    TaskSubmissionError,
)

# --- Task Managers ---
from .task_manager import TaskManager
from .loop_task_manager import LoopTaskManager
from .threaded_task_manager import ThreadedTaskManager

# --- Transports ---
from .selector import TransportKind, classify
from .transport import (
    Transport,
    NORMAL_CLOSURE,
    ABNORMAL_CLOSURE,
    OpenedHandlerType,
    MessageHandlerType,
    ErrorHandlerType,
    ClosedHandlerType,
)
from .line_socket import LineSocketTransport
from .event_socket import EventSocketTransport

# --- Factory Functions ---
from .factories import create_transport, TransportFactoryType


__all__ = [
    # Status
    'TransportStatus',
    'ConnectionState',

    # Exceptions
    'TetherError',
    'ConfigurationError',
    'TransportError',
    'TransportOpenError',
    'TransportRefusedError',
    'TransportTimeoutError',
    'TransportClosedError',
    'SendRejected',
    'ProbeFailure',
    'TaskManagerError',
    'LoopNotRunningError',
    'TaskSubmissionError',

    # Task managers
    'TaskManager',
    'LoopTaskManager',
    'ThreadedTaskManager',

    # Transports
    'TransportKind',
    'classify',
    'Transport',
    'LineSocketTransport',
    'EventSocketTransport',
    'NORMAL_CLOSURE',
    'ABNORMAL_CLOSURE',

    # Handler Type Aliases
    'OpenedHandlerType',
    'MessageHandlerType',
    'ErrorHandlerType',
    'ClosedHandlerType',

    # Factories
    'create_transport',
    'TransportFactoryType',
]
