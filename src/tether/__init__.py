"""tether: keep one bidirectional text connection to a device alive.

tether connects to a WebSocket endpoint, or to a Socket.IO endpoint when the
target looks like one, and hides the difference behind a single
`ConnectionManager`. The manager reports lifecycle changes through observer
callbacks, sends and receives plain text payloads and reconnects after
unintended closes with a capped, jittered backoff.

Quick start (inside an asyncio program)::

    import tether

    manager = tether.ConnectionManager(
        task_manager=tether.LoopTaskManager(),
        get_target=lambda: "ws://192.168.4.1:81/",
        get_reconnect_delay=lambda: 1500,
        on_message=print,
    )
    manager.connect()

For an interactive client run ``python -m tether --url ws://host:port/``.
"""

import logging

# --- Version ---
from ._version import __version__

# --- Logging Setup ---
# The 'tether' package logger gets a NullHandler; applications configure
# logging themselves if they want to see tether's records, e.g.:
# logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger("tether")
if not logger.hasHandlers():
    logger.addHandler(logging.NullHandler())

# --- Core building blocks ---
from .core import (
    ConnectionState,
    TransportStatus,
    TransportKind,
    classify,
    Transport,
    create_transport,
    TaskManager,
    LoopTaskManager,
    ThreadedTaskManager,
    TetherError,
    ConfigurationError,
    TransportError,
    TransportOpenError,
    TransportRefusedError,
    TransportTimeoutError,
    TransportClosedError,
    SendRejected,
    ProbeFailure,
)

# --- Connection lifecycle ---
from .events import ConnectionEvent, Closed, ErrorOccurred
from .reconnect import ReconnectState, compute_delay_ms
from .connection_manager import ConnectionManager

# --- Application layer ---
from .config import ClientSettings, SettingsStore, is_valid_target
from .router import MessageRouter
from .probe import InfoProbe, parse_info
from .commands import CommandRegistry
from .app import ClientApp, ClientView


__all__ = [
    # Version
    '__version__',

    # Logger
    'logger',

    # Core
    'ConnectionState',
    'TransportStatus',
    'TransportKind',
    'classify',
    'Transport',
    'create_transport',
    'TaskManager',
    'LoopTaskManager',
    'ThreadedTaskManager',

    # Connection lifecycle
    'ConnectionManager',
    'ReconnectState',
    'compute_delay_ms',
    'ConnectionEvent',
    'Closed',
    'ErrorOccurred',

    # Application layer
    'ClientSettings',
    'SettingsStore',
    'is_valid_target',
    'MessageRouter',
    'InfoProbe',
    'parse_info',
    'CommandRegistry',
    'ClientApp',
    'ClientView',

    # Error Classes
    'TetherError',
    'ConfigurationError',
    'TransportError',
    'TransportOpenError',
    'TransportRefusedError',
    'TransportTimeoutError',
    'TransportClosedError',
    'SendRejected',
    'ProbeFailure',
]
