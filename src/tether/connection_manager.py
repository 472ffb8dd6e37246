"""The connection lifecycle manager.

`ConnectionManager` owns exactly one transport at a time and keeps the rest
of the application unaware of which wire protocol is active. It:

- reads the target from a resolver on every attempt and picks a transport
  with `classify`;
- turns the transport's native notifications into observer callbacks
  (``on_open``, ``on_close``, ``on_message``, ``on_error``, plus
  ``on_warning`` and ``on_sent``);
- schedules reconnects after unintended closes, following the policy in
  `tether.reconnect`;
- never raises to its caller: every failure is reported through the
  observers.

All methods must be called on the event loop of the supplied `TaskManager`.
Notifications from a transport that has been superseded or disconnected are
ignored, so at most one transport can ever drive the manager.

Example (inside a running asyncio application)::

    manager = ConnectionManager(
        task_manager=LoopTaskManager(),
        get_target=lambda: settings.server_url,
        get_reconnect_delay=lambda: settings.reconnect_delay,
        on_message=router.dispatch,
    )
    manager.connect()
"""

import logging
import random
from typing import Any, Awaitable, Callable, Optional, Union

from .core.exceptions import ConfigurationError, SendRejected, TransportError
from .core.factories import TransportFactoryType, create_transport
from .core.selector import TransportKind, classify
from .core.status import ConnectionState
from .core.task_manager import TaskManager
from .core.transport import NORMAL_CLOSURE, ABNORMAL_CLOSURE, Transport
from .core.utils import invoke_handler
from .events import Closed, ErrorOccurred
from .reconnect import ReconnectState, compute_delay_ms, resolve_base_delay

logger = logging.getLogger(__name__)

CLIENT_CLOSE_REASON = "client-close"
SUPERSEDED_REASON = "superseded"

_Result = Union[None, Awaitable[None]]


class ConnectionManager:
    """Keeps one bidirectional text connection alive.

    Args:
        task_manager (TaskManager): Host event loop.
        get_target (Callable[[], str]): Returns the connection target; read on
            every `connect()` and every reconnect attempt.
        get_reconnect_delay (Callable[[], float]): Returns the base reconnect
            delay in milliseconds.
        auto_reconnect (Optional[Callable[[], bool]]): Returns whether an
            unintended close should be retried. Defaults to always.
        on_open, on_close, on_message, on_error, on_warning, on_sent:
            Observer callbacks; see the module docstring.
        transport_factory (TransportFactoryType): Builds transports by kind.
        random_source (Callable[[], float]): Source of jitter in ``[0, 1)``.
    """

    def __init__(
        self,
        task_manager: TaskManager,
        get_target: Callable[[], str],
        get_reconnect_delay: Callable[[], Any],
        auto_reconnect: Optional[Callable[[], bool]] = None,
        on_open: Optional[Callable[[], _Result]] = None,
        on_close: Optional[Callable[[Closed], _Result]] = None,
        on_message: Optional[Callable[[str], _Result]] = None,
        on_error: Optional[Callable[[ErrorOccurred], _Result]] = None,
        on_warning: Optional[Callable[[str], _Result]] = None,
        on_sent: Optional[Callable[[str], _Result]] = None,
        transport_factory: TransportFactoryType = create_transport,
        random_source: Callable[[], float] = random.random,
    ):
        self._task_manager = task_manager
        self._get_target = get_target
        self._get_reconnect_delay = get_reconnect_delay
        self._auto_reconnect = auto_reconnect or (lambda: True)
        self._on_open = on_open
        self._on_close = on_close
        self._on_message = on_message
        self._on_error = on_error
        self._on_warning = on_warning
        self._on_sent = on_sent
        self._transport_factory = transport_factory
        self._random_source = random_source

        self._transport: Optional[Transport] = None
        self._state = ConnectionState.IDLE
        self._reconnect = ReconnectState()

    # --- Read-only state ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempt_count(self) -> int:
        return self._reconnect.attempt_count

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect.pending_timer is not None

    @property
    def manual_close_requested(self) -> bool:
        return self._reconnect.manual_close_requested

    @property
    def transport_kind(self) -> Optional[TransportKind]:
        return self._transport.kind if self._transport is not None else None

    def is_open(self) -> bool:
        return self._transport is not None and self._transport.is_open()

    # --- Public operations ---

    def connect(self) -> bool:
        """Starts a fresh connection attempt to the configured target.

        Resets the reconnect bookkeeping, replaces any existing transport and
        returns immediately. Returns False (after a warning) when no target
        is configured.
        """
        target = self._resolve_target()
        if not target:
            self._warn(ConfigurationError("No connection target configured."), "connect:no-target")
            return False
        self._reconnect.reset()
        self._open(target)
        return True

    def disconnect(self) -> None:
        """Closes the connection and suppresses automatic reconnects.

        Safe to call at any time. Reports ``on_close`` only if a transport
        was open or opening.
        """
        self._reconnect.manual_close_requested = True
        if self._reconnect.cancel_timer():
            logger.info("Pending reconnect cancelled by disconnect().")
        transport, self._transport = self._transport, None
        self._state = ConnectionState.IDLE
        if transport is None:
            return
        logger.info(f"Disconnecting from {transport.target}.")
        transport.close(NORMAL_CLOSURE, CLIENT_CLOSE_REASON)
        self._emit(self._on_close, Closed(NORMAL_CLOSURE, CLIENT_CLOSE_REASON))

    def close(self) -> None:
        """Tears the manager down. Equivalent to `disconnect()`."""
        self.disconnect()

    def send(self, text: str) -> bool:
        """Sends one text payload if the connection is open.

        The text is handed to the transport unchanged. Returns False (after a
        warning) when nothing is open; the text is dropped, never queued.
        """
        transport = self._transport
        if transport is None or not transport.is_open():
            self._warn(SendRejected(text=text), "send-failed:not-open")
            return False
        try:
            sent = transport.send(text)
        except Exception as e:
            self._report_error(e if isinstance(e, TransportError) else TransportError(f"Send failed: {e}", url=transport.target, original_exception=e))
            return False
        if sent:
            self._emit(self._on_sent, text)
        else:
            self._warn(SendRejected(text=text), "send-failed:rejected")
        return sent

    # --- Internals: opening ---

    def _resolve_target(self) -> str:
        try:
            target = self._get_target()
        except Exception as e:
            logger.exception(f"Target resolver failed: {e}")
            return ""
        return target.strip() if isinstance(target, str) else ""

    def _open(self, target: str) -> None:
        self._supersede_transport()
        kind = classify(target)
        logger.info(f"Connecting to {target} using {kind}.")
        self._state = ConnectionState.CONNECTING
        try:
            transport = self._transport_factory(kind, self._task_manager)
            self._transport = transport
            transport.open(
                target,
                on_opened=lambda: self._handle_opened(transport),
                on_message=lambda text: self._handle_message(transport, text),
                on_error=lambda error: self._handle_error(transport, error),
                on_closed=lambda code, reason: self._handle_closed(transport, code, reason),
            )
        except Exception as e:
            logger.error(f"Could not open a {kind} transport to {target}: {e}")
            self._transport = None
            self._state = ConnectionState.CLOSED
            error = e if isinstance(e, TransportError) else TransportError(f"Could not open transport: {e}", url=target, original_exception=e)
            self._report_error(error)
            self._maybe_schedule_reconnect()

    def _supersede_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        logger.info(f"Superseding previous transport to {transport.target}.")
        transport.close(NORMAL_CLOSURE, SUPERSEDED_REASON)

    def _is_current(self, transport: Transport, notification: str) -> bool:
        if transport is self._transport:
            return True
        logger.debug(f"Ignoring '{notification}' from stale transport {transport!r}.")
        return False

    # --- Internals: transport notifications ---

    def _handle_opened(self, transport: Transport) -> None:
        if not self._is_current(transport, "opened"):
            return
        self._reconnect.attempt_count = 0
        self._state = ConnectionState.OPEN
        logger.info(f"Connected to {transport.target}.")
        self._emit(self._on_open)

    def _handle_message(self, transport: Transport, text: str) -> None:
        if not self._is_current(transport, "message"):
            return
        self._emit(self._on_message, text)

    def _handle_error(self, transport: Transport, error: Exception) -> None:
        if not self._is_current(transport, "error"):
            return
        self._report_error(error)

    def _handle_closed(self, transport: Transport, code: int, reason: str) -> None:
        if not self._is_current(transport, "closed"):
            return
        self._transport = None
        self._state = ConnectionState.CLOSED
        logger.warning(f"Connection closed: code={code} reason={reason or 'none'}")
        self._emit(self._on_close, Closed(code if code is not None else ABNORMAL_CLOSURE, reason or ""))
        self._maybe_schedule_reconnect()

    # --- Internals: reconnect ---

    def _maybe_schedule_reconnect(self) -> None:
        if self._reconnect.manual_close_requested:
            return
        try:
            enabled = bool(self._auto_reconnect())
        except Exception as e:
            logger.exception(f"auto_reconnect resolver failed: {e}")
            enabled = False
        if enabled:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self._reconnect.cancel_timer()
        try:
            configured = self._get_reconnect_delay()
        except Exception as e:
            logger.exception(f"Reconnect delay resolver failed: {e}")
            configured = None
        delay_ms = compute_delay_ms(resolve_base_delay(configured), self._reconnect.attempt_count, self._random_source())
        self._reconnect.attempt_count += 1
        try:
            self._reconnect.pending_timer = self._task_manager.call_later(delay_ms / 1000.0, self._on_reconnect_timer)
        except Exception as e:
            logger.error(f"Could not schedule reconnect: {e}")
            self._report_error(TransportError(f"Could not schedule reconnect: {e}", original_exception=e))
            return
        self._warn(None, f"reconnect-in:{round(delay_ms)}ms")

    def _on_reconnect_timer(self) -> None:
        self._reconnect.pending_timer = None
        if self._reconnect.manual_close_requested:
            return
        target = self._resolve_target()
        if not target:
            self._warn(ConfigurationError("No connection target configured."), "reconnect:no-target")
            return
        logger.info(f"Reconnect attempt {self._reconnect.attempt_count} to {target}.")
        self._open(target)

    # --- Internals: observers ---

    def _emit(self, handler: Optional[Callable[..., Any]], *args: Any) -> None:
        invoke_handler(handler, *args, task_manager=self._task_manager)

    def _report_error(self, error: Exception) -> None:
        logger.error(f"Transport error: {error}")
        self._emit(self._on_error, ErrorOccurred(str(error), error))

    def _warn(self, error: Optional[Exception], detail: str) -> None:
        if error is not None:
            logger.warning(f"{detail}: {error}")
        else:
            logger.warning(detail)
        self._emit(self._on_warning, detail)
