"""Defines the abstract base class shared by both wire protocols.

A `Transport` is the live handle to one connection attempt. Whatever the
underlying protocol calls its events, every transport reports exactly four
native notifications to its owner:

- ``opened()``: the handshake completed.
- ``message(text)``: one inbound text payload.
- ``error(exc)``: something failed; a ``closed`` notification follows for
  fatal errors.
- ``closed(code, reason)``: the handle is finished. Delivered exactly once.

Handles are single-use. `open()` validates the target synchronously and then
schedules the asynchronous handshake on the `TaskManager`; it never blocks.
`send()` likewise schedules the write and returns immediately.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

from .exceptions import TransportError
from .selector import TransportKind
from .status import TransportStatus
from .task_manager import TaskManager
from .utils import invoke_handler

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006


OpenedHandlerType = Callable[[], Union[None, Awaitable[None]]]
"""Called once the transport is open and usable."""

MessageHandlerType = Callable[[str], Union[None, Awaitable[None]]]
"""Called with each inbound text payload."""

ErrorHandlerType = Callable[[Exception], Union[None, Awaitable[None]]]
"""Called with a `TransportError` describing a failure."""

ClosedHandlerType = Callable[[int, str], Union[None, Awaitable[None]]]
"""Called exactly once with the close code and reason."""


class Transport(ABC):
    """Abstract Base Class for a single-use, text-oriented connection handle.

    Subclasses implement the handshake and read loop in `_run_async`, plus
    `_send_async` and `_close_async`. This base class owns the status, the
    registered notification handlers, the outbound write ordering and the
    guarantee that ``closed`` fires only once.
    """

    kind: TransportKind

    def __init__(self, task_manager: TaskManager):
        self._task_manager = task_manager
        self._status: TransportStatus = TransportStatus.DISCONNECTED
        self._target: Optional[str] = None
        self._used = False
        self._closed_notified = False
        self._close_code = NORMAL_CLOSURE
        self._close_reason = ""

        self._on_opened: Optional[OpenedHandlerType] = None
        self._on_message: Optional[MessageHandlerType] = None
        self._on_error: Optional[ErrorHandlerType] = None
        self._on_closed: Optional[ClosedHandlerType] = None

        self._run_task: Optional[asyncio.Task] = None
        # Created lazily on the loop; acquired in FIFO order so writes keep
        # the order in which send() was called.
        self._send_lock: Optional[asyncio.Lock] = None

    # --- Public API ---

    @property
    def status(self) -> TransportStatus:
        return self._status

    @property
    def target(self) -> Optional[str]:
        return self._target

    def open(
        self,
        target: str,
        *,
        on_opened: Optional[OpenedHandlerType] = None,
        on_message: Optional[MessageHandlerType] = None,
        on_error: Optional[ErrorHandlerType] = None,
        on_closed: Optional[ClosedHandlerType] = None,
    ) -> None:
        """Starts connecting to `target` and returns immediately.

        Raises:
            TransportOpenError: If the target is rejected before any network
                activity (for example, an unsupported scheme).
            TransportError: If this handle has already been opened.
        """
        if self._used:
            raise TransportError("Transport handles are single-use; create a new one to reconnect.", url=target)
        self._validate_target(target)
        self._used = True
        self._target = target
        self._on_opened = on_opened
        self._on_message = on_message
        self._on_error = on_error
        self._on_closed = on_closed

        self._set_status(TransportStatus.CONNECTING)
        logger.info(f"{type(self).__name__}: connecting to {target}")
        self._run_task = self._task_manager.submit_task(self._run_guarded_async(target))
        self._run_task.add_done_callback(self._on_run_task_done)

    def send(self, text: str) -> bool:
        """Schedules `text` for delivery. Returns False if not open."""
        if not self.is_open():
            logger.debug(f"{type(self).__name__}: send refused, status is {self._status.name}")
            return False
        self._task_manager.submit_task(self._send_ordered_async(text))
        return True

    def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Closes the handle. Idempotent.

        A handle that is still connecting has its handshake cancelled. The
        ``closed`` notification carries `code` and `reason`.
        """
        if self._closed_notified or self._status in (TransportStatus.CLOSING, TransportStatus.DISCONNECTED, TransportStatus.ERROR):
            return
        self._close_code = code
        self._close_reason = reason
        was_connecting = self._status == TransportStatus.CONNECTING
        self._set_status(TransportStatus.CLOSING)
        if was_connecting:
            if self._run_task and not self._run_task.done():
                self._run_task.cancel()
            else:
                self._notify_closed(code, reason)
            return
        self._task_manager.submit_task(self._close_guarded_async(code, reason))

    def is_open(self) -> bool:
        return self._status == TransportStatus.CONNECTED and self._is_link_open()

    # --- Subclass hooks ---

    @abstractmethod
    def _validate_target(self, target: str) -> None:
        """Raises `TransportOpenError` if `target` cannot be used at all."""
        pass

    @abstractmethod
    async def _run_async(self, target: str) -> None:
        """Performs the handshake, reports ``opened`` and reads until closed.

        Implementations call `_notify_opened`, `_notify_message`,
        `_notify_error` and finally `_notify_closed`.
        """
        pass

    @abstractmethod
    async def _send_async(self, text: str) -> None:
        """Writes one text payload. May raise."""
        pass

    @abstractmethod
    async def _close_async(self, code: int, reason: str) -> None:
        """Performs the client side of the closing handshake."""
        pass

    @abstractmethod
    def _is_link_open(self) -> bool:
        """True while the underlying library reports a usable connection."""
        pass

    # --- Internals ---

    async def _run_guarded_async(self, target: str) -> None:
        try:
            await self._run_async(target)
        except asyncio.CancelledError:
            logger.debug(f"{type(self).__name__}: connection task for {target} was cancelled.")
            self._notify_closed(ABNORMAL_CLOSURE, "cancelled")
            raise
        except Exception as e:
            logger.exception(f"{type(self).__name__}: unexpected failure on {target}: {e}")
            self._notify_error(TransportError(f"Unexpected transport failure: {e}", url=target, original_exception=e))
            self._notify_closed(ABNORMAL_CLOSURE, str(e))

    def _on_run_task_done(self, task: asyncio.Task) -> None:
        # A task cancelled before its first step never enters _run_guarded_async.
        if not self._closed_notified:
            self._notify_closed(ABNORMAL_CLOSURE, "cancelled")

    async def _send_ordered_async(self, text: str) -> None:
        if self._send_lock is None:
            self._send_lock = asyncio.Lock()
        async with self._send_lock:
            if not self.is_open():
                logger.warning(f"{type(self).__name__}: dropping queued write, connection is no longer open.")
                return
            try:
                await self._send_async(text)
            except Exception as e:
                logger.error(f"{type(self).__name__}: send failed: {e}")
                error = e if isinstance(e, TransportError) else TransportError(f"Send failed: {e}", url=self._target, original_exception=e)
                self._notify_error(error)

    async def _close_guarded_async(self, code: int, reason: str) -> None:
        try:
            await self._close_async(code, reason)
        except Exception as e:
            logger.warning(f"{type(self).__name__}: error while closing: {e}")
        finally:
            self._notify_closed(code, reason)

    def _set_status(self, new_status: TransportStatus) -> None:
        if self._status == new_status:
            return
        logger.debug(f"{type(self).__name__}: status changing from {self._status.name} to {new_status.name} for {self._target}")
        self._status = new_status

    def _notify_opened(self) -> None:
        if self._status != TransportStatus.CONNECTING:
            return
        self._set_status(TransportStatus.CONNECTED)
        logger.info(f"{type(self).__name__}: connected to {self._target}")
        invoke_handler(self._on_opened, task_manager=self._task_manager)

    def _notify_message(self, text: str) -> None:
        if self._closed_notified:
            return
        invoke_handler(self._on_message, text, task_manager=self._task_manager)

    def _notify_error(self, error: Exception) -> None:
        if self._closed_notified:
            return
        invoke_handler(self._on_error, error, task_manager=self._task_manager)

    def _notify_closed(self, code: int, reason: str) -> None:
        """Delivers the one and only ``closed`` notification of this handle."""
        if self._closed_notified:
            return
        self._closed_notified = True
        if self._status == TransportStatus.CLOSING:
            # Client-initiated: report what the owner asked for.
            code, reason = self._close_code, self._close_reason
        if self._status != TransportStatus.ERROR:
            self._set_status(TransportStatus.DISCONNECTED)
        logger.info(f"{type(self).__name__}: closed code={code} reason={reason or 'none'}")
        invoke_handler(self._on_closed, code, reason, task_manager=self._task_manager)

    def _fail(self, error: TransportError, code: int = ABNORMAL_CLOSURE, reason: Optional[str] = None) -> None:
        """Reports `error` and then closes the handle abnormally."""
        if self._status != TransportStatus.CLOSING:
            self._set_status(TransportStatus.ERROR)
        self._notify_error(error)
        self._notify_closed(code, reason if reason is not None else str(error))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} target={self._target!r} status={self._status.name}>"
