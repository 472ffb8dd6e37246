"""Test doubles shared by the top-level test modules."""

import asyncio
from typing import Any, Callable, Coroutine, List, Optional, Tuple

from tether.core.selector import TransportKind
from tether.core.task_manager import TaskManager


class FakeTimer:
    def __init__(self, delay: float, callback: Callable[..., Any], args: Tuple[Any, ...]):
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        assert not self.cancelled, "fired a cancelled timer"
        self.callback(*self.args)


class RecordingTaskManager(TaskManager):
    """Synchronous TaskManager that records timers instead of running a loop.

    Coroutines submitted to it are kept (not run) so tests can inspect them;
    they are closed by `close_pending()`.
    """

    def __init__(self):
        self.timers: List[FakeTimer] = []
        self.submitted: List[Coroutine[Any, Any, Any]] = []

    def ensure_loop_running(self) -> None:
        pass

    def get_loop(self) -> asyncio.AbstractEventLoop:
        raise RuntimeError("RecordingTaskManager has no loop")

    def is_loop_running(self) -> bool:
        return True

    def submit_task(self, coro):
        self.submitted.append(coro)
        return None

    def call_later(self, delay_seconds, callback, *args):
        timer = FakeTimer(delay_seconds, callback, args)
        self.timers.append(timer)
        return timer

    def call_soon_threadsafe(self, callback, *args) -> None:
        callback(*args)

    def stop_loop(self) -> None:
        pass

    def wait_for_stop(self) -> None:
        pass

    @property
    def pending_timers(self) -> List[FakeTimer]:
        return [timer for timer in self.timers if not timer.cancelled and not timer.fired]

    def fire_latest(self) -> None:
        timer = self.pending_timers[-1]
        timer.fired = True
        timer.fire()

    def close_pending(self) -> None:
        for coro in self.submitted:
            coro.close()
        self.submitted.clear()


class FakeTransport:
    """Stands in for a `Transport`; tests drive its notifications directly."""

    def __init__(self, kind: TransportKind):
        self.kind = kind
        self.target: Optional[str] = None
        self.opened = False
        self.closed_with: Optional[Tuple[int, str]] = None
        self.sent: List[str] = []
        self.accept_sends = True
        self._handlers = {}

    def open(self, target, *, on_opened=None, on_message=None, on_error=None, on_closed=None):
        self.target = target
        self._handlers = dict(opened=on_opened, message=on_message, error=on_error, closed=on_closed)

    def is_open(self) -> bool:
        return self.opened and self.closed_with is None

    def send(self, text: str) -> bool:
        if not self.accept_sends:
            return False
        self.sent.append(text)
        return True

    def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed_with is not None:
            return
        self.closed_with = (code, reason)
        # A real handle reports closed asynchronously, after its owner moved on.
        self.emit_closed(code, reason)

    @property
    def is_closed(self) -> bool:
        return self.closed_with is not None

    # --- Simulated native notifications ---

    def _call(self, name: str, *args: Any) -> None:
        handler = self._handlers.get(name)
        if handler is not None:
            handler(*args)

    def emit_opened(self) -> None:
        self.opened = True
        self._call("opened")

    def emit_message(self, text: str) -> None:
        self._call("message", text)

    def emit_error(self, error: Exception) -> None:
        self._call("error", error)

    def emit_closed(self, code: int = 1006, reason: str = "") -> None:
        if self.closed_with is None:
            self.closed_with = (code, reason)
        self._call("closed", code, reason)


class FakeTransportFactory:
    """Transport factory that records every transport it creates."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.created: List[FakeTransport] = []
        self.fail_with = fail_with

    def __call__(self, kind: TransportKind, task_manager: TaskManager) -> FakeTransport:
        if self.fail_with is not None:
            raise self.fail_with
        transport = FakeTransport(kind)
        self.created.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.created[-1]

    def live(self) -> List[FakeTransport]:
        return [transport for transport in self.created if not transport.is_closed]


class Recorder:
    """Collects observer callbacks in call order."""

    def __init__(self):
        self.calls: List[Tuple[str, Any]] = []

    def __getattr__(self, name: str) -> Callable[..., None]:
        if not name.startswith("on_"):
            raise AttributeError(name)

        def record(*args: Any) -> None:
            self.calls.append((name, args[0] if len(args) == 1 else args))
        return record

    def of(self, name: str) -> List[Any]:
        return [payload for called, payload in self.calls if called == name]
