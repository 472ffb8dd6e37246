"""The embedding application: settings, connection, routing and commands.

`ClientApp` is what a front end drives. It owns the `ClientSettings`, a
`ConnectionManager` reading its target and delays from those settings, a
`MessageRouter` with the built-in protocol keys, a `CommandRegistry` and an
`InfoProbe`. Everything that should be shown to the user goes through a
`ClientView`; the console in `tether.__main__` is one such view.

All methods must be called on the loop of the app's `TaskManager`.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Protocol

from .commands import CommandRegistry
from .config import ClientSettings, SettingsStore, is_valid_target
from .connection_manager import ConnectionManager
from .core.exceptions import ProbeFailure
from .core.factories import TransportFactoryType, create_transport
from .core.task_manager import TaskManager
from .events import Closed, ErrorOccurred
from .probe import InfoProbe, INFO_PATH, parse_info
from .router import MessageRouter

logger = logging.getLogger(__name__)

AVAILABILITY_POLL_SECONDS = 15.0

DEVICE_INFO_KEYS = ("name", "firmware", "uptime")

# View log levels mapped onto logging levels.
_LOG_LEVELS = {
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "rx": logging.DEBUG,
    "tx": logging.DEBUG,
    "raw": logging.DEBUG,
}


class ClientView(Protocol):
    """What `ClientApp` needs from a front end."""

    def show_status(self, level: str, text: str) -> None: ...

    def show_log(self, level: str, text: str) -> None: ...

    def show_device_info(self, target: str, info: Mapping[str, str]) -> None: ...

    def show_device_error(self, target: str, detail: str) -> None: ...

    def show_counters(self, counters: "TrafficCounters") -> None: ...


class NullView:
    """A `ClientView` that shows nothing."""

    def show_status(self, level: str, text: str) -> None:
        pass

    def show_log(self, level: str, text: str) -> None:
        pass

    def show_device_info(self, target: str, info: Mapping[str, str]) -> None:
        pass

    def show_device_error(self, target: str, detail: str) -> None:
        pass

    def show_counters(self, counters: "TrafficCounters") -> None:
        pass


@dataclass
class TrafficCounters:
    rx: int = 0
    tx: int = 0
    err: int = 0


class ClientApp:
    """A connection client with persistent settings.

    Args:
        task_manager (TaskManager): Host event loop.
        store (SettingsStore): Where settings are loaded from and saved to.
        view (Optional[ClientView]): Front end; defaults to `NullView`.
        settings (Optional[ClientSettings]): Initial settings. Loaded from
            `store` when omitted.
        probe (Optional[InfoProbe]): HTTP probe for ``/info``.
        commands (Optional[CommandRegistry]): Command registry with built-ins.
        transport_factory: Passed to the `ConnectionManager`.
        random_source: Passed to the `ConnectionManager`.
    """

    def __init__(self, task_manager: TaskManager, store: SettingsStore,
                 view: Optional[ClientView] = None,
                 settings: Optional[ClientSettings] = None,
                 probe: Optional[InfoProbe] = None,
                 commands: Optional[CommandRegistry] = None,
                 transport_factory: TransportFactoryType = create_transport,
                 random_source: Callable[[], float] = random.random):
        self.task_manager = task_manager
        self.store = store
        self.view: ClientView = view or NullView()
        self.settings = settings if settings is not None else store.load()
        self.probe = probe or InfoProbe()
        self.commands = commands or CommandRegistry()
        self.counters = TrafficCounters()
        self.device_info: Dict[str, str] = {}
        self._poll_task: Optional[asyncio.Task] = None

        self.router = MessageRouter(default=lambda text: self.log("raw", text))
        for key in DEVICE_INFO_KEYS:
            self.router.register(key, self._on_device_key)
        for level in ("log", "warn", "error"):
            self.router.register(level, self._on_log_key)

        self.manager = ConnectionManager(
            task_manager=task_manager,
            get_target=lambda: self.settings.server_url,
            get_reconnect_delay=lambda: self.settings.reconnect_delay,
            auto_reconnect=lambda: self.settings.auto_reconnect,
            on_open=self._on_open,
            on_close=self._on_close,
            on_message=self._on_message,
            on_error=self._on_error,
            on_warning=self._on_warning,
            on_sent=self._on_sent,
            transport_factory=transport_factory,
            random_source=random_source,
        )

    # --- Lifecycle ---

    def start(self, poll: bool = True, auto_connect: bool = True) -> None:
        """Starts availability polling and, if configured, connects."""
        if poll and self._poll_task is None:
            self._poll_task = self.task_manager.submit_task(self.poll_availability_async())
        if auto_connect and self.settings.auto_connect and self.settings.server_url:
            self.task_manager.submit_task(self.connect_async())

    def close(self) -> None:
        """Stops polling and closes the connection."""
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        self.manager.close()

    # --- Operations ---

    async def connect_async(self, url: Optional[str] = None) -> bool:
        """Validates and saves the target, probes ``/info``, then connects.

        Returns False if the target is invalid; nothing is saved in that case.
        """
        candidate = (url if url is not None else self.settings.server_url or "").strip()
        if not is_valid_target(candidate):
            self.log("warn", f"invalid-url:{candidate or '<empty>'}")
            self.view.show_status("err", "Enter a valid connection URL.")
            return False

        self.settings.server_url = candidate
        self.settings.remember_server(candidate)
        self.persist()
        self.view.show_status("warn", "Connecting...")
        self.device_info.clear()

        await self.check_availability_async(candidate, update_info=True)
        return self.manager.connect()

    def disconnect(self) -> None:
        self.manager.disconnect()
        self.view.show_status("err", "Disconnected")

    def send(self, text: str) -> bool:
        return self.manager.send(text)

    def toggle_auto_reconnect(self) -> bool:
        self.settings.auto_reconnect = not self.settings.auto_reconnect
        self.persist()
        self.log("info", f"autoReconnect:{str(self.settings.auto_reconnect).lower()}")
        return self.settings.auto_reconnect

    async def run_command(self, name: str, arg: Optional[str] = None) -> bool:
        return await self.commands.run(name, self, arg)

    def persist(self) -> None:
        try:
            self.store.save(self.settings)
        except OSError as e:
            logger.warning(f"Could not save settings: {e}")
            self.view.show_log("warn", f"settings:save-failed:{e}")

    # --- Device info and availability ---

    def set_device_info(self, target: str, info: Mapping[str, str]) -> None:
        self.device_info.update(info)
        self.view.show_device_info(target, dict(self.device_info))

    def set_device_error(self, target: str, detail: str) -> None:
        self.view.show_device_error(target, detail)

    async def check_availability_async(self, target: Optional[str] = None, update_info: bool = False) -> bool:
        """Probes ``/info`` once. Returns True if the device answered with 2xx.

        Failures are reported as device errors and never raised.
        """
        target = target or self.settings.server_url
        if not target:
            return False
        try:
            response = await self.probe.get(target, INFO_PATH)
        except ProbeFailure as e:
            self.log("warn", f"device:info-failed:{e}")
            self.set_device_error(target, str(e))
            return False
        if not response.ok:
            self.log("warn", f"device:info-status:{response.status}")
            self.set_device_error(target, f"http:{response.status}")
            return False
        if update_info:
            self.set_device_info(target, parse_info(response.text))
            self.log("info", "device:available")
        return True

    async def poll_availability_async(self, interval: float = AVAILABILITY_POLL_SECONDS) -> None:
        """Re-probes the configured target every `interval` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            if self.settings.server_url:
                await self.check_availability_async()

    # --- Logging to the view ---

    def log(self, level: str, text: str) -> None:
        logger.log(_LOG_LEVELS.get(level, logging.INFO), f"{level}:{text}")
        self.view.show_log(level, text)

    def _bump(self, counter: str) -> None:
        setattr(self.counters, counter, getattr(self.counters, counter) + 1)
        self.view.show_counters(self.counters)

    # --- Router handlers ---

    def _on_device_key(self, key: str, value: str) -> None:
        self.set_device_info(self.settings.server_url, {key: value})

    def _on_log_key(self, key: str, value: str) -> None:
        self.log("info" if key == "log" else key, value)

    # --- Connection observers ---

    def _on_open(self) -> None:
        self.view.show_status("ok", "Connected")

    def _on_close(self, event: Closed) -> None:
        self.view.show_status("err", "Disconnected")

    def _on_message(self, text: str) -> None:
        self._bump("rx")
        self.log("rx", text)
        self.router.dispatch(text)

    def _on_error(self, event: ErrorOccurred) -> None:
        self._bump("err")
        self.log("error", event.detail)
        self.view.show_status("err", "Error")

    def _on_warning(self, detail: str) -> None:
        self.log("warn", detail)

    def _on_sent(self, text: str) -> None:
        self._bump("tx")
        self.log("tx", text)
