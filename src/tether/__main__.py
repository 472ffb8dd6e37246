"""Interactive console client.

Connects to a device and lets you talk to it line by line::

    python -m tether --url ws://192.168.4.1:81/

Lines typed at the prompt are sent verbatim. Lines starting with ``/`` are
console commands; ``/help`` lists them. The event loop runs in a background
thread (`ThreadedTaskManager`); every call into the client is marshalled
onto that thread, and the main thread only reads stdin.
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional

from . import __version__
from .app import ClientApp, TrafficCounters
from .config import SettingsStore
from .core.threaded_task_manager import ThreadedTaskManager

logger = logging.getLogger("tether.console")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] - %(message)s"

HELP_TEXT = """\
/connect [url]       connect (to url, or to the saved server)
/disconnect          close the connection, no reconnect
/reconnect           disconnect, then connect again
/auto                toggle automatic reconnect
/get [path]          HTTP GET on the device (default /)
/run <cmd> [arg]     run a named command (see /run with no args)
/help                this text
/quit                leave
anything else        sent to the device as-is"""


class ConsoleView:
    """Prints client output to a stream, one timestamped line per event."""

    def __init__(self, stream=None):
        self._stream = stream or sys.stdout

    def _print(self, tag: str, text: str) -> None:
        stamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        print(f"[{stamp}] {tag:<6} {text}", file=self._stream, flush=True)

    def show_status(self, level: str, text: str) -> None:
        self._print("status", text)

    def show_log(self, level: str, text: str) -> None:
        self._print(level, text)

    def show_device_info(self, target: str, info: Mapping[str, str]) -> None:
        details = ", ".join(f"{key}={value}" for key, value in info.items()) or "no details"
        self._print("device", f"{target}: {details}")

    def show_device_error(self, target: str, detail: str) -> None:
        self._print("device", f"{target}: unavailable ({detail})")

    def show_counters(self, counters: TrafficCounters) -> None:
        logger.debug(f"rx={counters.rx} tx={counters.tx} err={counters.err}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m tether", description="Line-oriented WebSocket / Socket.IO console.")
    parser.add_argument("--url", help="connection target (ws://, wss://, http://, https://)")
    parser.add_argument("--delay", type=int, help="base reconnect delay in milliseconds (250..60000)")
    parser.add_argument("--no-reconnect", action="store_true", help="do not reconnect after unintended closes")
    parser.add_argument("--settings", help="settings file (default: $TETHER_SETTINGS or ~/.config/tether/settings.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--version", action="version", version=f"tether {__version__}")
    return parser


async def _on_loop(func: Callable[..., Any], *args: Any) -> Any:
    """Runs a plain callable on the loop thread (for use with `run_threadsafe`)."""
    return func(*args)


class Console:
    """Reads commands from stdin and drives a `ClientApp` on the loop thread."""

    def __init__(self, app: ClientApp, task_manager: ThreadedTaskManager, view: ConsoleView):
        self.app = app
        self.tm = task_manager
        self.view = view

    def call(self, func: Callable[..., Any], *args: Any) -> Any:
        return self.tm.run_threadsafe(_on_loop(func, *args))

    def await_(self, coro) -> Any:
        return self.tm.run_threadsafe(coro)

    def handle_line(self, line: str) -> bool:
        """Handles one input line. Returns False when the console should exit."""
        if not line.startswith("/"):
            if line:
                self.call(self.app.send, line)
            return True

        command, _, rest = line[1:].partition(" ")
        rest = rest.strip()
        arg: Optional[str] = rest or None

        if command in ("quit", "exit"):
            return False
        if command == "help":
            self.view.show_log("info", "\n" + HELP_TEXT)
        elif command == "connect":
            self.await_(self.app.connect_async(arg))
        elif command == "disconnect":
            self.call(self.app.disconnect)
        elif command == "reconnect":
            self.await_(self.app.run_command("app:reconnect"))
        elif command == "auto":
            self.call(self.app.toggle_auto_reconnect)
        elif command == "get":
            self.await_(self.app.run_command("http:get", arg))
        elif command == "run":
            if arg is None:
                self.view.show_log("info", "commands: " + ", ".join(self.app.commands.names()))
            else:
                name, _, command_arg = arg.partition(" ")
                self.await_(self.app.run_command(name, command_arg.strip() or None))
        else:
            self.view.show_log("warn", f"unknown command /{command} (try /help)")
        return True

    def run(self, stdin=None) -> None:
        stdin = stdin or sys.stdin
        for raw_line in stdin:
            if not self.handle_line(raw_line.rstrip("\r\n")):
                break


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format=LOG_FORMAT)

    store = SettingsStore(args.settings)
    settings = store.load()
    if args.delay is not None:
        settings.reconnect_delay = args.delay
    if args.no_reconnect:
        settings.auto_reconnect = False

    tm = ThreadedTaskManager()
    view = ConsoleView()
    app: Optional[ClientApp] = None
    try:
        tm.ensure_loop_running()
        app = ClientApp(tm, store, view=view, settings=settings)
        console = Console(app, tm, view)
        console.call(app.start, True, not args.url)
        if args.url:
            console.await_(app.connect_async(args.url))
        view.show_log("info", "type /help for commands")
        console.run()
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        if tm.is_loop_running():
            try:
                tm.run_threadsafe(_close_app(app), timeout=2.0)
            except Exception as e:
                logger.error(f"Error while closing the client: {e}")
            tm.stop_loop()
            tm.wait_for_stop()
    return 0


async def _close_app(app: Optional[ClientApp]) -> None:
    if app is None:
        return
    app.close()
    # Give the closing handshake a moment before the loop shuts down.
    await asyncio.sleep(0.1)


if __name__ == "__main__":
    sys.exit(main())
