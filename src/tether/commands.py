"""Named commands the user (or a script) can run against a `ClientApp`.

A command is a callable ``handler(ctx, arg)`` where ``ctx`` is the running
`ClientApp` and ``arg`` is an optional string argument. Handlers may be
plain functions or coroutines. New commands are added with `define`::

    registry.define("led:on", lambda ctx, arg: ctx.send("led:on"))
"""

import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from .probe import parse_info

if TYPE_CHECKING:
    from .app import ClientApp

logger = logging.getLogger(__name__)

CommandHandler = Callable[["ClientApp", Optional[str]], Any]

DEFAULT_SEND_PAYLOAD = "ping:1"
DEFAULT_GET_PATH = "/"
BODY_PREVIEW_CHARS = 500


class CommandRegistry:
    """Maps command names to handlers."""

    def __init__(self, with_builtins: bool = True):
        self._commands: Dict[str, CommandHandler] = {}
        if with_builtins:
            register_builtins(self)

    def define(self, name: str, handler: CommandHandler) -> None:
        if not callable(handler):
            raise TypeError(f"Command '{name}' needs a callable handler.")
        self._commands[name] = handler

    def names(self) -> List[str]:
        return sorted(self._commands)

    def __contains__(self, name: object) -> bool:
        return name in self._commands

    async def run(self, name: str, ctx: "ClientApp", arg: Optional[str] = None) -> bool:
        """Runs one command. Returns True if it completed without error.

        Unknown names are logged as warnings; handler exceptions as errors.
        Neither is raised.
        """
        handler = self._commands.get(name)
        if handler is None:
            logger.warning(f"action:unknown:{name}")
            return False
        try:
            result = handler(ctx, arg)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"action:error:{name}:{e}")
            return False
        return True


# --- Built-in commands ---

def _send(ctx: "ClientApp", arg: Optional[str]) -> None:
    ctx.send(arg or DEFAULT_SEND_PAYLOAD)


async def _http_get(ctx: "ClientApp", arg: Optional[str]) -> None:
    path = arg or DEFAULT_GET_PATH
    target = ctx.settings.server_url
    response = await ctx.probe.get(target, path)
    preview = response.text[:BODY_PREVIEW_CHARS]
    if len(response.text) > BODY_PREVIEW_CHARS:
        preview += "..."
    ctx.log("info", f"http:{response.status}:{preview}")
    if path == "/info":
        ctx.set_device_info(target, parse_info(response.text))


def _reconnect(ctx: "ClientApp", arg: Optional[str]) -> None:
    ctx.manager.disconnect()
    ctx.manager.connect()


def _toggle_auto(ctx: "ClientApp", arg: Optional[str]) -> None:
    ctx.toggle_auto_reconnect()


def register_builtins(registry: CommandRegistry) -> None:
    registry.define("ws:send", _send)
    registry.define("http:get", _http_get)
    registry.define("app:reconnect", _reconnect)
    registry.define("app:toggle-auto", _toggle_auto)
