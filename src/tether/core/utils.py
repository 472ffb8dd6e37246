"""Small helpers shared by the transports and the connection manager."""

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

from .task_manager import TaskManager

logger = logging.getLogger(__name__)


def coerce_text(data: Any) -> str:
    """Returns inbound payload data as text.

    Strings pass through untouched. Binary payloads are decoded as UTF-8,
    with undecodable bytes replaced rather than raising.
    """
    if isinstance(data, str):
        return data
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data).decode("utf-8", errors="replace")
    if data is None:
        return ""
    return str(data)


def handler_name(handler: Optional[Callable[..., Any]]) -> str:
    return getattr(handler, "__qualname__", None) or getattr(handler, "__name__", None) or repr(handler)


async def _await_handler_result(name: str, awaitable: Awaitable[Any]) -> None:
    try:
        await awaitable
    except Exception as e:
        logger.exception(f"An error occurred inside async handler '{name}': {e}")


def invoke_handler(handler: Optional[Callable[..., Any]], *args: Any,
                   task_manager: Optional[TaskManager] = None) -> None:
    """Calls a sync or async handler without letting it raise.

    The handler is called synchronously. If it returns an awaitable, the
    awaitable is submitted to `task_manager` (when one is given) so async
    handlers run to completion on the host loop. Exceptions raised by the
    handler, synchronously or later, are logged and swallowed.
    """
    if handler is None:
        return
    name = handler_name(handler)
    try:
        result = handler(*args)
    except Exception as e:
        logger.exception(f"An error occurred inside handler '{name}': {e}")
        return
    if not inspect.isawaitable(result):
        return
    if task_manager is None:
        logger.warning(f"Handler '{name}' returned an awaitable but no TaskManager is available to run it.")
        if inspect.iscoroutine(result):
            result.close()
        return
    try:
        task_manager.submit_task(_await_handler_result(name, result))
    except Exception as e_submit:
        logger.error(f"Failed to submit async handler '{name}': {e_submit}")
