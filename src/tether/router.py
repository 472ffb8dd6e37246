"""Dispatch of inbound ``key:value`` messages.

The line protocol carries one message per payload. Text up to the first
colon is the key and everything after it is the value (the value may
contain more colons). Text without a colon has no key and goes to the
default handler untouched.
"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from .core.utils import handler_name

logger = logging.getLogger(__name__)

KeyHandler = Callable[[str, str], Any]
RawHandler = Callable[[str], Any]


def split_message(text: str) -> Tuple[Optional[str], str]:
    """Returns ``(key, value)``, or ``(None, text)`` if there is no colon."""
    key, sep, value = text.partition(":")
    if not sep:
        return None, text
    return key, value


class MessageRouter:
    """Routes messages to handlers by key.

    Handlers registered with `register` receive ``(key, value)``. Messages
    whose key has no handler, and messages without a key, go to the default
    handler with the full original text.
    """

    def __init__(self, default: Optional[RawHandler] = None):
        self._handlers: Dict[str, KeyHandler] = {}
        self._default = default

    def register(self, key: str, handler: KeyHandler) -> None:
        if not callable(handler):
            raise TypeError(f"Handler for '{key}' must be callable.")
        if key in self._handlers:
            logger.debug(f"Replacing handler for key '{key}'.")
        self._handlers[key] = handler

    def unregister(self, key: str) -> None:
        self._handlers.pop(key, None)

    def set_default(self, handler: Optional[RawHandler]) -> None:
        self._default = handler

    def keys(self):
        return list(self._handlers)

    def dispatch(self, text: str) -> bool:
        """Delivers one message. Returns True if a keyed handler took it.

        Handler exceptions are logged, never raised.
        """
        key, value = split_message(text)
        handler = self._handlers.get(key) if key is not None else None
        try:
            if handler is not None:
                handler(key, value)
                return True
            if self._default is not None:
                self._default(text)
        except Exception as e:
            name = handler_name(handler if handler is not None else self._default)
            logger.exception(f"Message handler '{name}' failed for {text!r}: {e}")
        return False
