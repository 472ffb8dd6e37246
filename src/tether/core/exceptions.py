"""Exception hierarchy for tether.

Every error raised inside the package derives from `TetherError`. The
`ConnectionManager` never lets these escape to its caller: it catches them at
its boundary and reports them to the embedding application through the
observer callbacks. They are still raised normally by the lower layers
(transports, task managers, the metadata probe) so each layer can be used and
tested on its own.
"""

from typing import Optional


# --- Base Exception ---

class TetherError(Exception):
    """Base class for all errors raised by tether."""
    def __init__(self, message: str, original_exception: Optional[BaseException] = None):
        super().__init__(message)
        self.original_exception = original_exception

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.original_exception:
            parts.append(f"Original Exception: {type(self.original_exception).__name__}: {self.original_exception}")
        return ". ".join(parts)


class ConfigurationError(TetherError):
    """Raised when the configured connection target is empty or invalid.

    Configuration errors are reported once and never retried; the user has
    to fix the setting and connect again.
    """
    def __init__(self, message: str, target: Optional[str] = None):
        super().__init__(message)
        self.target = target


# --- Transport Exceptions ---

class TransportError(TetherError):
    """Base class for failures of a transport handle.

    Covers failures to open, to send and protocol-level errors reported by
    the underlying library.

    Attributes:
        url (Optional[str]): The target the transport was opened against.
    """
    def __init__(self, message: str, url: Optional[str] = None, original_exception: Optional[BaseException] = None):
        super().__init__(message, original_exception=original_exception)
        self.url = url

    def __str__(self) -> str:
        parts = [Exception.__str__(self)]
        if self.url:
            parts.append(f"URL: {self.url}")
        if self.original_exception:
            parts.append(f"Original Exception: {type(self.original_exception).__name__}: {self.original_exception}")
        return ". ".join(parts)


class TransportOpenError(TransportError):
    """Raised when a transport cannot be opened.

    This includes targets rejected before any network activity (wrong scheme,
    missing host) and handshakes that fail for any reason not covered by a
    more specific subclass.
    """
    pass


class TransportRefusedError(TransportOpenError):
    """Raised when the remote endpoint actively refuses the connection."""
    def __init__(self, url: str, original_exception: Optional[BaseException] = None):
        super().__init__(f"Connection was refused by the server at {url}.", url=url, original_exception=original_exception)


class TransportTimeoutError(TransportOpenError):
    """Raised when the opening handshake does not complete in time.

    Attributes:
        timeout_seconds (Optional[float]): The timeout that expired, if known.
    """
    def __init__(self, url: str, timeout_seconds: Optional[float] = None, original_exception: Optional[BaseException] = None):
        message = f"Connection attempt to {url} timed out"
        if timeout_seconds is not None:
            message += f" after {timeout_seconds:.2f} seconds."
        else:
            message += "."
        super().__init__(message, url=url, original_exception=original_exception)
        self.timeout_seconds = timeout_seconds


class TransportClosedError(TransportError):
    """Raised when an established connection is lost abnormally.

    Attributes:
        code (Optional[int]): The close code, when the protocol provides one.
    """
    def __init__(self, message: str = "The connection was closed unexpectedly.", code: Optional[int] = None,
                 url: Optional[str] = None, original_exception: Optional[BaseException] = None):
        super().__init__(message, url=url, original_exception=original_exception)
        self.code = code


class SendRejected(TetherError):
    """Raised (or reported) when text is sent while no transport is open.

    The text is dropped. There is no queue and no retry.
    """
    def __init__(self, message: str = "Cannot send: the connection is not open.", text: Optional[str] = None):
        super().__init__(message)
        self.text = text


class ProbeFailure(TetherError):
    """Raised when the auxiliary metadata fetch fails.

    Probe failures are warnings; they never affect the connection state.

    Attributes:
        url (Optional[str]): The HTTP URL that was requested.
        status_code (Optional[int]): The HTTP status, when a response arrived.
    """
    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None,
                 original_exception: Optional[BaseException] = None):
        super().__init__(message, original_exception=original_exception)
        self.url = url
        self.status_code = status_code


# --- TaskManager Exceptions ---

class TaskManagerError(TetherError):
    """Base class for errors related to the host event loop."""
    pass


class LoopNotRunningError(TaskManagerError, RuntimeError):
    """Raised when an operation needs the managed event loop but it is not running."""
    def __init__(self, message: str = "The TaskManager's event loop is not running."):
        super().__init__(message)


class TaskSubmissionError(TaskManagerError):
    """Raised when a coroutine or callback cannot be scheduled on the loop."""
    def __init__(self, message: str = "Failed to submit task to the TaskManager.", original_exception: Optional[BaseException] = None):
        super().__init__(message, original_exception=original_exception)
