"""Reconnect policy: linear backoff capped at 8 s, plus a fixed jitter window.

After every unintended close the next attempt waits::

    delay = base + jitter + min(8000, attempt_count * 300)    (milliseconds)

with ``jitter`` uniform in ``[0, 250)``. The first retry comes quickly, and
the worst case stays bounded however often the endpoint fails. The jitter
spreads out clients that all lost the same server at the same moment.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from .config import DEFAULT_RECONNECT_DELAY_MS


JITTER_WINDOW_MS = 250.0
BACKOFF_STEP_MS = 300
BACKOFF_CAP_MS = 8000


class Cancellable(Protocol):
    def cancel(self) -> None: ...


def backoff_ms(attempt_count: int) -> int:
    """Linear backoff component for the given attempt count."""
    return min(BACKOFF_CAP_MS, max(0, attempt_count) * BACKOFF_STEP_MS)


def resolve_base_delay(value: Any) -> float:
    """Interprets a configured base delay, falling back to the default.

    Non-numeric, non-finite and non-positive values yield
    `DEFAULT_RECONNECT_DELAY_MS`. No clamping happens here; the settings
    layer enforces the valid range.
    """
    try:
        base = float(value)
    except (TypeError, ValueError):
        return float(DEFAULT_RECONNECT_DELAY_MS)
    if not math.isfinite(base) or base <= 0:
        return float(DEFAULT_RECONNECT_DELAY_MS)
    return base


def compute_delay_ms(base_ms: float, attempt_count: int, random_value: float) -> float:
    """Computes one reconnect delay.

    Args:
        base_ms (float): Base delay in milliseconds.
        attempt_count (int): Reconnects scheduled since the last successful open.
        random_value (float): A sample from ``[0, 1)`` used for the jitter.
    """
    jitter = min(max(random_value, 0.0), 1.0) * JITTER_WINDOW_MS
    return base_ms + jitter + backoff_ms(attempt_count)


@dataclass
class ReconnectState:
    """Mutable retry bookkeeping owned by one `ConnectionManager`."""
    attempt_count: int = 0
    pending_timer: Optional[Cancellable] = None
    manual_close_requested: bool = False

    def cancel_timer(self) -> bool:
        """Cancels the pending timer, if any. Returns True if one was pending."""
        timer, self.pending_timer = self.pending_timer, None
        if timer is None:
            return False
        timer.cancel()
        return True

    def reset(self) -> None:
        """Back to ``(0, no timer, not manually closed)``."""
        self.cancel_timer()
        self.attempt_count = 0
        self.manual_close_requested = False
