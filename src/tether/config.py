"""Client settings and their persistent store.

`ClientSettings` holds everything the connection layer reads from
configuration: the target URL, whether to connect on start-up, whether to
reconnect automatically and the base reconnect delay. `SettingsStore` keeps
them in a small JSON file so they survive restarts, much like a browser
client would keep them in local storage.

The reconnect delay is clamped here, at the configuration boundary; the
connection manager uses whatever value it is given.
"""

import json
import logging
import os
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY_MS = 1500
MIN_RECONNECT_DELAY_MS = 250
MAX_RECONNECT_DELAY_MS = 60000
MAX_RECENT_SERVERS = 20

SETTINGS_PATH_ENV = "TETHER_SETTINGS"
DEFAULT_SETTINGS_PATH = Path("~/.config/tether/settings.json")

_TARGET_PATTERN = re.compile(r"^(wss?|https?)://([^\s:/]+)(:\d+)?(/\S*)?$", re.IGNORECASE)


def is_valid_target(url: Optional[str]) -> bool:
    """Checks that `url` looks like a usable connection target.

    Accepts ``ws``, ``wss``, ``http`` and ``https`` URLs with a host, an
    optional port and an optional path. No whitespace is allowed.
    """
    if not isinstance(url, str):
        return False
    return bool(_TARGET_PATTERN.match(url.strip()))


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def clamp_reconnect_delay(value: Any) -> int:
    """Coerces a reconnect delay to an int in the allowed range.

    Values that are not numbers fall back to the default delay.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_RECONNECT_DELAY_MS
    if number != number:  # NaN
        return DEFAULT_RECONNECT_DELAY_MS
    return int(clamp(number, MIN_RECONNECT_DELAY_MS, MAX_RECONNECT_DELAY_MS))


@dataclass
class ClientSettings:
    """User-tunable settings of the client.

    Attributes:
        server_url (str): Connection target. Empty until configured.
        auto_connect (bool): Connect as soon as the client starts.
        auto_reconnect (bool): Retry after unintended closes.
        reconnect_delay (int): Base reconnect delay in milliseconds, always
            within 250..60000 (assignments are clamped).
        recent_servers (List[str]): Previously used targets, newest first.
    """
    server_url: str = ""
    auto_connect: bool = False
    auto_reconnect: bool = True
    reconnect_delay: int = DEFAULT_RECONNECT_DELAY_MS
    recent_servers: List[str] = field(default_factory=list)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "reconnect_delay":
            value = clamp_reconnect_delay(value)
        super().__setattr__(name, value)

    def remember_server(self, url: str) -> bool:
        """Puts `url` at the front of the recent list. Returns True if it was new."""
        if url in self.recent_servers:
            return False
        self.recent_servers.insert(0, url)
        del self.recent_servers[MAX_RECENT_SERVERS:]
        return True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientSettings":
        """Builds settings from stored data, ignoring unknown or mistyped keys."""
        settings = cls()
        if not isinstance(data, dict):
            return settings
        if isinstance(data.get("server_url"), str):
            settings.server_url = data["server_url"]
        for flag in ("auto_connect", "auto_reconnect"):
            if isinstance(data.get(flag), bool):
                setattr(settings, flag, data[flag])
        if "reconnect_delay" in data:
            settings.reconnect_delay = data["reconnect_delay"]
        recent = data.get("recent_servers")
        if isinstance(recent, list):
            settings.recent_servers = [url for url in recent if isinstance(url, str)][:MAX_RECENT_SERVERS]
        return settings


def default_settings_path() -> Path:
    """Path of the settings file: ``$TETHER_SETTINGS`` or ``~/.config/tether/settings.json``."""
    override = os.environ.get(SETTINGS_PATH_ENV)
    return Path(override).expanduser() if override else DEFAULT_SETTINGS_PATH.expanduser()


class SettingsStore:
    """Loads and saves `ClientSettings` as JSON.

    A missing, unreadable or corrupt file yields default settings; the
    problem is logged and the next `save()` overwrites it.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self._path = Path(path).expanduser() if path else default_settings_path()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ClientSettings:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"No settings file at {self._path}; using defaults.")
            return ClientSettings()
        except OSError as e:
            logger.warning(f"Could not read settings from {self._path}: {e}")
            return ClientSettings()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt settings file {self._path}: {e}")
            return ClientSettings()
        return ClientSettings.from_dict(data)

    def save(self, settings: ClientSettings) -> None:
        """Writes the settings. Raises `OSError` if the file cannot be written."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(settings.to_dict(), indent=2), encoding="utf-8")
        logger.debug(f"Settings saved to {self._path}.")
