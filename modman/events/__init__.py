# modman/events/__init__.py
from __future__ import annotations

from .bus import EventBus
from .types import (
    Event,
    ProgressEvent,
    DatabaseRefreshed,
    BusyChanged,
    LogUpdated,
    LogFatal,
    GameStarted,
    ConfigReloaded,
    OwmlConfigReloaded,
    ModWarningsShown,
)

__all__ = [
    "EventBus",
    "Event",
    "ProgressEvent",
    "DatabaseRefreshed",
    "BusyChanged",
    "LogUpdated",
    "LogFatal",
    "GameStarted",
    "ConfigReloaded",
    "OwmlConfigReloaded",
    "ModWarningsShown",
]
