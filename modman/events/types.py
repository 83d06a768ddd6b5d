# modman/events/types.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal

__all__ = [
    "Event", "ProgressEvent", "DatabaseRefreshed", "BusyChanged",
    "LogUpdated", "LogFatal", "GameStarted", "ConfigReloaded",
    "OwmlConfigReloaded", "ModWarningsShown",
]



@dataclass(frozen=True)
class Event:
    """Base for everything that travels over the EventBus."""
    kind: ClassVar[str] = "event"



@dataclass(frozen=True)
class ProgressEvent(Event):
    kind: ClassVar[str] = "PROGRESS"
    payload: Any = None  # modman.progress.payloads.ProgressPayload



@dataclass(frozen=True)
class DatabaseRefreshed(Event):
    kind: ClassVar[str] = "DATABASE_REFRESHED"
    which: Literal["local", "remote"] = "local"



@dataclass(frozen=True)
class BusyChanged(Event):
    kind: ClassVar[str] = "MOD_BUSY"
    busy: tuple[str, ...] = field(default_factory=tuple)



@dataclass(frozen=True)
class LogUpdated(Event):
    kind: ClassVar[str] = "LOG_UPDATE"
    port: int = 0



@dataclass(frozen=True)
class LogFatal(Event):
    kind: ClassVar[str] = "LOG_FATAL"
    port: int = 0
    message: Any = None  # modman.logs.messages.SocketMessage



@dataclass(frozen=True)
class GameStarted(Event):
    kind: ClassVar[str] = "GAME_START"
    port: int = 0



@dataclass(frozen=True)
class ConfigReloaded(Event):
    kind: ClassVar[str] = "CONFIG_RELOAD"



@dataclass(frozen=True)
class OwmlConfigReloaded(Event):
    kind: ClassVar[str] = "OWML_CONFIG_RELOAD"



@dataclass(frozen=True)
class ModWarningsShown(Event):
    kind: ClassVar[str] = "MOD_WARNINGS"
    warnings: tuple[Any, ...] = field(default_factory=tuple)  # modman.logs.game.PendingWarning
