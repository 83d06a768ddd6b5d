# modman/logs/messages.py
from __future__ import annotations
import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

__all__ = ["SocketMessageType", "SocketMessage", "GameMessage", "parseSocketLine"]



class SocketMessageType(IntEnum):
    Message = 0
    Error = 1
    Warning = 2
    Info = 3
    Success = 4
    Quit = 5
    Fatal = 6
    Debug = 7

    @classmethod
    def parse(cls, raw: Any) -> SocketMessageType:
        """Accepts the numeric value or the name (any case). Unknown values become Message."""
        if isinstance(raw, SocketMessageType):
            return raw
        if isinstance(raw, bool):
            return cls.Message
        if isinstance(raw, int):
            try:
                return cls(raw)
            except ValueError:
                return cls.Message
        if isinstance(raw, str):
            text = raw.strip()
            if text.isdigit():
                return cls.parse(int(text))
            for member in cls:
                if member.name.lower() == text.lower():
                    return member
        return cls.Message



class SocketMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    type: SocketMessageType = SocketMessageType.Message
    message: str = ""
    senderName: str | None = None
    senderType: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _lenientType(cls, value: Any) -> SocketMessageType:
        return SocketMessageType.parse(value)

    @field_validator("message", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    def formatLine(self) -> str:
        """`[sender][Type] message`, the on-disk log line."""
        sender = self.senderName or "Unknown"
        return f"[{sender}][{self.type.name}] {self.message}"



@dataclass(frozen=True)
class GameMessage:
    port: int
    message: SocketMessage



def parseSocketLine(line: str) -> SocketMessage:
    """One line from the game. Anything that isn't a JSON object is kept as a plain Message."""
    text = line.rstrip("\r\n")
    try:
        raw = json.loads(text)
    except ValueError:
        return SocketMessage(type=SocketMessageType.Message, message=text)
    if not isinstance(raw, dict):
        return SocketMessage(type=SocketMessageType.Message, message=text)
    try:
        return SocketMessage.model_validate(raw)
    except ValidationError:
        return SocketMessage(type=SocketMessageType.Message, message=text)
