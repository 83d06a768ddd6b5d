# modman/progress/payloads.py
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import TypeAlias

__all__ = [
    "PROGRESS_CHANNEL", "ProgressType", "ProgressAction",
    "ProgressStartPayload", "ProgressIncrementPayload", "ProgressMessagePayload",
    "ProgressFinishPayload", "UnknownPayload", "ProgressPayload",
    "parseProgressLine", "encodeProgressPayload",
]

# Logger name that carries progress lines. Anything else on the logging tree is ordinary log output.
PROGRESS_CHANNEL = "progress"



class ProgressType(str, Enum):
    """Definite: we know the total (10/90, 11/90, ...). Indefinite: we're just waiting."""
    Definite = "Definite"
    Indefinite = "Indefinite"

    @classmethod
    def parse(cls, raw: str) -> ProgressType:
        return cls.Definite if raw == "Definite" else cls.Indefinite



class ProgressAction(str, Enum):
    Download = "Download"
    Extract = "Extract"

    @classmethod
    def parse(cls, raw: str) -> ProgressAction:
        return cls.Extract if raw == "Extract" else cls.Download



@dataclass(frozen=True)
class ProgressStartPayload:
    id: str
    len: int
    progressType: ProgressType
    progressAction: ProgressAction
    msg: str



@dataclass(frozen=True)
class ProgressIncrementPayload:
    id: str
    progress: int



@dataclass(frozen=True)
class ProgressMessagePayload:
    id: str
    msg: str



@dataclass(frozen=True)
class ProgressFinishPayload:
    id: str
    success: bool
    msg: str



@dataclass(frozen=True)
class UnknownPayload:
    line: str = ""



ProgressPayload: TypeAlias = (
    ProgressStartPayload
    | ProgressIncrementPayload
    | ProgressMessagePayload
    | ProgressFinishPayload
    | UnknownPayload
)



def _parseValue(raw: str) -> int | None:
    raw = raw.strip()
    if not raw.isdigit():
        return None
    return int(raw)



def parseProgressLine(line: str) -> ProgressPayload:
    """
    Decodes one progress line. Never raises: unrelated or malformed lines
    come back as UnknownPayload since observers share the channel with other output.

        Start|<id>|<len>|<Definite|Indefinite>|<Download|Extract>|<msg may contain |>
        Increment|<id>|<value>
        Msg|<id>|<msg>
        Finish|<id>|<true|false>|<msg>
    """
    if not isinstance(line, str):
        return UnknownPayload(repr(line))
    line = line.rstrip("\r\n")

    kind, sep, rest = line.partition("|")
    if not sep:
        return UnknownPayload(line)
    progressId, sep, args = rest.partition("|")
    if not sep or not progressId:
        return UnknownPayload(line)

    if kind == "Start":
        parts = args.split("|", 3)
        if len(parts) != 4:
            return UnknownPayload(line)
        rawLen, rawType, rawAction, msg = parts
        length = _parseValue(rawLen)
        if length is None:
            return UnknownPayload(line)
        return ProgressStartPayload(
            id=progressId,
            len=length,
            progressType=ProgressType.parse(rawType),
            progressAction=ProgressAction.parse(rawAction),
            msg=msg,
        )

    if kind == "Increment":
        value = _parseValue(args)
        if value is None:
            return UnknownPayload(line)
        return ProgressIncrementPayload(id=progressId, progress=value)

    if kind == "Msg":
        return ProgressMessagePayload(id=progressId, msg=args)

    if kind == "Finish":
        rawSuccess, sep, msg = args.partition("|")
        if not sep or rawSuccess not in ("true", "false"):
            return UnknownPayload(line)
        return ProgressFinishPayload(id=progressId, success=rawSuccess == "true", msg=msg)

    return UnknownPayload(line)



def encodeProgressPayload(payload: ProgressPayload) -> str:
    """Inverse of parseProgressLine for the four known kinds."""
    if isinstance(payload, ProgressStartPayload):
        return (
            f"Start|{payload.id}|{payload.len}|{payload.progressType.value}"
            f"|{payload.progressAction.value}|{payload.msg}"
        )
    if isinstance(payload, ProgressIncrementPayload):
        return f"Increment|{payload.id}|{payload.progress}"
    if isinstance(payload, ProgressMessagePayload):
        return f"Msg|{payload.id}|{payload.msg}"
    if isinstance(payload, ProgressFinishPayload):
        return f"Finish|{payload.id}|{'true' if payload.success else 'false'}|{payload.msg}"
    raise ValueError(f"Can't encode progress payload of type {type(payload).__name__}")
