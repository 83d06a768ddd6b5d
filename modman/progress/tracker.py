# modman/progress/tracker.py
from __future__ import annotations
import threading
from dataclasses import dataclass, replace
from typing import Callable

from modman.events import EventBus, Event, ProgressEvent
from .payloads import (
    ProgressAction,
    ProgressFinishPayload,
    ProgressIncrementPayload,
    ProgressMessagePayload,
    ProgressPayload,
    ProgressStartPayload,
    ProgressType,
)

__all__ = ["ProgressBarState", "ProgressTracker"]



@dataclass(frozen=True)
class ProgressBarState:
    id: str
    len: int
    progress: int
    msg: str
    progressType: ProgressType
    progressAction: ProgressAction
    success: bool | None = None
    complete: bool = False



class ProgressTracker:
    """
    Observer that folds progress payloads into per-bar state for a downloads view.

    Increments are clamped to the declared length, so an emitter that overshoots
    never shows more than 100%. Payloads for ids without a Start are ignored.
    """
    def __init__(self) -> None:
        self._bars: dict[str, ProgressBarState] = {}
        self._lock = threading.Lock()
        self._unsub: Callable[[], None] | None = None

    def attach(self, bus: EventBus) -> None:
        self.detach()
        self._unsub = bus.addListener(self._onEvent)

    def detach(self) -> None:
        if self._unsub is not None:
            self._unsub()
            self._unsub = None

    def _onEvent(self, event: Event) -> None:
        if isinstance(event, ProgressEvent):
            self.apply(event.payload)

    def apply(self, payload: ProgressPayload) -> ProgressBarState | None:
        with self._lock:
            if isinstance(payload, ProgressStartPayload):
                state = ProgressBarState(
                    id=payload.id,
                    len=payload.len,
                    progress=0,
                    msg=payload.msg,
                    progressType=payload.progressType,
                    progressAction=payload.progressAction,
                )
                self._bars[payload.id] = state
                return state

            current = self._bars.get(getattr(payload, "id", ""))
            if current is None:
                return None

            if isinstance(payload, ProgressIncrementPayload):
                state = replace(current, progress=min(current.len, payload.progress))
            elif isinstance(payload, ProgressMessagePayload):
                state = replace(current, msg=payload.msg)
            elif isinstance(payload, ProgressFinishPayload):
                state = replace(
                    current,
                    success=payload.success,
                    complete=True,
                    msg=payload.msg,
                    progress=current.len if payload.success else current.progress,
                )
            else:
                return None
            self._bars[payload.id] = state
            return state

    def get(self, progressId: str) -> ProgressBarState | None:
        with self._lock:
            return self._bars.get(progressId)

    def getDownloads(self) -> dict[str, ProgressBarState]:
        with self._lock:
            return dict(self._bars)

    def clearDownloads(self, *, onlyComplete: bool = False) -> None:
        with self._lock:
            if onlyComplete:
                self._bars = {key: bar for key, bar in self._bars.items() if not bar.complete}
            else:
                self._bars.clear()

    @property
    def active(self) -> list[ProgressBarState]:
        with self._lock:
            return [bar for bar in self._bars.values() if not bar.complete]
