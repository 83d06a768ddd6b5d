# modman/progress/bar.py
from __future__ import annotations
import logging
import threading

from modman.core.ids import uuid_10
from .payloads import (
    PROGRESS_CHANNEL,
    ProgressAction,
    ProgressFinishPayload,
    ProgressIncrementPayload,
    ProgressMessagePayload,
    ProgressStartPayload,
    ProgressType,
    encodeProgressPayload,
)

__all__ = ["ProgressBar", "progressLogger"]

progressLogger = logging.getLogger(PROGRESS_CHANNEL)
if progressLogger.level == logging.NOTSET:
    # Progress lines are INFO records; keep them flowing even when the root logger is quieter.
    progressLogger.setLevel(logging.INFO)



def _oneLine(msg: str) -> str:
    return " ".join(str(msg).splitlines())



class ProgressBar:
    """
    Emitter side of the progress protocol.

    Creating a bar emits Start. Use it as a context manager: leaving the block
    (normally or through an exception) without calling finish() emits a single
    Finish(success=false) with the bar's failure message. Garbage-collecting an
    unfinished bar does the same.
    """
    def __init__(
        self,
        id: str | None,
        len: int,
        msg: str,
        failureMessage: str,
        progressType: ProgressType = ProgressType.Definite,
        progressAction: ProgressAction = ProgressAction.Download,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.id = id or uuid_10("pb-")
        if "|" in self.id:
            raise ValueError("Progress bar id must not contain '|'")
        self.len = max(0, int(len))
        self.progress = 0
        self.failureMessage = _oneLine(failureMessage)
        self.progressType = progressType
        self.progressAction = progressAction
        self.complete = False
        self._log = logger or progressLogger
        self._finishLock = threading.Lock()
        self._emit(encodeProgressPayload(ProgressStartPayload(
            id=self.id,
            len=self.len,
            progressType=progressType,
            progressAction=progressAction,
            msg=_oneLine(msg),
        )))

    def _emit(self, line: str) -> None:
        self._log.info(line)

    def inc(self, amount: int) -> None:
        self.progress = min(self.len, self.progress + max(0, int(amount)))
        self._emit(encodeProgressPayload(ProgressIncrementPayload(id=self.id, progress=self.progress)))

    def setMsg(self, msg: str) -> None:
        self._emit(encodeProgressPayload(ProgressMessagePayload(id=self.id, msg=_oneLine(msg))))

    def finish(self, success: bool, msg: str = "") -> None:
        with self._finishLock:
            if self.complete:
                return
            self.complete = True
        if not success and not msg:
            msg = self.failureMessage
        self._emit(encodeProgressPayload(ProgressFinishPayload(id=self.id, success=success, msg=_oneLine(msg))))

    def close(self) -> None:
        """Finish unsuccessfully unless already finished."""
        if not self.complete:
            self.finish(False)

    def __enter__(self) -> ProgressBar:
        return self

    def __exit__(self, excType, exc, tb) -> None:
        self.close()

    def __del__(self) -> None:
        try:
            self.close()
        except Exception:
            # Interpreter shutdown can tear down logging before us
            pass
