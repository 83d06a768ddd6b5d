# modman/core/logging/handlers.py
from __future__ import annotations
import logging

from modman.events import EventBus, ProgressEvent
from modman.progress.payloads import PROGRESS_CHANNEL, UnknownPayload, parseProgressLine

__all__ = ["ProgressLogHandler", "installProgressHandler", "removeProgressHandler"]



class ProgressLogHandler(logging.Handler):
    """
    Turns progress lines on the logging channel into ProgressEvents on the bus.

    - Only records from the "progress" logger (or its children) are considered
    - Lines that don't decode are dropped; the channel is shared with ordinary output
    - Safe from any thread; EventBus.publish() hops onto subscriber loops itself
    """
    def __init__(self, bus: EventBus, *, channel: str = PROGRESS_CHANNEL):
        super().__init__(level=logging.INFO)
        self._bus = bus
        self._channel = channel

    def _accepts(self, record: logging.LogRecord) -> bool:
        return record.name == self._channel or record.name.startswith(self._channel + ".")

    def emit(self, record: logging.LogRecord) -> None:
        if not self._accepts(record):
            return
        try:
            payload = parseProgressLine(record.getMessage())
        except Exception:
            self.handleError(record)
            return
        if isinstance(payload, UnknownPayload):
            return
        self._bus.publish(ProgressEvent(payload=payload))



def installProgressHandler(bus: EventBus) -> ProgressLogHandler:
    handler = ProgressLogHandler(bus)
    logging.getLogger(PROGRESS_CHANNEL).addHandler(handler)
    return handler



def removeProgressHandler(handler: ProgressLogHandler) -> None:
    logging.getLogger(PROGRESS_CHANNEL).removeHandler(handler)
    handler.close()
