# modman/events/bus.py
from __future__ import annotations
import asyncio
import logging
import threading
from asyncio import AbstractEventLoop
from collections.abc import Callable
from typing import Any

from modman.core.jsonutils import tryJSONify
from .types import Event

logger = logging.getLogger(__name__)

__all__ = ["EventBus", "Listener", "eventToDict"]

Listener = Callable[[Event], None]



def _queuePutNowait(queue: asyncio.Queue[Event], event: Event) -> None:
    """
    Helper used with loop.call_soon_threadsafe().
    Drops events for subscribers that stopped draining their queue.
    """
    try:
        queue.put_nowait(event)
    except asyncio.QueueFull:
        pass



def eventToDict(event: Event) -> dict[str, Any]:
    """Wire shape used by the websocket stream: {"kind": ..., "data": {...}}."""
    return {"kind": event.kind, "data": tryJSONify(event)}



class EventBus:
    """
    Publish/subscribe channel carrying typed events to any number of observers.

    - publish(event): fan out to synchronous listeners and subscriber queues
    - subscribe(): returns an asyncio.Queue receiving future events
    - unsubscribe(queue): detach subscriber
    - addListener(fn): synchronous callback, returns an unsubscribe function
    publish() is safe to call from any thread.
    """
    def __init__(self, *, maxQueue: int = 1000) -> None:
        self._maxQueue = max(1, maxQueue)
        # Map subscriber queues to the event loop that owns them so publish()
        # can schedule puts from any thread.
        self._subscribers: dict[asyncio.Queue[Event], AbstractEventLoop] = {}
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def publish(self, event: Event) -> None:
        with self._lock:
            subscribers = list(self._subscribers.items())
            listeners = list(self._listeners)

        for fn in listeners:
            try:
                fn(event)
            except Exception:
                # A broken observer must not break the publisher
                logger.debug("Event listener failed for %s", event.kind, exc_info=True)

        for queue, loop in subscribers:
            try:
                loop.call_soon_threadsafe(_queuePutNowait, queue, event)
            except RuntimeError:
                # Loop closed. Drop this subscriber.
                with self._lock:
                    self._subscribers.pop(queue, None)

    def subscribe(self) -> asyncio.Queue[Event]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._maxQueue)
        with self._lock:
            self._subscribers[queue] = loop
        return queue

    def unsubscribe(self, queue: asyncio.Queue[Event]) -> None:
        with self._lock:
            self._subscribers.pop(queue, None)

    def addListener(self, fn: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(fn)
        def _unsub() -> None:
            with self._lock:
                try:
                    self._listeners.remove(fn)
                except ValueError:
                    pass
        return _unsub

    @property
    def subscriberCount(self) -> int:
        with self._lock:
            return len(self._subscribers) + len(self._listeners)
