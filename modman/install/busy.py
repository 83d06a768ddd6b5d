# modman/install/busy.py
from __future__ import annotations
import logging
import threading
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

from modman.core.errors import AlreadyInProgressError
from modman.events import BusyChanged, EventBus

logger = logging.getLogger(__name__)

__all__ = ["BusySet"]



class BusySet:
    """
    Names (unique names or sideload sources) with an install/update/remove in flight.

    Every read-modify-write happens inside one critical section, so two callers
    can never both acquire the same name. Methods are synchronous: an async caller
    acquires before its first await, and worker threads can query it too.
    Each change publishes BusyChanged with the new snapshot.
    """
    def __init__(self, bus: EventBus | None = None) -> None:
        self._names: set[str] = set()
        self._lock = threading.Lock()
        self._bus = bus

    def _publish(self, snapshot: tuple[str, ...]) -> None:
        if self._bus is not None:
            self._bus.publish(BusyChanged(busy=snapshot))

    def tryAcquire(self, name: str) -> bool:
        with self._lock:
            if name in self._names:
                return False
            self._names.add(name)
            snapshot = tuple(sorted(self._names))
        logger.debug("Busy: +%s", name)
        self._publish(snapshot)
        return True

    def acquireMany(self, names: Iterable[str]) -> list[str]:
        """Filters out busy names and claims the rest as one step. Returns the claimed names."""
        with self._lock:
            accepted: list[str] = []
            for name in dict.fromkeys(names):
                if name not in self._names:
                    self._names.add(name)
                    accepted.append(name)
            snapshot = tuple(sorted(self._names))
        if accepted:
            logger.debug("Busy: +%s", ", ".join(accepted))
            self._publish(snapshot)
        return accepted

    def release(self, name: str) -> None:
        self.releaseMany([name])

    def releaseMany(self, names: Iterable[str]) -> None:
        with self._lock:
            removed = [name for name in names if name in self._names]
            self._names.difference_update(removed)
            snapshot = tuple(sorted(self._names))
        if removed:
            logger.debug("Busy: -%s", ", ".join(removed))
            self._publish(snapshot)

    def isBusy(self, name: str) -> bool:
        with self._lock:
            return name in self._names

    def snapshot(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self._names))

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)

    @asynccontextmanager
    async def slot(self, name: str) -> AsyncIterator[str]:
        """Holds `name` for the duration of the block. Raises AlreadyInProgressError if taken."""
        if not self.tryAcquire(name):
            raise AlreadyInProgressError("Operation already in progress", uniqueName=name)
        try:
            yield name
        finally:
            self.release(name)
