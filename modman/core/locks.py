# modman/core/locks.py
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Generic, TypeVar

__all__ = ["AsyncRWLock", "SharedState"]

T = TypeVar("T")



class AsyncRWLock:
    """
    Readers-writer lock for asyncio tasks.

    - Any number of concurrent readers.
    - One writer at a time, exclusive of readers.
    - Waiting writers block new readers, so a steady stream of readers
      cannot starve a writer. Writers still queue behind readers already inside.
    """
    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waitingWriters = 0

    async def acquireRead(self) -> None:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._waitingWriters == 0)
            self._readers += 1

    async def releaseRead(self) -> None:
        async with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    async def acquireWrite(self) -> None:
        async with self._cond:
            self._waitingWriters += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._waitingWriters -= 1
            self._writer = True

    async def releaseWrite(self) -> None:
        async with self._cond:
            self._writer = False
            self._cond.notify_all()

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        await self.acquireRead()
        try:
            yield
        finally:
            await asyncio.shield(self.releaseRead())

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        await self.acquireWrite()
        try:
            yield
        finally:
            await asyncio.shield(self.releaseWrite())

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def locked(self) -> bool:
        return self._writer



class SharedState(Generic[T]):
    """
    A value guarded by its own AsyncRWLock.

    Readers get the current object; writers replace it wholesale, so a reader
    holding a reference keeps a consistent snapshot even after a swap.
    """
    def __init__(self, value: T) -> None:
        self._value = value
        self.lock = AsyncRWLock()

    @asynccontextmanager
    async def read(self) -> AsyncIterator[T]:
        async with self.lock.read():
            yield self._value

    @asynccontextmanager
    async def write(self) -> AsyncIterator[SharedState[T]]:
        async with self.lock.write():
            yield self

    def peek(self) -> T:
        """Current value without locking. Safe because values are swapped, not mutated."""
        return self._value

    def set(self, value: T) -> None:
        """Replace the value. Call while holding write()."""
        self._value = value

    async def replace(self, value: T) -> None:
        async with self.lock.write():
            self._value = value
