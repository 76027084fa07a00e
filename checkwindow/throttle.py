"""
FILE DESCRIPTION: Bounded concurrency gates shared by every test of a client.
KEY FUNCTIONS/CLASSES: Throat, GateTicket
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from gridclient.core import logger


class Throat:
    """
    FLOW: Bounds how many operations run at once -> run() holds a slot for the
    duration of one awaitable -> ticket() holds a slot until explicitly released.
    A limit of None means unbounded.
    """

    def __init__(self, limit: Optional[int] = None, name: str = "throat"):
        if limit is not None and limit < 1:
            raise ValueError(f"{name} limit must be at least 1, got {limit}")
        self.limit = limit
        self.name = name
        self._semaphore = asyncio.Semaphore(limit) if limit is not None else None

    async def run(self, fn: Callable[[], Awaitable[Any]]) -> Any:
        if self._semaphore is None:
            return await fn()
        async with self._semaphore:
            return await fn()

    def ticket(self) -> "GateTicket":
        return GateTicket(self._semaphore, name=self.name)


class GateTicket:
    """
    A slot requested from a Throat that stays held across any number of
    suspension points, until release() is called. Acquisition is queued as
    soon as the ticket is created; releasing a ticket that is still queued
    withdraws it from the queue. release() may be called more than once.
    """

    def __init__(self, semaphore: Optional[asyncio.Semaphore], name: str = "throat"):
        self._semaphore = semaphore
        self._name = name
        self._released = False
        self._acquiring = asyncio.ensure_future(semaphore.acquire()) if semaphore is not None else None

    @property
    def acquired(self) -> bool:
        if self._acquiring is None:
            return not self._released
        return (not self._released and self._acquiring.done()
                and not self._acquiring.cancelled() and self._acquiring.exception() is None)

    @property
    def released(self) -> bool:
        return self._released

    async def wait(self) -> None:
        if self._acquiring is not None and not self._released:
            await asyncio.shield(self._acquiring)

    def release(self) -> None:
        if self._released:
            return
        self._released = True

        if self._acquiring is None:
            return

        if not self._acquiring.done():
            logger.debug(f"[THROTTLE] {self._name}: ticket released before it was granted")
            self._acquiring.cancel()
        elif not self._acquiring.cancelled() and self._acquiring.exception() is None:
            self._semaphore.release()
