"""
Admission control for concurrent work.

AdmissionController is a counting semaphore with strict first-come,
first-served admission. Every acquire hands out a Ticket that must be released
exactly once; `ticket()` wraps this in an async context manager so release
happens on every exit path, including cancellation.

All state changes happen without awaiting, so on a single event loop each
operation runs to completion before another task can observe the state.
"""
import asyncio
import itertools
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator, Deque, Dict, Optional

logger = logging.getLogger(__name__)


class AdmissionError(RuntimeError):
    """Ticket accounting became inconsistent (double or foreign release)."""


class Ticket:
    """Handle for one occupied slot in an AdmissionController."""

    __slots__ = ("id", "controller_name")

    def __init__(self, ticket_id: int, controller_name: str):
        self.id = ticket_id
        self.controller_name = controller_name

    def __repr__(self) -> str:
        return f"Ticket({self.controller_name}#{self.id})"


class AdmissionController:
    """Bounded concurrency gate with FIFO fairness among waiters"""

    def __init__(self, limit: int, name: str = "admission"):
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        self.name = name
        self._limit = limit
        self._in_use = 0
        self._waiters: Deque[asyncio.Future] = deque()
        self._outstanding: Dict[int, Ticket] = {}
        self._ids = itertools.count(1)

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_use(self) -> int:
        """Slots currently held, including ones handed to a waiter that has not resumed yet."""
        return self._in_use

    @property
    def waiting(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    @property
    def available(self) -> int:
        return self._limit - self._in_use

    @property
    def outstanding(self) -> int:
        """Tickets issued and not yet released."""
        return len(self._outstanding)

    async def acquire(self) -> Ticket:
        """Wait for a free slot and return a ticket for it."""
        if self._in_use < self._limit and not self.waiting:
            self._in_use += 1
            return self._issue()

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over right before the cancellation landed
                self._hand_off()
            else:
                self._discard_waiter(waiter)
            raise
        return self._issue()

    def release(self, ticket: Ticket) -> None:
        """Return a ticket's slot to the pool or to the oldest waiter."""
        if self._outstanding.pop(ticket.id, None) is not ticket:
            raise AdmissionError(f"[{self.name}] {ticket!r} is not outstanding (double release?)")
        self._hand_off()

    @asynccontextmanager
    async def ticket(self) -> AsyncIterator[Ticket]:
        """Scoped acquisition: the slot is released however the block exits."""
        held = await self.acquire()
        try:
            yield held
        finally:
            self.release(held)

    def _issue(self) -> Ticket:
        ticket = Ticket(next(self._ids), self.name)
        self._outstanding[ticket.id] = ticket
        if len(self._outstanding) > self._limit:
            raise AdmissionError(
                f"[{self.name}] {len(self._outstanding)} tickets outstanding, limit is {self._limit}"
            )
        return ticket

    def _hand_off(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # in_use stays the same: the slot moves straight to the waiter
                waiter.set_result(None)
                return
        self._in_use -= 1

    def _discard_waiter(self, waiter: Optional[asyncio.Future]) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass

    def __repr__(self) -> str:
        return (
            f"AdmissionController(name={self.name!r}, limit={self._limit}, "
            f"in_use={self._in_use}, waiting={self.waiting})"
        )
