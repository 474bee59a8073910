"""Scan lock — at most one scan per coordinator, never queued."""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field

import structlog

from depsentinel.engines.scan_coordinator.models import ScanTrigger
from depsentinel.exceptions import ScanLockError

log = structlog.get_logger("depsentinel.engine")

_ids = itertools.count(1)


@dataclass
class ScanTicket:
    """Proof of holding the lock; handed back to :meth:`ScanLock.release`."""

    trigger: ScanTrigger
    id: int = field(default_factory=lambda: next(_ids))
    acquired_at: float = field(default_factory=time.monotonic)
    done: asyncio.Event = field(default_factory=asyncio.Event, repr=False)


class ScanLock:
    """Non-blocking mutual exclusion for scans.

    :meth:`try_acquire` is synchronous, so checking and taking the lock cannot
    be interleaved by another coroutine on the same event loop.
    """

    def __init__(self) -> None:
        self._current: ScanTicket | None = None

    @property
    def locked(self) -> bool:
        return self._current is not None

    @property
    def current(self) -> ScanTicket | None:
        return self._current

    def try_acquire(self, trigger: ScanTrigger) -> ScanTicket | None:
        if self._current is not None:
            log.info(
                "scan.already_running",
                trigger=trigger.value,
                holder=self._current.trigger.value,
            )
            return None
        ticket = ScanTicket(trigger=trigger)
        self._current = ticket
        return ticket

    def release(self, ticket: ScanTicket) -> None:
        if self._current is not ticket:
            raise ScanLockError(f"ticket {ticket.id} does not hold the scan lock")
        self._current = None
        ticket.done.set()

    async def wait_idle(self) -> None:
        """Wait until the scan holding the lock (if any) has released it."""
        while self._current is not None:
            await self._current.done.wait()
