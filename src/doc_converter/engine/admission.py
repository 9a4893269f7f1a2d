"""Admission control: a counting permit pool for engine invocations."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from doc_converter.errors import PermitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdmissionStats:
    """Snapshot of pool occupancy."""

    capacity: int
    in_use: int
    available: int
    peak_in_use: int
    total_acquired: int


class Permit:
    """One occupied concurrency slot.

    Only ``AdmissionController`` creates permits. Releasing twice is ignored.
    """

    __slots__ = ("_controller", "operation_id", "wait_ms", "_released")

    def __init__(
        self, controller: AdmissionController, operation_id: str, wait_ms: int
    ) -> None:
        self._controller = controller
        self.operation_id = operation_id
        self.wait_ms = wait_ms
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Return the slot to the pool that issued this permit."""
        self._controller.release(self)

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"Permit(operation_id={self.operation_id!r}, {state})"


class AdmissionController:
    """Bound how many engine processes may run at once.

    Parameters
    ----------
    max_concurrency : int
        Number of permits in the pool.
    """

    def __init__(self, max_concurrency: int = 2) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._capacity = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._in_use = 0
        self._peak = 0
        self._total = 0
        logger.info("admission controller initialized with max concurrency %d", max_concurrency)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_use(self) -> int:
        return self._in_use

    def _grant(self, operation_id: str, started: float) -> Permit:
        self._in_use += 1
        self._total += 1
        self._peak = max(self._peak, self._in_use)
        wait_ms = int((time.monotonic() - started) * 1000)
        logger.debug(
            "permit acquired for %s in %dms (%d/%d in use)",
            operation_id,
            wait_ms,
            self._in_use,
            self._capacity,
        )
        return Permit(self, operation_id, wait_ms)

    async def acquire(self, operation_id: str = "") -> Permit:
        """Suspend until a slot is free.

        Cancelling the awaiting task abandons the wait without taking a slot.
        """
        started = time.monotonic()
        await self._semaphore.acquire()
        return self._grant(operation_id, started)

    async def try_acquire(self, operation_id: str, timeout: float) -> Permit | None:
        """Acquire a slot, or return ``None`` after ``timeout`` seconds."""
        started = time.monotonic()
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout)
        except TimeoutError:
            logger.warning(
                "failed to acquire conversion permit for %s within %.0fms",
                operation_id,
                timeout * 1000,
            )
            return None
        return self._grant(operation_id, started)

    def release(self, permit: Permit) -> None:
        """Return ``permit``'s slot to the pool.

        Raises
        ------
        PermitError
            If ``permit`` is not a permit issued by this controller.
        """
        if not isinstance(permit, Permit) or permit._controller is not self:
            raise PermitError("permit was not issued by this admission controller")
        if permit._released:
            logger.warning("permit for %s released twice; ignoring", permit.operation_id)
            return
        permit._released = True
        self._in_use -= 1
        self._semaphore.release()
        logger.debug(
            "permit released for %s (%d/%d in use)",
            permit.operation_id,
            self._in_use,
            self._capacity,
        )

    @asynccontextmanager
    async def slot(
        self, operation_id: str = "", timeout: float | None = None
    ) -> AsyncIterator[Permit | None]:
        """Hold a permit for the duration of the block.

        Yields ``None`` when ``timeout`` elapses before a slot frees up.
        """
        if timeout is None:
            permit: Permit | None = await self.acquire(operation_id)
        else:
            permit = await self.try_acquire(operation_id, timeout)
        try:
            yield permit
        finally:
            if permit is not None:
                permit.release()

    def stats(self) -> AdmissionStats:
        """Return current occupancy counters."""
        return AdmissionStats(
            capacity=self._capacity,
            in_use=self._in_use,
            available=self._capacity - self._in_use,
            peak_in_use=self._peak,
            total_acquired=self._total,
        )
