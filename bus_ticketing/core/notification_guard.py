"""
Deduplication and per-transaction mutual exclusion for gateway notifications

The gateway delivers notifications at least once and may deliver several for
the same transaction at the same time. The guard turns that into effectively
once, serialized per transaction id, for a single process. State is process
local: running several instances behind a load balancer reintroduces the races
this class exists to prevent.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class _HeldLock:
    acquired_at: float
    released: asyncio.Event = field(default_factory=asyncio.Event)


class NotificationGuard:
    """
    In-memory dedup cache and lock map, owned by the application instance.

    Args:
        dedup_window: seconds a (transaction id, status) pair counts as handled
        lock_ttl: seconds after which a held lock is considered leaked
        sweep_interval: seconds between background sweeps
        clock: monotonic time source, injectable for tests
    """

    def __init__(
        self,
        dedup_window: float = 60,
        lock_ttl: float = 30,
        sweep_interval: float = 600,
        clock: Callable[[], float] = time.monotonic
    ):
        self.dedup_window = dedup_window
        self.lock_ttl = lock_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._processed: Dict[Tuple[str, str], float] = {}
        self._locks: Dict[str, _HeldLock] = {}
        self._sweeper: Optional[asyncio.Task] = None

    # Deduplication

    def should_skip_duplicate(self, transaction_id: str, status: str) -> bool:
        """True if this exact pair was handled within the dedup window"""
        seen_at = self._processed.get((transaction_id, status))
        if seen_at is None:
            return False
        return self._clock() - seen_at < self.dedup_window

    def mark_processed(self, transaction_id: str, status: str) -> None:
        self._processed[(transaction_id, status)] = self._clock()

    # Mutual exclusion

    def is_locked(self, transaction_id: str) -> bool:
        return transaction_id in self._locks

    def try_acquire_lock(self, transaction_id: str) -> bool:
        """Mark the transaction as in progress unless someone else holds it"""
        held = self._locks.get(transaction_id)
        if held is not None:
            if self._clock() - held.acquired_at < self.lock_ttl:
                return False
            logger.warning(
                "Reclaiming expired notification lock",
                extra={"transaction_id": transaction_id}
            )
            self._drop_lock(transaction_id)

        self._locks[transaction_id] = _HeldLock(acquired_at=self._clock())
        return True

    async def wait_for_lock(
        self,
        transaction_id: str,
        max_attempts: int = 10,
        interval_ms: int = 500,
        timeout: Optional[float] = None
    ) -> bool:
        """
        Wait until the lock for transaction_id is released.

        The total wait is bounded by max_attempts * interval_ms, or by timeout
        when given. Returns whether the lock was free on exit; the caller
        still has to acquire it.
        """
        held = self._locks.get(transaction_id)
        if held is None:
            return True

        if timeout is None:
            timeout = max_attempts * interval_ms / 1000
        try:
            await asyncio.wait_for(held.released.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Timed out after {timeout:.1f}s waiting for notification lock",
                extra={"transaction_id": transaction_id}
            )
        return not self.is_locked(transaction_id)

    async def acquire_lock_waiting(
        self,
        transaction_id: str,
        max_attempts: int = 10,
        interval_ms: int = 500
    ) -> bool:
        """
        Acquire the lock, waiting up to max_attempts * interval_ms for it.

        Every waiter wakes on release and only one of them gets the lock, so
        the rest go back to waiting for whatever time is left.
        """
        if self.try_acquire_lock(transaction_id):
            return True

        loop = asyncio.get_running_loop()
        deadline = loop.time() + max_attempts * interval_ms / 1000
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            await self.wait_for_lock(transaction_id, timeout=remaining)
            # No await between the wait and the acquire
            if self.try_acquire_lock(transaction_id):
                return True

    def release_lock(self, transaction_id: str) -> None:
        """Clear the in-progress flag; safe to call when not held"""
        self._drop_lock(transaction_id)

    def _drop_lock(self, transaction_id: str) -> None:
        held = self._locks.pop(transaction_id, None)
        if held is not None:
            held.released.set()

    # Housekeeping

    def sweep(self) -> Tuple[int, int]:
        """
        Drop expired dedup entries and leaked locks.
        Returns (dedup entries removed, locks removed).
        """
        now = self._clock()

        stale_pairs = [
            key for key, seen_at in self._processed.items()
            if now - seen_at > self.dedup_window
        ]
        for key in stale_pairs:
            del self._processed[key]

        stale_locks = [
            tx for tx, held in self._locks.items()
            if now - held.acquired_at > self.lock_ttl
        ]
        for tx in stale_locks:
            self._drop_lock(tx)

        if stale_pairs or stale_locks:
            logger.debug(f"Guard sweep removed {len(stale_pairs)} dedup entries and {len(stale_locks)} locks")
        return len(stale_pairs), len(stale_locks)

    async def _run_sweeper(self):
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop"""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._run_sweeper())

    async def stop(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

    def stats(self) -> Dict[str, int]:
        return {"dedup_entries": len(self._processed), "held_locks": len(self._locks)}
