"""Deduplicating, rate-limited work queue shared by the reconcile workers."""

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from typing import Callable, Dict, Hashable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY = 0.005
DEFAULT_MAX_DELAY = 1000.0


class ExponentialFailureRateLimiter:
    """Per-item backoff of ``base_delay * 2**failures``, capped at ``max_delay``."""

    def __init__(self, base_delay: float = DEFAULT_BASE_DELAY, max_delay: float = DEFAULT_MAX_DELAY):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: Dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def when(self, item: Hashable) -> float:
        """Record a failure for the item and return how long to wait before retrying it."""
        with self._lock:
            exponent = self._failures.get(item, 0)
            self._failures[item] = exponent + 1

        # 2**64 seconds is longer than any sane cap
        if exponent > 63:
            return self.max_delay
        return min(self.base_delay * (2 ** exponent), self.max_delay)

    def num_requeues(self, item: Hashable) -> int:
        with self._lock:
            return self._failures.get(item, 0)

    def forget(self, item: Hashable) -> None:
        with self._lock:
            self._failures.pop(item, None)


class WorkQueue:
    """
    Work queue with the delivery rules a controller needs.

    * An item is never pending twice; adding a pending item is a no-op.
    * An item is never handed to two workers at once. Adding an item that is
      being processed marks it dirty, and it is queued again when the worker
      calls :meth:`done`.
    * Items can be added after a delay, or after a per-item exponential
      backoff through :meth:`add_rate_limited`.
    * After :meth:`shut_down` no new items are accepted and :meth:`get`
      returns immediately with ``shutdown=True``.
    """

    def __init__(
        self,
        rate_limiter: Optional[ExponentialFailureRateLimiter] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rate_limiter = rate_limiter or ExponentialFailureRateLimiter()
        self._clock = clock
        self._cond = threading.Condition()
        self._queue: deque = deque()
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        self._shutting_down = False

        # Delayed items: heap of (ready_at, seq, item) plus the earliest ready time per item.
        self._waiting: List[Tuple[float, int, Hashable]] = []
        self._waiting_ready_at: Dict[Hashable, float] = {}
        self._seq = itertools.count()

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def add(self, item: Hashable) -> None:
        """Queue an item for processing."""
        with self._cond:
            self._add_locked(item)

    def _add_locked(self, item: Hashable) -> None:
        if self._shutting_down or item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            return
        self._queue.append(item)
        self._cond.notify()

    def add_after(self, item: Hashable, delay: float) -> None:
        """Queue an item once ``delay`` seconds have passed."""
        with self._cond:
            if self._shutting_down:
                return
            if delay <= 0:
                self._add_locked(item)
                return

            ready_at = self._clock() + delay
            current = self._waiting_ready_at.get(item)
            if current is not None and current <= ready_at:
                return
            self._waiting_ready_at[item] = ready_at
            heapq.heappush(self._waiting, (ready_at, next(self._seq), item))
            # Blocked getters need to recompute how long to sleep.
            self._cond.notify_all()

    def add_rate_limited(self, item: Hashable) -> None:
        """Queue an item after its backoff delay."""
        self.add_after(item, self.rate_limiter.when(item))

    def forget(self, item: Hashable) -> None:
        """Clear the failure history of an item."""
        self.rate_limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return self.rate_limiter.num_requeues(item)

    def _promote_ready_locked(self) -> Optional[float]:
        """Move due delayed items onto the queue; return seconds until the next one is due."""
        now = self._clock()
        while self._waiting:
            ready_at, _, item = self._waiting[0]
            if self._waiting_ready_at.get(item) != ready_at:
                # superseded by an earlier add_after
                heapq.heappop(self._waiting)
                continue
            if ready_at > now:
                return ready_at - now
            heapq.heappop(self._waiting)
            del self._waiting_ready_at[item]
            self._add_locked(item)
        return None

    def get(self, timeout: Optional[float] = None) -> Tuple[Optional[Hashable], bool]:
        """
        Block until an item is available.

        Returns:
            Tuple of (item, shutdown). ``item`` is None when the queue is shut
            down or ``timeout`` expired.
        """
        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                if self._shutting_down:
                    return None, True

                next_due = self._promote_ready_locked()
                if self._queue:
                    item = self._queue.popleft()
                    self._processing.add(item)
                    self._dirty.discard(item)
                    return item, False

                wait_for = next_due
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        return None, False
                    wait_for = remaining if wait_for is None else min(wait_for, remaining)
                self._cond.wait(wait_for)

    def done(self, item: Hashable) -> None:
        """Mark an item as processed, re-queueing it if it was added meanwhile."""
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty and not self._shutting_down:
                self._queue.append(item)
                self._cond.notify()

    def shut_down(self) -> None:
        """Stop accepting items and release every blocked :meth:`get`."""
        with self._cond:
            self._shutting_down = True
            self._queue.clear()
            self._waiting.clear()
            self._waiting_ready_at.clear()
            self._cond.notify_all()
        logger.debug("Work queue shut down")

    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down
