"""
Clock and scheduler shared by every timed transition of the engine.

All periodic ticks and one-shot callbacks go through a single ``Scheduler``
so state mutations are serialised on one logical executor. Entries are kept
in a heap keyed by (due, sequence): callbacks due at the same instant run in
the order they were scheduled.
"""
import asyncio
import heapq
import inspect
import itertools
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class SystemClock:
    """Wall clock, timezone-aware in the local zone."""

    def now(self) -> datetime:
        return datetime.now().astimezone()


class ManualClock:
    """Clock that only moves when told to. Used by tests and offline simulations."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime.now().astimezone()

    def now(self) -> datetime:
        return self._now

    def set(self, instant: datetime):
        if instant < self._now:
            raise ValueError(f"Clock cannot go backwards ({instant.isoformat()} < {self._now.isoformat()})")
        self._now = instant

    def advance(self, seconds: float):
        self.set(self._now + timedelta(seconds=seconds))


def _reference(callback: Callable) -> Callable[[], Optional[Callable]]:
    # Bound methods are held weakly so a pending timer never keeps its owner alive
    if inspect.ismethod(callback):
        return weakref.WeakMethod(callback)
    return lambda: callback


@dataclass(eq=False)
class ScheduledTask:
    """Handle returned by ``Scheduler.schedule`` / ``schedule_periodic``."""
    task_id: int
    due: datetime
    name: str
    interval: Optional[float] = None
    args: Tuple[Any, ...] = ()
    cancelled: bool = False
    done: bool = False
    _ref: Callable[[], Optional[Callable]] = field(default=lambda: None, repr=False)

    @property
    def periodic(self) -> bool:
        return self.interval is not None

    @property
    def active(self) -> bool:
        return not self.cancelled and not self.done


class Scheduler:
    """Cooperative timer queue for periodic and one-shot callbacks."""

    def __init__(self, clock=None, poll_interval: float = 0.5):
        self.clock = clock or SystemClock()
        self.poll_interval = poll_interval
        self._queue: List[Tuple[datetime, int, ScheduledTask]] = []
        self._seq = itertools.count()
        self._ids = itertools.count(1)
        self._running = False

    def now(self) -> datetime:
        return self.clock.now()

    def schedule(self, delay: float, callback: Callable, *args, name: str = "") -> ScheduledTask:
        """Run ``callback(*args)`` once, ``delay`` seconds from now."""
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        task = ScheduledTask(
            task_id=next(self._ids),
            due=self.now() + timedelta(seconds=delay),
            name=name or getattr(callback, "__name__", "callback"),
            args=args,
            _ref=_reference(callback),
        )
        self._push(task)
        return task

    def schedule_periodic(self, interval: float, callback: Callable, *args,
                          name: str = "", first_delay: Optional[float] = None) -> ScheduledTask:
        """Run ``callback(*args)`` every ``interval`` seconds until cancelled."""
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        delay = interval if first_delay is None else first_delay
        task = ScheduledTask(
            task_id=next(self._ids),
            due=self.now() + timedelta(seconds=delay),
            name=name or getattr(callback, "__name__", "callback"),
            interval=interval,
            args=args,
            _ref=_reference(callback),
        )
        self._push(task)
        return task

    def cancel(self, task: Optional[ScheduledTask]):
        """Cancel a pending task. Cancelling twice, or a finished task, is a no-op."""
        if task is None or not task.active:
            return
        task.cancelled = True
        logger.debug(f"Cancelled task {task.name} (#{task.task_id})")

    def pending(self) -> List[ScheduledTask]:
        """Active tasks in execution order."""
        return [task for _, _, task in sorted(self._queue, key=lambda e: (e[0], e[1])) if task.active]

    def next_due(self) -> Optional[datetime]:
        self._discard_cancelled()
        return self._queue[0][0] if self._queue else None

    def run_pending(self) -> int:
        """Run every task due at or before the current clock time. Returns the number run."""
        now = self.now()
        ran = 0
        while self._queue and self._queue[0][0] <= now:
            _, _, task = heapq.heappop(self._queue)
            if task.cancelled:
                continue
            self._execute(task)
            ran += 1
        return ran

    def advance(self, seconds: float) -> int:
        """
        Move a ManualClock forward, running tasks in due order and setting the
        clock to each task's due instant before it runs.
        """
        if not isinstance(self.clock, ManualClock):
            raise RuntimeError("advance() requires a ManualClock")
        target = self.now() + timedelta(seconds=seconds)
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, task = heapq.heappop(self._queue)
            if task.cancelled:
                continue
            if due > self.now():
                self.clock.set(due)
            self._execute(task)
            ran += 1
        self.clock.set(target)
        return ran

    async def run(self):
        """Drive the queue from the running asyncio loop until stopped or cancelled."""
        if self._running:
            return
        self._running = True
        logger.info("Scheduler started")
        try:
            while self._running:
                self.run_pending()
                delay = self.poll_interval
                next_due = self.next_due()
                if next_due is not None:
                    delay = min(max((next_due - self.now()).total_seconds(), 0.0), self.poll_interval)
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            logger.info("Scheduler stopped")
        finally:
            self._running = False

    def stop(self):
        self._running = False

    def clear(self):
        """Cancel everything still queued."""
        for _, _, task in self._queue:
            task.cancelled = True
        self._queue.clear()

    def _push(self, task: ScheduledTask):
        heapq.heappush(self._queue, (task.due, next(self._seq), task))

    def _discard_cancelled(self):
        while self._queue and self._queue[0][2].cancelled:
            heapq.heappop(self._queue)

    def _execute(self, task: ScheduledTask):
        callback = task._ref()
        if callback is None:
            # Owner was garbage collected
            task.done = True
            return
        if task.periodic:
            task.due = task.due + timedelta(seconds=task.interval)
            self._push(task)
        else:
            task.done = True
        try:
            callback(*task.args)
        except Exception as e:
            logger.exception(f"Error in scheduled task {task.name} (#{task.task_id}): {e}")
