"""Live FG-by-SKU series updater.

Holds a working copy of a snapshot's FG-by-hour series and advances it on a
fixed interval. Each tick adds a small non-negative increment to every SKU
count in every bucket; buckets are never added, removed or reordered.

The series is an immutable tuple that is replaced on every tick. The timer is
an injected scheduler so tests can fast-forward without waiting:

- ``ThreadScheduler``: background daemon thread (default)
- ``ManualScheduler``: virtual clock advanced explicitly
"""

import itertools
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Protocol

from .config import LiveConfig, Range
from .generators import FGSeries, HourlyFGBucket, RandomSource

logger = logging.getLogger(__name__)

IncrementSource = Callable[[str], int]
TickCallback = Callable[[FGSeries], None]


def random_increment(rng: RandomSource, bounds: Range = Range(0, 3)) -> IncrementSource:
    """Uniform integer increment per SKU."""
    return lambda sku: rng.draw_int(bounds)


def fixed_increment(amount: int) -> IncrementSource:
    """Same increment for every SKU on every tick."""
    if amount < 0:
        raise ValueError(f"Increment must be non-negative, got {amount}")
    return lambda sku: amount


def seed_series(buckets: Iterable[HourlyFGBucket]) -> FGSeries:
    """Detach a series from its source so later changes there cannot leak in."""
    return tuple(HourlyFGBucket(hour_ts=b.hour_ts, counts=b.counts) for b in buckets)


def advance_series(series: FGSeries, increment: IncrementSource) -> FGSeries:
    """Return a new series with every SKU count increased by ``increment(sku)``."""
    advanced = []
    for bucket in series:
        counts = {}
        for sku, value in bucket.counts.items():
            step = increment(sku)
            if step < 0:
                raise ValueError(f"Negative increment {step} for {sku}")
            counts[sku] = value + step
        advanced.append(HourlyFGBucket(hour_ts=bucket.hour_ts, counts=counts))
    return tuple(advanced)


# =============================================================================
# Schedulers
# =============================================================================


class Timer(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Arms a recurring callback; the returned timer disarms it."""

    def start(self, interval_ms: int, callback: Callable[[], None]) -> Timer: ...


class _ThreadTimer:
    """Recurring callback on a daemon thread."""

    def __init__(self, interval_ms: int, callback: Callable[[], None]):
        self.interval_ms = interval_ms
        self._callback = callback
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name="live-fg-ticker")
        self._thread.start()

    def _run(self) -> None:
        interval = self.interval_ms / 1000.0
        # Event.wait() restarts after each tick, so a slow tick delays the next
        # one instead of queueing it.
        while not self._stop_event.wait(interval):
            try:
                self._callback()
            except Exception as e:
                logger.error(f"Error in live tick: {e}")

    def cancel(self) -> None:
        self._stop_event.set()
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout=5)


class ThreadScheduler:
    """Wall-clock scheduler backed by one thread per timer."""

    def start(self, interval_ms: int, callback: Callable[[], None]) -> _ThreadTimer:
        return _ThreadTimer(interval_ms, callback)


class _ManualTimer:
    def __init__(self, scheduler: "ManualScheduler", interval_ms: int, callback: Callable[[], None]):
        self.scheduler = scheduler
        self.interval_ms = interval_ms
        self.callback = callback
        self.next_due_ms = scheduler.now_ms + interval_ms
        self.active = True

    def cancel(self) -> None:
        self.active = False
        self.scheduler._remove(self)


class ManualScheduler:
    """Virtual clock: timers fire only when ``advance`` moves time forward."""

    def __init__(self):
        self.now_ms = 0
        self._timers: List[_ManualTimer] = []

    @property
    def pending(self) -> int:
        return len(self._timers)

    def start(self, interval_ms: int, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(self, interval_ms, callback)
        self._timers.append(timer)
        return timer

    def _remove(self, timer: _ManualTimer) -> None:
        if timer in self._timers:
            self._timers.remove(timer)

    def advance(self, ms: int) -> int:
        """Move the clock forward, firing due timers in order. Returns fire count."""
        if ms < 0:
            raise ValueError("Cannot move the clock backwards")
        target = self.now_ms + ms
        fired = 0
        while True:
            due = [t for t in self._timers if t.active and t.next_due_ms <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.next_due_ms)
            self.now_ms = timer.next_due_ms
            timer.next_due_ms += timer.interval_ms
            timer.callback()
            fired += 1
        self.now_ms = target
        return fired


# =============================================================================
# Updater
# =============================================================================


class UpdaterState(Enum):
    """Updater lifecycle states."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"


@dataclass(frozen=True)
class LiveHandle:
    """Token returned by ``start``; pass it back to ``stop``."""

    handle_id: int
    interval_ms: int


_handle_ids = itertools.count(1)


class LiveSeriesUpdater:
    """Owns the live FG series and advances it on a timer.

    ``start`` while running returns the existing handle; ``stop`` while idle
    or with a stale handle does nothing.
    """

    def __init__(
        self,
        rng: Optional[RandomSource] = None,
        increment: Optional[IncrementSource] = None,
        scheduler: Optional[Scheduler] = None,
        config: Optional[LiveConfig] = None,
    ):
        self.config = (config or LiveConfig()).validate()
        self._rng = rng or RandomSource()
        self._increment = increment or random_increment(self._rng, self.config.increment)
        self._scheduler: Scheduler = scheduler or ThreadScheduler()

        self._lock = threading.RLock()
        self._state = UpdaterState.IDLE
        self._series: FGSeries = ()
        self._handle: Optional[LiveHandle] = None
        self._timer: Optional[Timer] = None
        self._on_tick: Optional[TickCallback] = None
        self._tick_count = 0

    @property
    def state(self) -> UpdaterState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state == UpdaterState.RUNNING

    @property
    def series(self) -> FGSeries:
        return self._series

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def handle(self) -> Optional[LiveHandle]:
        return self._handle

    def start(
        self,
        initial_series: Iterable[HourlyFGBucket],
        interval_ms: Optional[int] = None,
        on_tick: Optional[TickCallback] = None,
    ) -> LiveHandle:
        """Seed the series and arm the timer (IDLE -> RUNNING)."""
        with self._lock:
            if self._state == UpdaterState.RUNNING:
                logger.debug(f"Updater already running (handle {self._handle.handle_id})")
                return self._handle

            interval_ms = interval_ms if interval_ms is not None else self.config.interval_ms
            if interval_ms <= 0:
                raise ValueError(f"Tick interval must be positive, got {interval_ms}")

            self._series = seed_series(initial_series)
            self._on_tick = on_tick
            self._tick_count = 0
            self._handle = LiveHandle(handle_id=next(_handle_ids), interval_ms=interval_ms)
            self._state = UpdaterState.RUNNING
            self._timer = self._scheduler.start(interval_ms, self.tick)

        logger.info(
            f"Live FG updater started: {len(self._series)} buckets, every {interval_ms} ms"
        )
        return self._handle

    def tick(self) -> FGSeries:
        """Advance the series once. No-op while idle."""
        with self._lock:
            if self._state != UpdaterState.RUNNING:
                return self._series
            self._series = advance_series(self._series, self._increment)
            self._tick_count += 1
            if self._on_tick is not None:
                self._on_tick(self._series)
            return self._series

    def stop(self, handle: Optional[LiveHandle] = None) -> None:
        """Disarm the timer (RUNNING -> IDLE). No further ticks mutate the series."""
        with self._lock:
            if self._state != UpdaterState.RUNNING:
                return
            if handle is not None and handle != self._handle:
                logger.debug(f"Ignoring stop for stale handle {handle.handle_id}")
                return
            timer = self._timer
            self._timer = None
            self._state = UpdaterState.IDLE
            ticks = self._tick_count

        if timer is not None:
            timer.cancel()
        logger.info(f"Live FG updater stopped after {ticks} ticks")
