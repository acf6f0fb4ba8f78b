"""Periodic fetch, detect, notify and commit workflow."""

from __future__ import annotations

import enum
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Set

from .diff import diff_cycle
from .errors import NotifyError, PermanentFetchError, TransientFetchError
from .models import AvailabilitySnapshot, CycleResult, Location, utcnow
from .notifications import Notifier
from .store import AvailabilityStore

logger = logging.getLogger(__name__)

CHECKPOINT_SECONDS = 0.25


class AvailabilitySource(Protocol):

    def fetch(self,
              location: Location,
              stop_event: Optional[threading.Event] = None
              ) -> AvailabilitySnapshot:
        ...


class SchedulerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


def next_tick(last_start: float, now: float, interval: float) -> float:
    """Next cycle start, aligned to ``last_start`` plus whole intervals.

    A cycle that overran its interval moves the next start to the following
    tick boundary instead of pushing every later tick back.
    """
    target = last_start + interval
    if now <= target:
        return target
    elapsed_ticks = int((now - last_start) // interval)
    return last_start + interval * (elapsed_ticks + 1)


@dataclass
class Scheduler:
    """Coordinates fetch, change detection, notification and commit steps."""

    client: AvailabilitySource
    store: AvailabilityStore
    notifier: Notifier
    locations: List[Location]
    interval_seconds: float = 60.0
    cycle_timeout_seconds: float = 30.0
    max_concurrency: int = 4
    dry_run: bool = False
    checkpoint_seconds: float = CHECKPOINT_SECONDS
    clock: Callable[[], float] = time.monotonic
    state: SchedulerState = field(default=SchedulerState.IDLE, init=False)

    def __post_init__(self) -> None:
        if self.cycle_timeout_seconds > self.interval_seconds:
            raise ValueError("cycle timeout must not exceed the poll interval")
        self._stop = threading.Event()
        self._disabled: Set[str] = set()
        self._disabled_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=self.max_concurrency,
                                            thread_name_prefix="fetch")

    @property
    def disabled_locations(self) -> Set[str]:
        with self._disabled_lock:
            return set(self._disabled)

    def request_shutdown(self) -> None:
        """Stop after the in-flight cycle is cancelled; start no new cycle."""
        if self.state is SchedulerState.STOPPED:
            return
        logger.info("Shutdown requested")
        self.state = SchedulerState.SHUTTING_DOWN
        self._stop.set()

    def reset_permanent_failures(self) -> None:
        """Re-enable locations skipped after a permanent fetch failure."""
        with self._disabled_lock:
            if self._disabled:
                logger.info("Re-enabling %d skipped location(s): %s",
                            len(self._disabled), ", ".join(sorted(self._disabled)))
            self._disabled.clear()

    def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """Run cycles at a fixed cadence until shutdown."""
        cycles = 0
        next_start = self.clock()
        try:
            while not self._stop.is_set():
                delay = next_start - self.clock()
                if delay > 0 and self._stop.wait(delay):
                    break
                tick_start = self.clock()
                self.run_cycle()
                cycles += 1
                if max_cycles is not None and cycles >= max_cycles:
                    break
                now = self.clock()
                next_start = next_tick(tick_start, now, self.interval_seconds)
                if next_start - tick_start > self.interval_seconds:
                    logger.warning(
                        "Cycle overran the %.1fs interval by %.1fs; skipping to next tick",
                        self.interval_seconds,
                        now - tick_start - self.interval_seconds,
                    )
        finally:
            self.close()

    def close(self) -> None:
        self._stop.set()
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.state = SchedulerState.STOPPED
        logger.info("Scheduler stopped")

    def run_cycle(self) -> CycleResult:
        """Execute a single fetch-detect-notify-commit cycle."""
        if self._stop.is_set():
            raise RuntimeError("scheduler is shutting down")
        self.state = SchedulerState.RUNNING
        result = CycleResult(started_at=utcnow())
        try:
            self._run_cycle(result)
        finally:
            result.finished_at = utcnow()
            self.store.record_cycle(result)
            if self.state is SchedulerState.RUNNING:
                self.state = SchedulerState.IDLE
        logger.info(
            "Cycle finished: attempted=%d succeeded=%d failed=%d skipped=%d transitions=%d%s",
            result.attempted,
            result.succeeded,
            result.failed,
            result.skipped,
            result.transitions,
            " (cancelled)" if result.cancelled else "",
        )
        return result

    def _run_cycle(self, result: CycleResult) -> None:
        disabled = self.disabled_locations
        active = [loc for loc in self.locations if loc.store_id not in disabled]
        result.skipped = len(self.locations) - len(active)
        result.attempted = len(active)
        logger.info("Starting cycle for %d location(s)", len(active))

        snapshots = self._fetch_all(active, result)
        if snapshots is None:
            result.cancelled = True
            logger.warning("Cycle cancelled during fetch; nothing committed")
            return

        previous = self.store.snapshot()
        transitions = diff_cycle(active, previous, snapshots)
        result.transitions = len(transitions)

        for transition in transitions:
            if self._stop.is_set():
                result.cancelled = True
                logger.warning("Cycle cancelled during notification; nothing committed")
                return
            logger.info(
                "Availability changed at %s: %s -> %s",
                transition.location.store_id,
                transition.previous.available,
                transition.current.available,
            )
            if self.dry_run:
                continue
            try:
                self.notifier.notify(transition, stop_event=self._stop)
            except NotifyError as exc:
                result.notify_failures += len(exc.failures)

        for snapshot in snapshots.values():
            self.store.commit(snapshot)

    def _fetch_all(
        self,
        active: List[Location],
        result: CycleResult,
    ) -> Optional[Dict[str, AvailabilitySnapshot]]:
        futures: Dict[Future, Location] = {
            self._executor.submit(self.client.fetch, location,
                                  stop_event=self._stop): location
            for location in active
        }
        deadline = self.clock() + self.cycle_timeout_seconds
        pending = set(futures)
        while pending and not self._stop.is_set():
            remaining = deadline - self.clock()
            if remaining <= 0:
                break
            _done, pending = wait(pending,
                                  timeout=min(remaining, self.checkpoint_seconds))

        for future in pending:
            future.cancel()
        if self._stop.is_set():
            return None

        snapshots: Dict[str, AvailabilitySnapshot] = {}
        for future, location in futures.items():
            store_id = location.store_id
            if future in pending:
                logger.warning("Fetch for %s missed the %.1fs cycle deadline",
                               store_id, self.cycle_timeout_seconds)
                result.failures[store_id] = "deadline exceeded"
                continue
            exc = future.exception()
            if exc is None:
                snapshots[store_id] = future.result()
            elif isinstance(exc, PermanentFetchError):
                logger.error("Permanent failure for %s, skipping until reload: %s",
                             store_id, exc.reason)
                with self._disabled_lock:
                    self._disabled.add(store_id)
                result.failures[store_id] = exc.reason
            elif isinstance(exc, TransientFetchError):
                logger.warning("Transient failure for %s: %s", store_id,
                               exc.reason)
                result.failures[store_id] = exc.reason
            else:
                logger.error("Unexpected error fetching %s", store_id,
                             exc_info=exc)
                result.failures[store_id] = f"unexpected error: {exc}"

        result.succeeded = len(snapshots)
        result.failed = len(result.failures)
        return snapshots


__all__ = ["Scheduler", "SchedulerState", "next_tick"]
