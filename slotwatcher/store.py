"""In-memory store of the last committed availability per location."""

from __future__ import annotations

import datetime as dt
import logging
import threading
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple

from .models import AvailabilitySnapshot, CycleResult, Location, utcnow

logger = logging.getLogger(__name__)


class AvailabilityStore:
    """Last-known availability per configured location.

    Writers serialize on a lock and publish a fresh read-only mapping, so
    readers never lock and never see a half-applied commit.
    """

    def __init__(self, locations: Iterable[Location] = ()):
        self.locations: Tuple[Location, ...] = tuple(locations)
        self._lock = threading.Lock()
        self._snapshots: Mapping[str, AvailabilitySnapshot] = MappingProxyType({})
        self._last_cycle: Optional[CycleResult] = None
        self._last_success_at: Optional[dt.datetime] = None

    def get(self, location_id: str) -> Optional[AvailabilitySnapshot]:
        return self._snapshots.get(location_id)

    def snapshot(self) -> Mapping[str, AvailabilitySnapshot]:
        """Return an immutable view of every committed snapshot."""
        return self._snapshots

    def commit(self, snapshot: AvailabilitySnapshot) -> bool:
        """Store ``snapshot`` unless it is older than the stored one."""
        with self._lock:
            current = self._snapshots.get(snapshot.location_id)
            if current is not None and snapshot.observed_at < current.observed_at:
                logger.warning(
                    "Rejected stale snapshot for %s observed at %s (stored %s)",
                    snapshot.location_id,
                    snapshot.observed_at.isoformat(),
                    current.observed_at.isoformat(),
                )
                return False
            updated = dict(self._snapshots)
            updated[snapshot.location_id] = snapshot
            self._snapshots = MappingProxyType(updated)
        return True

    @property
    def last_cycle(self) -> Optional[CycleResult]:
        return self._last_cycle

    @property
    def last_success_at(self) -> Optional[dt.datetime]:
        return self._last_success_at

    def record_cycle(self, result: CycleResult) -> None:
        """Publish a cycle result; completed cycles refresh the health clock."""
        with self._lock:
            self._last_cycle = result
            if not result.cancelled:
                self._last_success_at = result.finished_at or utcnow()

    def is_healthy(self,
                   max_age: dt.timedelta,
                   now: Optional[dt.datetime] = None) -> bool:
        last = self._last_success_at
        if last is None:
            return False
        return (now or utcnow()) - last <= max_age
