"""Core data models for SlotWatcher."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Location:
    """A pharmacy store being watched."""

    store_id: str
    name: str
    zip_code: str = ""
    radius: Optional[int] = None
    address: str = ""
    phone: str = ""


@dataclass(frozen=True)
class AvailabilitySnapshot:
    """A single availability observation for one location."""

    location_id: str
    available: bool
    observed_at: dt.datetime
    slot_count: Optional[int] = None


@dataclass(frozen=True)
class Transition:
    """A change in availability between two consecutive snapshots."""

    location: Location
    previous: AvailabilitySnapshot
    current: AvailabilitySnapshot

    @property
    def opened(self) -> bool:
        return not self.previous.available and self.current.available

    @property
    def closed(self) -> bool:
        return self.previous.available and not self.current.available


@dataclass(frozen=True)
class AlertMessage:
    """Rendered alert ready for delivery to sinks."""

    title: str
    text: str
    payload: Dict[str, Any]


@dataclass
class CycleResult:
    """Aggregated result of one fetch-detect-notify cycle."""

    started_at: dt.datetime
    finished_at: Optional[dt.datetime] = None
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    transitions: int = 0
    skipped: int = 0
    notify_failures: int = 0
    cancelled: bool = False
    failures: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "transitions": self.transitions,
            "skipped": self.skipped,
            "notifyFailures": self.notify_failures,
            "cancelled": self.cancelled,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": (
                self.finished_at.isoformat() if self.finished_at else None
            ),
        }


def utcnow() -> dt.datetime:
    """Timezone-aware current UTC time."""
    return dt.datetime.now(dt.timezone.utc)
