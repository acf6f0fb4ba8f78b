"""Change detection between consecutive availability snapshots."""

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional

from .models import AvailabilitySnapshot, Location, Transition


def diff_availability(
    location: Location,
    previous: Optional[AvailabilitySnapshot],
    current: AvailabilitySnapshot,
) -> Optional[Transition]:
    """Return a Transition when the availability flag flipped.

    A first observation (no previous snapshot) never produces a transition.
    """
    if previous is None:
        return None
    if previous.available == current.available:
        return None
    return Transition(location=location, previous=previous, current=current)


def diff_cycle(
    locations: Iterable[Location],
    previous: Mapping[str, AvailabilitySnapshot],
    current: Mapping[str, AvailabilitySnapshot],
) -> List[Transition]:
    """Compute transitions for every location fetched in a cycle."""
    transitions = []
    for location in locations:
        snapshot = current.get(location.store_id)
        if snapshot is None:
            continue
        transition = diff_availability(location,
                                       previous.get(location.store_id),
                                       snapshot)
        if transition is not None:
            transitions.append(transition)
    return transitions
