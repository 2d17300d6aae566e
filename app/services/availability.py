"""Service answering "is this person or piece of equipment free?"."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.domain.models import Event, Interval
from app.services.intervals import clip, overlaps


class Availability(BaseModel):
    model_config = ConfigDict(frozen=True)

    resource_id: str
    window: Interval
    busy_intervals: list[Interval] = Field(default_factory=list)

    def is_free_for_interval(self, candidate: Interval) -> bool:
        return not any(overlaps(candidate, busy) for busy in self.busy_intervals)


def _books(event: Event, resource_id: str) -> bool:
    return resource_id in event.person_ids or resource_id in event.equipment_ids


def query_availability(
    resource_id: str,
    range_start: datetime,
    range_end: datetime,
    active_events: Iterable[Event],
) -> Availability:
    """Collect the busy intervals of *resource_id* inside ``[range_start, range_end)``.

    Only active events count. Each busy interval is truncated to the range
    and the result is sorted by start.
    """
    window = Interval(start=range_start, end=range_end)
    busy = []
    for event in active_events:
        if not event.is_active or not _books(event, resource_id):
            continue
        clipped = clip(event.interval, window)
        if clipped is not None:
            busy.append(clipped)
    busy.sort(key=lambda i: (i.start, i.end))
    return Availability(resource_id=resource_id, window=window, busy_intervals=busy)


def free_resources(
    resource_ids: Iterable[str],
    candidate: Interval,
    active_events: Iterable[Event],
) -> list[str]:
    """Return the subset of *resource_ids* with nothing booked during *candidate*."""
    events = list(active_events)
    return [
        rid
        for rid in resource_ids
        if query_availability(rid, candidate.start, candidate.end, events).is_free_for_interval(
            candidate
        )
    ]
