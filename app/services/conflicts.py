"""Service for detecting scheduling conflicts between events."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from app.domain.models import Event, Interval, ResourceScope
from app.services.intervals import overlaps

logger = structlog.get_logger(__name__)


def shares_resource(event: Event, resources: ResourceScope) -> bool:
    """True if *event* books any person or equipment in *resources*."""
    return bool(
        event.person_ids.intersection(resources.people)
        or event.equipment_ids.intersection(resources.equipment)
    )


def find_conflicts(
    candidate: Interval,
    resources: ResourceScope,
    active_events: Iterable[Event],
    exclude_event_id: str | None = None,
) -> list[Event]:
    """Return active events that book one of *resources* during *candidate*.

    Cancelled, completed and rescheduled events are ignored, as is the event
    identified by ``exclude_event_id`` so an update never conflicts with
    itself. An empty scope never conflicts. Results are ordered by start.
    """
    if resources.is_empty:
        return []

    conflicts = sorted(
        (
            event
            for event in active_events
            if event.is_active
            and event.id != exclude_event_id
            and shares_resource(event, resources)
            and overlaps(candidate, event.interval)
        ),
        key=lambda e: (e.start_date, e.id),
    )
    if conflicts:
        logger.info(
            "conflicts_detected",
            start=candidate.start.isoformat(),
            end=candidate.end.isoformat(),
            people=resources.people,
            equipment=resources.equipment,
            conflicting_event_ids=[e.id for e in conflicts],
        )
    return conflicts
