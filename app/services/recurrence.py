"""Service for expanding recurring events into individual child occurrences."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime

import structlog
from dateutil.relativedelta import relativedelta

from app.domain.errors import InvalidRecurrenceError
from app.domain.models import Event, Recurrence, RecurrencePattern

logger = structlog.get_logger(__name__)

DEFAULT_MAX_GENERATED = 1000


def _step(pattern: RecurrencePattern, interval: int) -> relativedelta:
    return {
        RecurrencePattern.DAILY: relativedelta(days=interval),
        RecurrencePattern.WEEKLY: relativedelta(weeks=interval),
        RecurrencePattern.MONTHLY: relativedelta(months=interval),
        RecurrencePattern.YEARLY: relativedelta(years=interval),
    }[pattern]


def validate_recurrence(recurrence: Recurrence, base_start: datetime) -> None:
    """Raise ``InvalidRecurrenceError`` unless *recurrence* is well-formed.

    A recurrence must be bounded explicitly by ``end_recurrence`` and/or
    ``max_occurrences``; there is no implicit far-future cap.
    """
    if recurrence.interval <= 0:
        raise InvalidRecurrenceError("recurrence interval must be a positive integer")
    if recurrence.end_recurrence is None and recurrence.max_occurrences is None:
        raise InvalidRecurrenceError(
            "recurrence needs an end_recurrence date or max_occurrences"
        )
    if recurrence.max_occurrences is not None and recurrence.max_occurrences <= 0:
        raise InvalidRecurrenceError("max_occurrences must be a positive integer")
    if recurrence.end_recurrence is not None and recurrence.end_recurrence < base_start:
        raise InvalidRecurrenceError("end_recurrence is before the event start")


def occurrence_starts(base: Event, limit: int = DEFAULT_MAX_GENERATED) -> Iterator[datetime]:
    """Yield the start of every generated occurrence, base excluded.

    The k-th start is computed from the base start rather than from the
    previous occurrence so month-end anchors do not drift (Jan 31 -> Feb 28
    -> Mar 31).
    """
    recurrence = base.recurrence
    validate_recurrence(recurrence, base.start_date)
    step = _step(recurrence.pattern, recurrence.interval)

    remaining = None
    if recurrence.max_occurrences is not None:
        # the base event counts as occurrence #1
        remaining = recurrence.max_occurrences - 1

    emitted = 0
    k = 1
    while remaining is None or emitted < remaining:
        cursor = base.start_date + step * k
        if recurrence.end_recurrence is not None and cursor > recurrence.end_recurrence:
            return
        if emitted >= limit:
            raise InvalidRecurrenceError(
                f"recurrence would generate more than {limit} occurrences"
            )
        yield cursor
        emitted += 1
        k += 1


def expand_recurrence(base: Event, limit: int = DEFAULT_MAX_GENERATED) -> list[Event]:
    """Expand a base Event's recurrence into child Event instances.

    The base's own date is excluded from the result (it is already an event).
    Each child copies every field of the base, keeps its duration, gets a new
    id, ``parent_event_id`` set to the base's id and no recurrence. Returns an
    empty list when the base has no enabled recurrence.
    """
    if base.recurrence is None or not base.recurrence.enabled:
        return []
    if base.parent_event_id is not None:
        raise InvalidRecurrenceError("cannot expand an occurrence of another series")

    duration = base.duration
    template = base.model_dump(
        exclude={"id", "start_date", "end_date", "recurrence", "parent_event_id", "changes"}
    )
    children = [
        Event(
            **template,
            start_date=start,
            end_date=start + duration,
            parent_event_id=base.id,
        )
        for start in occurrence_starts(base, limit)
    ]

    logger.info(
        "recurrence_expanded",
        event_id=base.id,
        pattern=str(base.recurrence.pattern),
        interval=base.recurrence.interval,
        occurrences=len(children),
    )
    return children
