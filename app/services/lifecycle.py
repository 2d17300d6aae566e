"""Event status transitions and the change log."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from app.domain.errors import InvalidStatusTransitionError
from app.domain.models import ChangeRecord, Event, EventStatus, Note

logger = structlog.get_logger(__name__)

TERMINAL_STATUSES = frozenset({EventStatus.COMPLETED, EventStatus.CANCELLED})

_FORWARD: dict[EventStatus, set[EventStatus]] = {
    EventStatus.SCHEDULED: {EventStatus.CONFIRMED},
    EventStatus.CONFIRMED: {EventStatus.IN_PROGRESS},
    EventStatus.IN_PROGRESS: {EventStatus.COMPLETED},
    EventStatus.RESCHEDULED: {EventStatus.SCHEDULED},
}


def can_transition(current: EventStatus, requested: EventStatus) -> bool:
    if current in TERMINAL_STATUSES:
        return False
    if requested in (EventStatus.CANCELLED, EventStatus.RESCHEDULED):
        return True
    return requested in _FORWARD.get(current, set())


def record_change(
    event: Event,
    field: str,
    old_value: object,
    new_value: object,
    actor: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> Event:
    """Return a copy of *event* with one more entry in its change log."""
    now = now or datetime.now(timezone.utc)
    change = ChangeRecord(
        field=field,
        old_value=None if old_value is None else str(old_value),
        new_value=None if new_value is None else str(new_value),
        changed_by=actor,
        changed_at=now,
        reason=reason,
    )
    return event.model_copy(
        update={"changes": [*event.changes, change], "updated_at": now}
    )


def transition_status(
    event: Event,
    new_status: EventStatus,
    actor: str,
    reason: str | None = None,
    note: str | None = None,
    now: datetime | None = None,
) -> Event:
    """Move *event* to *new_status*, or raise ``InvalidStatusTransitionError``.

    Forward path is scheduled -> confirmed -> in_progress -> completed. Any
    non-terminal event may be cancelled or marked rescheduled, and a
    rescheduled event re-enters scheduled.
    """
    if not can_transition(event.status, new_status):
        raise InvalidStatusTransitionError(event.status, new_status)

    now = now or datetime.now(timezone.utc)
    updated = record_change(
        event,
        "status",
        event.status,
        new_status,
        actor,
        reason=reason or f"status changed to {new_status}",
        now=now,
    )
    update: dict = {"status": new_status}
    if note:
        update["notes"] = [*updated.notes, Note(text=note, author=actor, created_at=now)]
    logger.info(
        "status_changed", event_id=event.id, old=str(event.status), new=str(new_status)
    )
    return updated.model_copy(update=update)
