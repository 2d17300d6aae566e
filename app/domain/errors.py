"""Domain error taxonomy for the scheduling core."""

from __future__ import annotations

from datetime import datetime
from typing import Any


class SchedulingError(Exception):
    """Base class for every failure raised by the scheduling core."""

    code = "scheduling_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class InvalidIntervalError(SchedulingError):
    """start >= end. Always a caller bug, never retried."""

    code = "invalid_interval"

    def __init__(self, start: datetime, end: datetime) -> None:
        super().__init__(
            f"start ({start.isoformat()}) must be before end ({end.isoformat()})"
        )
        self.start = start
        self.end = end


class InvalidRecurrenceError(SchedulingError):
    code = "invalid_recurrence"


class ResourceNotFoundError(SchedulingError):
    """A referenced event, person or piece of equipment does not exist."""

    code = "resource_not_found"

    def __init__(self, kind: str, resource_id: str) -> None:
        super().__init__(f"{kind} {resource_id!r} not found")
        self.kind = kind
        self.resource_id = resource_id

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update(kind=self.kind, resource_id=self.resource_id)
        return payload


class InvalidStatusTransitionError(SchedulingError):
    code = "invalid_status_transition"

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"cannot transition from {current} to {requested}")
        self.current = current
        self.requested = requested


class ScheduleConflictError(SchedulingError):
    """One or more active bookings overlap the requested resource/interval.

    ``conflicts`` holds the full list of conflicting events so callers can
    report which booking is in the way and whose it is.
    """

    code = "schedule_conflict"

    def __init__(
        self,
        conflicts: list,
        requested_start: datetime,
        requested_end: datetime,
        resource_kind: str | None = None,
        resource_id: str | None = None,
    ) -> None:
        self.conflicts = list(conflicts)
        self.requested_start = requested_start
        self.requested_end = requested_end
        self.resource_kind = resource_kind
        self.resource_id = resource_id
        super().__init__(self._render())

    def _render(self) -> str:
        first = self.conflicts[0]
        owner = first.client.name if first.client else first.created_by
        day = self.requested_start.date().isoformat()
        if self.resource_id:
            subject = f"{self.resource_kind.capitalize()} {self.resource_id} is"
        else:
            subject = "Requested resources are"
        message = (
            f"{subject} already booked for event {first.id} "
            f"of client {owner} on {day}"
        )
        if len(self.conflicts) > 1:
            message += f" (+{len(self.conflicts) - 1} more)"
        return message

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update(
            requested_interval={
                "start": self.requested_start.isoformat(),
                "end": self.requested_end.isoformat(),
            },
            resource={"kind": self.resource_kind, "id": self.resource_id},
            conflicts=[
                {
                    "event_id": c.id,
                    "title": c.title,
                    "client_id": c.client.id if c.client else None,
                    "client_name": c.client.name if c.client else None,
                    "requested_by": c.created_by,
                    "start_date": c.start_date.isoformat(),
                    "end_date": c.end_date.isoformat(),
                }
                for c in self.conflicts
            ],
        )
        return payload
