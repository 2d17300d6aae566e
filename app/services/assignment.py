"""Validates equipment and technician assignments against existing bookings.

An assignment request moves Requested -> Checking -> Approved | Rejected.
Rejections are returned as values (``AssignmentResult.error``) so callers
decide how to surface them; approval is the only mutation and it never
touches storage, the caller persists the returned event.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from enum import StrEnum

import structlog
from pydantic import BaseModel, ConfigDict

from app.domain.errors import ScheduleConflictError
from app.domain.models import (
    AssignmentRole,
    EquipmentRequirement,
    Event,
    PersonAssignment,
    ResourceKind,
    ResourceScope,
)
from app.services.conflicts import find_conflicts
from app.services.lifecycle import record_change

logger = structlog.get_logger(__name__)


class AssignmentState(StrEnum):
    APPROVED = "approved"
    REJECTED = "rejected"


class AssignmentResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    state: AssignmentState
    event: Event
    error: ScheduleConflictError | None = None

    @property
    def approved(self) -> bool:
        return self.state == AssignmentState.APPROVED


def _check(
    event: Event,
    kind: ResourceKind,
    resource_id: str,
    scope: ResourceScope,
    active_events: Iterable[Event],
) -> ScheduleConflictError | None:
    conflicts = find_conflicts(
        event.interval, scope, active_events, exclude_event_id=event.id
    )
    if not conflicts:
        return None
    error = ScheduleConflictError(
        conflicts,
        requested_start=event.start_date,
        requested_end=event.end_date,
        resource_kind=str(kind),
        resource_id=resource_id,
    )
    logger.info(
        "assignment_rejected",
        event_id=event.id,
        resource_kind=str(kind),
        resource_id=resource_id,
        conflicting_event_ids=[c.id for c in conflicts],
    )
    return error


def _approve(
    event: Event, field: str, kind: ResourceKind, resource_id: str, actor: str, now: datetime
) -> AssignmentResult:
    logger.info(
        "resource_assigned", event_id=event.id, resource_kind=str(kind), resource_id=resource_id
    )
    updated = record_change(
        event, field, None, resource_id, actor, reason=f"{kind} assigned", now=now
    )
    return AssignmentResult(state=AssignmentState.APPROVED, event=updated)


def assign_equipment(
    event: Event,
    equipment_id: str,
    active_events: Iterable[Event],
    quantity: int = 1,
    notes: str | None = None,
    actor: str = "system",
    now: datetime | None = None,
) -> AssignmentResult:
    """Book *equipment_id* for *event* unless another active event holds it.

    Re-assigning equipment already on the event is approved unchanged.
    """
    if equipment_id in event.equipment_ids:
        return AssignmentResult(state=AssignmentState.APPROVED, event=event)

    error = _check(
        event,
        ResourceKind.EQUIPMENT,
        equipment_id,
        ResourceScope(equipment=[equipment_id]),
        active_events,
    )
    if error is not None:
        return AssignmentResult(state=AssignmentState.REJECTED, event=event, error=error)

    now = now or datetime.now(timezone.utc)
    booked = event.model_copy(
        update={
            "required_equipment": [
                *event.required_equipment,
                EquipmentRequirement(
                    equipment_id=equipment_id,
                    quantity=quantity,
                    assigned_at=now,
                    notes=notes,
                ),
            ]
        }
    )
    return _approve(
        booked, "required_equipment", ResourceKind.EQUIPMENT, equipment_id, actor, now
    )


def assign_person(
    event: Event,
    person_id: str,
    active_events: Iterable[Event],
    role: AssignmentRole = AssignmentRole.TECHNICIAN,
    notes: str | None = None,
    actor: str = "system",
    now: datetime | None = None,
) -> AssignmentResult:
    """Same algorithm as :func:`assign_equipment`, scoped to a person."""
    if person_id in event.person_ids:
        return AssignmentResult(state=AssignmentState.APPROVED, event=event)

    error = _check(
        event,
        ResourceKind.PERSON,
        person_id,
        ResourceScope(people=[person_id]),
        active_events,
    )
    if error is not None:
        return AssignmentResult(state=AssignmentState.REJECTED, event=event, error=error)

    now = now or datetime.now(timezone.utc)
    booked = event.model_copy(
        update={
            "assigned_to": [
                *event.assigned_to,
                PersonAssignment(
                    person_id=person_id, role=role, assigned_at=now, notes=notes
                ),
            ]
        }
    )
    return _approve(booked, "assigned_to", ResourceKind.PERSON, person_id, actor, now)
