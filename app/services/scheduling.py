"""Scheduling operations exposed to the transport layer.

Every check-then-write runs while holding the locks of the resources it
touches, so two requests cannot book the same resource into overlapping
intervals between the conflict check and the repository write.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog

from app.config import Settings, get_settings
from app.domain.errors import InvalidStatusTransitionError, ScheduleConflictError
from app.domain.factory import build_event
from app.domain.models import (
    Event,
    EventDraft,
    EventFilters,
    EventStatus,
    Interval,
    ResourceKind,
    ResourceRef,
    ResourceScope,
)
from app.repos.base import EventRepository
from app.services.assignment import AssignmentResult, assign_equipment, assign_person
from app.services.availability import Availability, free_resources, query_availability
from app.services.conflicts import find_conflicts
from app.services.lifecycle import TERMINAL_STATUSES, record_change, transition_status
from app.services.locks import ResourceLockRegistry
from app.services.recurrence import expand_recurrence

logger = structlog.get_logger(__name__)

_PATCHABLE = {
    "status",
    "start_date",
    "end_date",
    "assigned_to",
    "required_equipment",
    "notes",
    "changes",
    "updated_at",
}


def _lock_keys(resources: ResourceScope) -> list[str]:
    # people and equipment live in separate id spaces
    return [f"person:{p}" for p in resources.people] + [
        f"equipment:{e}" for e in resources.equipment
    ]


def _patch(event: Event) -> dict:
    return event.model_dump(include=_PATCHABLE)


class SchedulingService:
    def __init__(
        self,
        repository: EventRepository,
        locks: ResourceLockRegistry | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.repository = repository
        self.locks = locks or ResourceLockRegistry()
        self.settings = settings or get_settings()

    def _actor(self, actor: str | None) -> str:
        return actor or self.settings.default_actor

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def check_conflicts(
        self,
        candidate: Interval,
        resources: ResourceScope,
        exclude_event_id: str | None = None,
    ) -> list[Event]:
        active = self.repository.find_active_events_for_resources(resources)
        return find_conflicts(candidate, resources, active, exclude_event_id)

    def query_availability(
        self, resource_id: str, range_start: datetime, range_end: datetime
    ) -> Availability:
        scope = ResourceScope(people=[resource_id], equipment=[resource_id])
        active = self.repository.find_active_events_for_resources(scope)
        return query_availability(resource_id, range_start, range_end, active)

    def free_resources(
        self, kind: ResourceKind, range_start: datetime, range_end: datetime
    ) -> list[str]:
        """Registered people or equipment with nothing booked in the range."""
        candidate = Interval(start=range_start, end=range_end)
        ids = self.repository.list_resource_ids(kind)
        if kind == ResourceKind.EQUIPMENT:
            scope = ResourceScope(equipment=ids)
        else:
            scope = ResourceScope(people=ids)
        active = self.repository.find_active_events_for_resources(scope)
        return free_resources(ids, candidate, active)

    def list_events(
        self, window: Interval | None = None, filters: EventFilters | None = None
    ) -> list[Event]:
        if window is not None:
            return self.repository.find_by_date_range(window, filters)
        return [
            e for e in self.repository.list_all() if filters is None or filters.matches(e)
        ]

    def upcoming_events(
        self, days: int, now: datetime | None = None
    ) -> tuple[Interval, list[Event]]:
        """Events starting within the next *days* days, cancelled ones excluded."""
        start = now or datetime.now(timezone.utc)
        period = Interval(start=start, end=start + timedelta(days=days))
        events = [
            e
            for e in self.repository.find_by_date_range(period)
            if e.start_date >= period.start and e.status != EventStatus.CANCELLED
        ]
        return period, events

    def list_series(self, parent_id: str) -> list[Event]:
        return [self.repository.get(parent_id), *self.repository.list_children(parent_id)]

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_event(
        self, draft: EventDraft, actor: str | None = None
    ) -> tuple[Event, list[Event]]:
        """Validate, expand and persist a new event and its occurrences.

        The series is rejected as a whole if the base or any occurrence
        conflicts with an existing booking or with another member of the
        series.
        """
        event = build_event(draft, self._actor(actor))
        occurrences = expand_recurrence(event, limit=self.settings.max_generated_occurrences)
        scope = event.resource_scope
        self.repository.ensure_resources_exist(scope)

        with self.locks.hold(_lock_keys(scope)):
            pool = self.repository.find_active_events_for_resources(scope)
            conflicts: dict[str, Event] = {}
            first_clash: Interval | None = None
            for member in (event, *occurrences):
                found = find_conflicts(member.interval, scope, pool, member.id)
                if found and first_clash is None:
                    first_clash = member.interval
                for conflict in found:
                    conflicts.setdefault(conflict.id, conflict)
                pool.append(member)
            if first_clash is not None:
                raise ScheduleConflictError(
                    list(conflicts.values()),
                    requested_start=first_clash.start,
                    requested_end=first_clash.end,
                )

            stored = self.repository.insert(event)
            children = [self.repository.insert(o) for o in occurrences]

        logger.info(
            "event_created",
            event_id=stored.id,
            type=str(stored.type),
            occurrences=len(children),
        )
        return stored, children

    def assign_resource(
        self, event_id: str, resource: ResourceRef, actor: str | None = None
    ) -> Event:
        """Book a person or piece of equipment for an event.

        Raises ``ScheduleConflictError`` when another active booking holds the
        resource during the event.
        """
        if resource.kind == ResourceKind.EQUIPMENT:
            scope = ResourceScope(equipment=[resource.id])
        else:
            scope = ResourceScope(people=[resource.id])
        self.repository.ensure_resources_exist(scope)

        with self.locks.hold(_lock_keys(scope)):
            event = self.repository.get(event_id)
            active = self.repository.find_active_events_for_resources(scope)
            result = self._validate_assignment(event, resource, active, self._actor(actor))
            if not result.approved:
                raise result.error
            if result.event is event:
                return event
            return self.repository.update(event_id, _patch(result.event))

    def _validate_assignment(
        self, event: Event, resource: ResourceRef, active: list[Event], actor: str
    ) -> AssignmentResult:
        if resource.kind == ResourceKind.EQUIPMENT:
            return assign_equipment(
                event,
                resource.id,
                active,
                quantity=resource.quantity,
                notes=resource.notes,
                actor=actor,
            )
        return assign_person(
            event, resource.id, active, role=resource.role, notes=resource.notes, actor=actor
        )

    def change_status(
        self,
        event_id: str,
        status: EventStatus,
        actor: str | None = None,
        reason: str | None = None,
        note: str | None = None,
    ) -> Event:
        event = self.repository.get(event_id)
        if status == EventStatus.RESCHEDULED:
            # only reached through reschedule(), which carries the new dates
            raise InvalidStatusTransitionError(event.status, status)
        updated = transition_status(event, status, self._actor(actor), reason=reason, note=note)
        return self.repository.update(event_id, _patch(updated))

    def reschedule(
        self,
        event_id: str,
        new_start: datetime,
        new_end: datetime,
        actor: str | None = None,
        reason: str | None = None,
    ) -> Event:
        """Move an event to a new interval.

        The event passes through ``rescheduled``, is re-checked for conflicts
        on its people and equipment, and re-enters ``scheduled``. On conflict
        the stored event is left untouched.
        """
        actor = self._actor(actor)
        requested = Interval(start=new_start, end=new_end)  # raises InvalidIntervalError
        event = self.repository.get(event_id)
        if event.status in TERMINAL_STATUSES:
            raise InvalidStatusTransitionError(event.status, EventStatus.RESCHEDULED)
        keys = set(_lock_keys(event.resource_scope))

        while True:
            with self.locks.hold(keys):
                event = self.repository.get(event_id)
                scope = event.resource_scope
                current = set(_lock_keys(scope))
                if not current <= keys:
                    # resources were assigned since the first read; lock those too
                    keys |= current
                    continue
                return self._move(event, requested, scope, actor, reason)

    def _move(
        self,
        event: Event,
        requested: Interval,
        scope: ResourceScope,
        actor: str,
        reason: str | None,
    ) -> Event:
        moved = transition_status(event, EventStatus.RESCHEDULED, actor, reason=reason)
        for field, old, new in (
            ("start_date", event.start_date, requested.start),
            ("end_date", event.end_date, requested.end),
        ):
            moved = record_change(
                moved, field, old.isoformat(), new.isoformat(), actor, reason=reason
            )
        moved = moved.model_copy(
            update={"start_date": requested.start, "end_date": requested.end}
        )

        active = self.repository.find_active_events_for_resources(scope)
        conflicts = find_conflicts(moved.interval, scope, active, exclude_event_id=event.id)
        if conflicts:
            raise ScheduleConflictError(
                conflicts, requested_start=requested.start, requested_end=requested.end
            )

        final = transition_status(moved, EventStatus.SCHEDULED, actor, reason=reason)
        return self.repository.update(event.id, _patch(final))
