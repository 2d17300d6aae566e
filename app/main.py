"""FastAPI application — entry point for the scheduling service."""

from __future__ import annotations

from datetime import datetime

from fastapi import FastAPI, Header, HTTPException, Path, Query, Request
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.domain.errors import (
    InvalidIntervalError,
    InvalidRecurrenceError,
    InvalidStatusTransitionError,
    ResourceNotFoundError,
    ScheduleConflictError,
    SchedulingError,
)
from app.domain.models import (
    AssignEquipmentRequest,
    AssignPersonRequest,
    AvailabilityResponse,
    ConflictCheckRequest,
    ConflictCheckResponse,
    CreateEventResponse,
    Event,
    EventDraft,
    EventFilters,
    EventStatus,
    EventType,
    FreeResourcesResponse,
    Interval,
    Priority,
    RescheduleRequest,
    ResourceKind,
    ResourceRef,
    ResourceScope,
    StatusChangeRequest,
    UpcomingEventsResponse,
)
from app.logging import setup_logging
from app.repos.memory import InMemoryEventRepository, create_event_repository
from app.services.locks import ResourceLockRegistry
from app.services.scheduling import SchedulingService

settings = get_settings()
setup_logging(settings.log_level)

app = FastAPI(title=settings.app_name)

# ── Singletons (created at import time for simplicity) ────────────────
event_repo: InMemoryEventRepository = (
    create_event_repository() if settings.seed_demo_data else InMemoryEventRepository()
)
resource_locks = ResourceLockRegistry()
scheduler = SchedulingService(event_repo, resource_locks, settings)

_STATUS_CODES: dict[type[SchedulingError], int] = {
    InvalidIntervalError: 422,
    InvalidRecurrenceError: 422,
    ResourceNotFoundError: 404,
    ScheduleConflictError: 409,
    InvalidStatusTransitionError: 409,
}


@app.exception_handler(SchedulingError)
def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    """Translate domain failures into HTTP responses."""
    status_code = _STATUS_CODES.get(type(exc), 400)
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


# ── Routes ────────────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/events", response_model=CreateEventResponse, status_code=201)
def create_event(
    draft: EventDraft, x_actor: str | None = Header(default=None)
) -> CreateEventResponse:
    """Create an event, expanding its recurrence into occurrences."""
    event, occurrences = scheduler.create_event(draft, actor=x_actor)
    return CreateEventResponse(event=event, occurrences=occurrences)


@app.get("/events", response_model=list[Event])
def list_events(
    start: datetime | None = None,
    end: datetime | None = None,
    type: EventType | None = None,
    status: list[EventStatus] | None = Query(default=None),
    assigned_to: str | None = None,
    client_id: str | None = None,
    priority: Priority | None = None,
) -> list[Event]:
    """Return events ordered by start, optionally within [start, end) and filtered."""
    if (start is None) != (end is None):
        raise HTTPException(status_code=422, detail="start and end must be given together")
    window = Interval(start=start, end=end) if start is not None else None
    filters = EventFilters(
        type=type,
        status=status or [],
        assigned_to=assigned_to,
        client_id=client_id,
        priority=priority,
    )
    return scheduler.list_events(window, filters)


@app.get("/events/upcoming/{days}", response_model=UpcomingEventsResponse)
def upcoming_events(days: int = Path(ge=1)) -> UpcomingEventsResponse:
    """Events starting in the next *days* days, cancelled ones excluded."""
    period, events = scheduler.upcoming_events(days)
    return UpcomingEventsResponse(
        events=events,
        period_start=period.start,
        period_end=period.end,
        days=days,
        total=len(events),
    )


@app.get("/events/{event_id}", response_model=Event)
def get_event(event_id: str) -> Event:
    return event_repo.get(event_id)


@app.get("/events/{event_id}/occurrences", response_model=list[Event])
def list_occurrences(event_id: str) -> list[Event]:
    """Return a recurring event followed by its generated occurrences."""
    return scheduler.list_series(event_id)


@app.post("/events/{event_id}/status", response_model=Event)
def change_status(
    event_id: str, body: StatusChangeRequest, x_actor: str | None = Header(default=None)
) -> Event:
    return scheduler.change_status(
        event_id, body.status, actor=x_actor, reason=body.reason, note=body.notes
    )


@app.post("/events/{event_id}/reschedule", response_model=Event)
def reschedule_event(
    event_id: str, body: RescheduleRequest, x_actor: str | None = Header(default=None)
) -> Event:
    return scheduler.reschedule(
        event_id, body.start_date, body.end_date, actor=x_actor, reason=body.reason
    )


@app.post("/events/{event_id}/equipment", response_model=Event)
def assign_equipment(
    event_id: str, body: AssignEquipmentRequest, x_actor: str | None = Header(default=None)
) -> Event:
    """Book a piece of equipment for the event, rejecting double bookings."""
    ref = ResourceRef(
        kind=ResourceKind.EQUIPMENT,
        id=body.equipment_id,
        quantity=body.quantity,
        notes=body.notes,
    )
    return scheduler.assign_resource(event_id, ref, actor=x_actor)


@app.post("/events/{event_id}/people", response_model=Event)
def assign_person(
    event_id: str, body: AssignPersonRequest, x_actor: str | None = Header(default=None)
) -> Event:
    """Assign a technician to the event, rejecting double bookings."""
    ref = ResourceRef(
        kind=ResourceKind.PERSON, id=body.person_id, role=body.role, notes=body.notes
    )
    return scheduler.assign_resource(event_id, ref, actor=x_actor)


@app.post("/conflicts/check", response_model=ConflictCheckResponse)
def check_conflicts(body: ConflictCheckRequest) -> ConflictCheckResponse:
    conflicts = scheduler.check_conflicts(
        Interval(start=body.start, end=body.end),
        ResourceScope(people=body.people, equipment=body.equipment),
        exclude_event_id=body.exclude_event_id,
    )
    return ConflictCheckResponse(has_conflicts=bool(conflicts), conflicts=conflicts)


@app.get("/availability/{resource_id}", response_model=AvailabilityResponse)
def get_availability(resource_id: str, start: datetime, end: datetime) -> AvailabilityResponse:
    """Report when a person or piece of equipment is busy within a range."""
    availability = scheduler.query_availability(resource_id, start, end)
    return AvailabilityResponse(
        resource_id=resource_id,
        range_start=start,
        range_end=end,
        busy_intervals=availability.busy_intervals,
        is_free=availability.is_free_for_interval(availability.window),
    )


@app.get("/availability", response_model=FreeResourcesResponse)
def get_free_resources(
    start: datetime, end: datetime, kind: ResourceKind = ResourceKind.EQUIPMENT
) -> FreeResourcesResponse:
    """List registered people or equipment with nothing booked in the range."""
    free = scheduler.free_resources(kind, start, end)
    return FreeResourcesResponse(kind=kind, range_start=start, range_end=end, free=free)
