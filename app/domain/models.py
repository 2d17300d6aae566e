"""Domain models for the scheduling core."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta, timezone
from enum import StrEnum
from typing import Annotated

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from app.domain.errors import InvalidIntervalError, InvalidRecurrenceError


class EventType(StrEnum):
    SERVICE_ORDER = "service_order"
    MAINTENANCE = "maintenance"
    PREVENTIVE_MAINTENANCE = "preventive_maintenance"
    INSTALLATION = "installation"
    TRAINING = "training"
    INSPECTION = "inspection"
    CUSTOM = "custom"


class EventStatus(StrEnum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


# Only these statuses count toward conflict checking.
ACTIVE_STATUSES = frozenset(
    {EventStatus.SCHEDULED, EventStatus.CONFIRMED, EventStatus.IN_PROGRESS}
)


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AssignmentRole(StrEnum):
    TECHNICIAN = "technician"
    SUPERVISOR = "supervisor"
    OPERATOR = "operator"
    RESPONSIBLE = "responsible"


class RecurrencePattern(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ResourceKind(StrEnum):
    PERSON = "person"
    EQUIPMENT = "equipment"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def assume_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so every stored instant is comparable."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(assume_utc)]


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


class Interval(BaseModel):
    """Half-open time range ``[start, end)``."""

    model_config = ConfigDict(frozen=True)

    start: UtcDatetime
    end: UtcDatetime

    @model_validator(mode="after")
    def _start_before_end(self) -> Interval:
        if self.start >= self.end:
            raise InvalidIntervalError(self.start, self.end)
        return self

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


class ResourceScope(BaseModel):
    """The people and equipment a conflict check is scoped to."""

    people: list[str] = Field(default_factory=list)
    equipment: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.people and not self.equipment

    def resource_ids(self) -> list[str]:
        return sorted(set(self.people) | set(self.equipment))


class ClientRef(BaseModel):
    id: str
    name: str


class Location(BaseModel):
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None


class PersonAssignment(BaseModel):
    person_id: str
    role: AssignmentRole = AssignmentRole.TECHNICIAN
    assigned_at: UtcDatetime | None = None
    notes: str | None = None


class EquipmentRequirement(BaseModel):
    equipment_id: str
    quantity: int = Field(default=1, ge=1)
    assigned_at: UtcDatetime | None = None
    notes: str | None = None


class Recurrence(BaseModel):
    enabled: bool = True
    pattern: RecurrencePattern
    interval: int = 1
    end_recurrence: UtcDatetime | None = None
    max_occurrences: int | None = None

    @field_validator("end_recurrence", mode="before")
    @classmethod
    def _date_covers_whole_day(cls, value: object) -> object:
        # a bare date ends the series after the last occurrence on that day
        if isinstance(value, str) and len(value) == 10:
            value = date.fromisoformat(value)
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime.combine(value, time.max, tzinfo=timezone.utc)
        return value


class ChangeRecord(BaseModel):
    field: str
    old_value: str | None = None
    new_value: str | None = None
    changed_by: str
    changed_at: UtcDatetime = Field(default_factory=_utcnow)
    reason: str | None = None


class Note(BaseModel):
    text: str
    author: str
    created_at: UtcDatetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Event
# ---------------------------------------------------------------------------


class Event(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str
    description: str = ""
    type: EventType
    start_date: UtcDatetime
    end_date: UtcDatetime
    all_day: bool = False
    status: EventStatus = EventStatus.SCHEDULED
    priority: Priority = Priority.MEDIUM
    assigned_to: list[PersonAssignment] = Field(default_factory=list)
    required_equipment: list[EquipmentRequirement] = Field(default_factory=list)
    recurrence: Recurrence | None = None
    parent_event_id: str | None = None
    client: ClientRef | None = None
    related_order_id: str | None = None
    related_equipment_id: str | None = None
    location: Location | None = None
    color: str | None = None
    tags: list[str] = Field(default_factory=list)
    notes: list[Note] = Field(default_factory=list)
    changes: list[ChangeRecord] = Field(default_factory=list)
    created_by: str = "system"
    created_at: UtcDatetime = Field(default_factory=_utcnow)
    updated_at: UtcDatetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _check_invariants(self) -> Event:
        if self.start_date >= self.end_date:
            raise InvalidIntervalError(self.start_date, self.end_date)
        if (
            self.parent_event_id is not None
            and self.recurrence is not None
            and self.recurrence.enabled
        ):
            raise InvalidRecurrenceError(
                "a generated occurrence cannot carry its own recurrence"
            )
        return self

    @property
    def duration(self) -> timedelta:
        return self.end_date - self.start_date

    @property
    def interval(self) -> Interval:
        """The range this event occupies for conflict purposes.

        All-day events block every calendar day they touch.
        """
        if not self.all_day:
            return Interval(start=self.start_date, end=self.end_date)
        tz = self.start_date.tzinfo
        start = datetime.combine(self.start_date.date(), time.min, tzinfo=tz)
        end = datetime.combine(self.end_date.date(), time.min, tzinfo=tz)
        if end < self.end_date or end <= start:
            end += timedelta(days=1)
        return Interval(start=start, end=end)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def person_ids(self) -> set[str]:
        return {a.person_id for a in self.assigned_to}

    @property
    def equipment_ids(self) -> set[str]:
        return {r.equipment_id for r in self.required_equipment}

    @property
    def resource_scope(self) -> ResourceScope:
        return ResourceScope(
            people=sorted(self.person_ids), equipment=sorted(self.equipment_ids)
        )


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class EventDraft(BaseModel):
    """Caller-supplied fields for a new event, before defaults are applied."""

    title: str | None = None
    description: str | None = None
    type: EventType
    start_date: UtcDatetime
    end_date: UtcDatetime
    all_day: bool = False
    priority: Priority = Priority.MEDIUM
    assigned_to: list[PersonAssignment] = Field(default_factory=list)
    required_equipment: list[EquipmentRequirement] = Field(default_factory=list)
    recurrence: Recurrence | None = None
    client: ClientRef | None = None
    related_order_id: str | None = None
    related_equipment_id: str | None = None
    location: Location | None = None
    color: str | None = None
    tags: list[str] = Field(default_factory=list)


class ResourceRef(BaseModel):
    kind: ResourceKind
    id: str
    quantity: int = Field(default=1, ge=1)
    role: AssignmentRole = AssignmentRole.TECHNICIAN
    notes: str | None = None


class AssignEquipmentRequest(BaseModel):
    equipment_id: str
    quantity: int = Field(default=1, ge=1)
    notes: str | None = None


class AssignPersonRequest(BaseModel):
    person_id: str
    role: AssignmentRole = AssignmentRole.TECHNICIAN
    notes: str | None = None


class StatusChangeRequest(BaseModel):
    status: EventStatus
    reason: str | None = None
    notes: str | None = None


class RescheduleRequest(BaseModel):
    start_date: UtcDatetime
    end_date: UtcDatetime
    reason: str | None = None


class ConflictCheckRequest(BaseModel):
    start: UtcDatetime
    end: UtcDatetime
    people: list[str] = Field(default_factory=list)
    equipment: list[str] = Field(default_factory=list)
    exclude_event_id: str | None = None


class EventFilters(BaseModel):
    """Optional narrowing applied to calendar listings."""

    type: EventType | None = None
    status: list[EventStatus] = Field(default_factory=list)
    assigned_to: str | None = None
    client_id: str | None = None
    priority: Priority | None = None

    def matches(self, event: Event) -> bool:
        if self.type is not None and event.type != self.type:
            return False
        if self.status and event.status not in self.status:
            return False
        if self.assigned_to is not None and self.assigned_to not in event.person_ids:
            return False
        if self.client_id is not None and (
            event.client is None or event.client.id != self.client_id
        ):
            return False
        if self.priority is not None and event.priority != self.priority:
            return False
        return True


class ConflictCheckResponse(BaseModel):
    has_conflicts: bool
    conflicts: list[Event] = Field(default_factory=list)


class CreateEventResponse(BaseModel):
    event: Event
    occurrences: list[Event] = Field(default_factory=list)


class AvailabilityResponse(BaseModel):
    resource_id: str
    range_start: UtcDatetime
    range_end: UtcDatetime
    busy_intervals: list[Interval]
    is_free: bool


class FreeResourcesResponse(BaseModel):
    kind: ResourceKind
    range_start: UtcDatetime
    range_end: UtcDatetime
    free: list[str]


class UpcomingEventsResponse(BaseModel):
    events: list[Event]
    period_start: UtcDatetime
    period_end: UtcDatetime
    days: int
    total: int
