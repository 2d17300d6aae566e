"""Tests for the scheduling service over an in-memory repository."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from app.config import Settings
from app.domain.errors import (
    InvalidIntervalError,
    InvalidRecurrenceError,
    InvalidStatusTransitionError,
    ResourceNotFoundError,
    ScheduleConflictError,
)
from app.domain.models import (
    EquipmentRequirement,
    EventDraft,
    EventFilters,
    EventStatus,
    EventType,
    Interval,
    PersonAssignment,
    Recurrence,
    RecurrencePattern,
    ResourceKind,
    ResourceRef,
    ResourceScope,
)
from app.repos.memory import InMemoryEventRepository
from app.services.locks import ResourceLockRegistry
from app.services.scheduling import SchedulingService

_DAY = datetime(2026, 4, 6, tzinfo=timezone.utc)


def _at(hour: int, days: int = 0) -> datetime:
    return _DAY + timedelta(days=days, hours=hour)


@pytest.fixture()
def repo():
    repo = InMemoryEventRepository()
    for person_id in ("T1", "T2"):
        repo.register_person(person_id)
    for equipment_id in ("E1", "E2"):
        repo.register_equipment(equipment_id)
    return repo


@pytest.fixture()
def service(repo):
    return SchedulingService(
        repo, ResourceLockRegistry(), Settings(max_generated_occurrences=50)
    )


def _draft(start: datetime, end: datetime, people=("T1",), equipment=(), **overrides) -> EventDraft:
    defaults = dict(
        title="Crown reduction",
        type=EventType.SERVICE_ORDER,
        start_date=start,
        end_date=end,
        assigned_to=[PersonAssignment(person_id=p) for p in people],
        required_equipment=[EquipmentRequirement(equipment_id=e) for e in equipment],
    )
    defaults.update(overrides)
    return EventDraft(**defaults)


# ---------------------------------------------------------------------------
# create_event
# ---------------------------------------------------------------------------


def test_create_one_off_event(service, repo):
    event, occurrences = service.create_event(_draft(_at(9), _at(11)), actor="office")

    assert occurrences == []
    assert repo.get(event.id) == event
    assert event.status == EventStatus.SCHEDULED
    assert event.created_by == "office"
    assert event.color == "#3B82F6"


def test_create_applies_type_defaults(service, repo):
    repo.register_equipment("E9")
    event, _ = service.create_event(
        _draft(
            _at(9),
            _at(10),
            people=(),
            title=None,
            type=EventType.PREVENTIVE_MAINTENANCE,
            related_equipment_id="E9",
        )
    )
    assert event.title == "Preventive maintenance"
    assert event.description
    assert event.color == "#EF4444"
    assert event.created_by == "system"


def test_create_rejects_invalid_interval(service, repo):
    with pytest.raises(InvalidIntervalError):
        service.create_event(_draft(_at(11), _at(9)))
    assert repo.list_all() == []


def test_create_rejects_overlapping_booking(service, repo):
    existing, _ = service.create_event(_draft(_at(9), _at(12)))

    with pytest.raises(ScheduleConflictError) as exc_info:
        service.create_event(_draft(_at(11), _at(13)))

    assert [c.id for c in exc_info.value.conflicts] == [existing.id]
    assert len(repo.list_all()) == 1


def test_create_back_to_back_is_allowed(service, repo):
    service.create_event(_draft(_at(9), _at(12)))
    service.create_event(_draft(_at(12), _at(13)))
    assert len(repo.list_all()) == 2


def test_create_without_shared_resources_is_allowed(service, repo):
    service.create_event(_draft(_at(9), _at(12), people=("T1",)))
    service.create_event(_draft(_at(9), _at(12), people=("T2",), equipment=("E1",)))
    assert len(repo.list_all()) == 2


def test_create_rejects_unknown_resource(service, repo):
    with pytest.raises(ResourceNotFoundError) as exc_info:
        service.create_event(_draft(_at(9), _at(10), equipment=("E404",)))
    assert exc_info.value.kind == "equipment"
    assert repo.list_all() == []


def test_create_recurring_persists_series(service, repo):
    recurrence = Recurrence(pattern=RecurrencePattern.WEEKLY, max_occurrences=3)
    event, occurrences = service.create_event(
        _draft(_at(9), _at(11), recurrence=recurrence)
    )

    assert len(occurrences) == 2
    series = service.list_series(event.id)
    assert [e.start_date for e in series] == [_at(9), _at(9, days=7), _at(9, days=14)]
    assert len(repo.list_all()) == 3


def test_create_recurring_rejects_unbounded(service, repo):
    with pytest.raises(InvalidRecurrenceError):
        service.create_event(
            _draft(_at(9), _at(11), recurrence=Recurrence(pattern=RecurrencePattern.DAILY))
        )
    assert repo.list_all() == []


def test_create_recurring_respects_configured_cap(service):
    recurrence = Recurrence(pattern=RecurrencePattern.DAILY, max_occurrences=500)
    with pytest.raises(InvalidRecurrenceError):
        service.create_event(_draft(_at(9), _at(11), recurrence=recurrence))


def test_series_conflicting_in_later_week_is_rejected_whole(service, repo):
    blocker, _ = service.create_event(_draft(_at(10, days=14), _at(11, days=14)))
    recurrence = Recurrence(pattern=RecurrencePattern.WEEKLY, max_occurrences=4)

    with pytest.raises(ScheduleConflictError) as exc_info:
        service.create_event(_draft(_at(9), _at(11), recurrence=recurrence))

    assert [c.id for c in exc_info.value.conflicts] == [blocker.id]
    assert exc_info.value.requested_start == _at(9, days=14)
    assert exc_info.value.requested_end == _at(11, days=14)
    assert "2026-04-20" in str(exc_info.value)
    assert repo.list_all() == [blocker]


def test_series_overlapping_itself_is_rejected(service, repo):
    recurrence = Recurrence(pattern=RecurrencePattern.DAILY, max_occurrences=2)
    with pytest.raises(ScheduleConflictError):
        service.create_event(_draft(_at(9), _at(9, days=2), recurrence=recurrence))
    assert repo.list_all() == []


# ---------------------------------------------------------------------------
# assign_resource / check_conflicts
# ---------------------------------------------------------------------------


def test_assign_resource_persists(service, repo):
    event, _ = service.create_event(_draft(_at(9), _at(11)))
    updated = service.assign_resource(
        event.id, ResourceRef(kind=ResourceKind.EQUIPMENT, id="E1", quantity=2)
    )
    assert repo.get(event.id).equipment_ids == {"E1"}
    assert updated.required_equipment[0].quantity == 2


def test_assign_resource_conflict_leaves_event_untouched(service, repo):
    service.create_event(_draft(_at(9), _at(11), people=("T2",), equipment=("E1",)))
    event, _ = service.create_event(_draft(_at(10), _at(12)))

    with pytest.raises(ScheduleConflictError):
        service.assign_resource(event.id, ResourceRef(kind=ResourceKind.EQUIPMENT, id="E1"))
    assert repo.get(event.id).equipment_ids == set()


def test_assign_resource_unknown_event(service):
    with pytest.raises(ResourceNotFoundError) as exc_info:
        service.assign_resource("missing", ResourceRef(kind=ResourceKind.PERSON, id="T1"))
    assert exc_info.value.kind == "event"


def test_concurrent_assignments_book_resource_once(service, repo):
    first, _ = service.create_event(_draft(_at(9), _at(12), people=("T1",)))
    second, _ = service.create_event(_draft(_at(10), _at(13), people=("T2",)))
    ref = ResourceRef(kind=ResourceKind.EQUIPMENT, id="E2")

    def attempt(event_id: str) -> bool:
        try:
            service.assign_resource(event_id, ref)
        except ScheduleConflictError:
            return False
        return True

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = list(pool.map(attempt, [first.id, second.id]))

    assert sorted(outcomes) == [False, True]
    holders = [e for e in repo.list_all() if "E2" in e.equipment_ids]
    assert len(holders) == 1


def test_check_conflicts_self_exclusion(service):
    event, _ = service.create_event(_draft(_at(9), _at(11)))
    scope = ResourceScope(people=["T1"])
    assert service.check_conflicts(event.interval, scope) == [event]
    assert service.check_conflicts(event.interval, scope, exclude_event_id=event.id) == []


# ---------------------------------------------------------------------------
# change_status / reschedule
# ---------------------------------------------------------------------------


def test_change_status_persists(service, repo):
    event, _ = service.create_event(_draft(_at(9), _at(11)))
    service.change_status(event.id, EventStatus.CONFIRMED, actor="office", note="Called client")

    stored = repo.get(event.id)
    assert stored.status == EventStatus.CONFIRMED
    assert stored.notes[0].text == "Called client"
    assert stored.changes[-1].changed_by == "office"


def test_change_status_cannot_set_rescheduled_directly(service):
    event, _ = service.create_event(_draft(_at(9), _at(11)))
    with pytest.raises(InvalidStatusTransitionError):
        service.change_status(event.id, EventStatus.RESCHEDULED)


def test_cancelled_event_no_longer_blocks(service):
    event, _ = service.create_event(_draft(_at(9), _at(11)))
    service.change_status(event.id, EventStatus.CANCELLED)
    other, _ = service.create_event(_draft(_at(9), _at(11)))
    assert other.id != event.id


def test_reschedule_to_free_slot(service, repo):
    event, _ = service.create_event(_draft(_at(9), _at(11)))
    service.change_status(event.id, EventStatus.CONFIRMED)

    moved = service.reschedule(event.id, _at(14), _at(16), actor="office", reason="rain")

    assert moved.status == EventStatus.SCHEDULED
    assert moved.start_date == _at(14)
    assert moved.end_date == _at(16)
    fields = [(c.field, c.new_value) for c in moved.changes]
    assert ("status", "rescheduled") in fields
    assert ("start_date", _at(14).isoformat()) in fields
    assert fields[-1] == ("status", "scheduled")
    assert repo.get(event.id) == moved


def test_reschedule_into_conflict_keeps_original(service, repo):
    service.create_event(_draft(_at(14), _at(16)))
    event, _ = service.create_event(_draft(_at(9), _at(11)))

    with pytest.raises(ScheduleConflictError):
        service.reschedule(event.id, _at(15), _at(17))

    stored = repo.get(event.id)
    assert stored.start_date == _at(9)
    assert stored.status == EventStatus.SCHEDULED
    assert stored.changes == []


def test_reschedule_can_overlap_its_own_old_slot(service):
    event, _ = service.create_event(_draft(_at(9), _at(11)))
    moved = service.reschedule(event.id, _at(10), _at(12))
    assert moved.interval == Interval(start=_at(10), end=_at(12))


def test_reschedule_rejects_invalid_interval(service):
    event, _ = service.create_event(_draft(_at(9), _at(11)))
    with pytest.raises(InvalidIntervalError):
        service.reschedule(event.id, _at(12), _at(10))


def test_reschedule_completed_event_is_rejected(service):
    event, _ = service.create_event(_draft(_at(9), _at(11)))
    for status in (EventStatus.CONFIRMED, EventStatus.IN_PROGRESS, EventStatus.COMPLETED):
        service.change_status(event.id, status)
    with pytest.raises(InvalidStatusTransitionError):
        service.reschedule(event.id, _at(12), _at(13))


class _InterleavingRepository(InMemoryEventRepository):
    """Runs ``on_next_get`` once, right after the next ``get`` has read its event."""

    on_next_get = None

    def get(self, event_id: str):
        event = super().get(event_id)
        hook, self.on_next_get = self.on_next_get, None
        if hook is not None:
            hook()
        return event


def test_reschedule_checks_resources_assigned_after_first_read():
    repo = _InterleavingRepository()
    for person_id in ("T1", "T2"):
        repo.register_person(person_id)
    repo.register_equipment("E1")
    service = SchedulingService(repo, ResourceLockRegistry(), Settings())

    blocker, _ = service.create_event(
        _draft(_at(14), _at(16), people=("T2",), equipment=("E1",))
    )
    event, _ = service.create_event(_draft(_at(9), _at(11)))

    # E1 lands on the event between the unlocked read and the locked re-read
    repo.on_next_get = lambda: service.assign_resource(
        event.id, ResourceRef(kind=ResourceKind.EQUIPMENT, id="E1")
    )

    with pytest.raises(ScheduleConflictError) as exc_info:
        service.reschedule(event.id, _at(15), _at(17))

    assert [c.id for c in exc_info.value.conflicts] == [blocker.id]
    stored = repo.get(event.id)
    assert stored.equipment_ids == {"E1"}
    assert stored.start_date == _at(9)
    afternoon = service.query_availability("E1", _at(12), _at(18))
    assert afternoon.busy_intervals == [Interval(start=_at(14), end=_at(16))]


# ---------------------------------------------------------------------------
# Naive datetimes
# ---------------------------------------------------------------------------


def test_naive_draft_is_treated_as_utc(service, repo):
    existing, _ = service.create_event(_draft(_at(9), _at(12)))
    naive_start = _at(11).replace(tzinfo=None)
    naive_end = _at(13).replace(tzinfo=None)

    with pytest.raises(ScheduleConflictError) as exc_info:
        service.create_event(_draft(naive_start, naive_end))
    assert [c.id for c in exc_info.value.conflicts] == [existing.id]

    event, _ = service.create_event(
        _draft(_at(12).replace(tzinfo=None), _at(13).replace(tzinfo=None))
    )
    assert event.start_date == _at(12)
    assert event.start_date.tzinfo is not None


def test_naive_availability_bounds(service):
    service.create_event(_draft(_at(9), _at(12)))
    availability = service.query_availability(
        "T1", _at(0).replace(tzinfo=None), _at(10).replace(tzinfo=None)
    )
    assert availability.busy_intervals == [Interval(start=_at(9), end=_at(10))]


def test_naive_reschedule_is_treated_as_utc(service):
    event, _ = service.create_event(_draft(_at(9), _at(11)))
    moved = service.reschedule(
        event.id, _at(14).replace(tzinfo=None), _at(15).replace(tzinfo=None)
    )
    assert moved.start_date == _at(14)
    assert moved.start_date.tzinfo is not None


# ---------------------------------------------------------------------------
# Listings and free resources
# ---------------------------------------------------------------------------


def test_list_events_by_range_and_filters(service):
    morning, _ = service.create_event(_draft(_at(9), _at(11)))
    afternoon, _ = service.create_event(
        _draft(_at(14), _at(16), people=("T2",), type=EventType.INSPECTION)
    )
    next_day, _ = service.create_event(_draft(_at(9, days=1), _at(10, days=1)))

    day = Interval(start=_at(0), end=_at(24))
    assert service.list_events(day) == [morning, afternoon]
    assert service.list_events(day, EventFilters(type=EventType.INSPECTION)) == [afternoon]
    assert service.list_events(None, EventFilters(assigned_to="T1")) == [morning, next_day]

    service.change_status(morning.id, EventStatus.CANCELLED)
    cancelled = service.list_events(day, EventFilters(status=[EventStatus.CANCELLED]))
    assert [e.id for e in cancelled] == [morning.id]


def test_list_events_range_is_half_open(service):
    event, _ = service.create_event(_draft(_at(9), _at(11)))
    assert service.list_events(Interval(start=_at(11), end=_at(12))) == []
    assert service.list_events(Interval(start=_at(10), end=_at(12))) == [event]


def test_upcoming_events(service):
    soon, _ = service.create_event(_draft(_at(9, days=2), _at(10, days=2)))
    later, _ = service.create_event(_draft(_at(9, days=20), _at(10, days=20)))
    cancelled, _ = service.create_event(_draft(_at(12, days=3), _at(13, days=3)))
    service.change_status(cancelled.id, EventStatus.CANCELLED)
    service.create_event(_draft(_at(8), _at(10)))  # already started

    period, events = service.upcoming_events(7, now=_at(9))

    assert period == Interval(start=_at(9), end=_at(9, days=7))
    assert events == [soon]
    assert later not in events


def test_free_resources_over_registered_equipment(service):
    service.create_event(_draft(_at(9), _at(12), people=("T2",), equipment=("E1",)))

    assert service.free_resources(ResourceKind.EQUIPMENT, _at(10), _at(11)) == ["E2"]
    assert service.free_resources(ResourceKind.EQUIPMENT, _at(12), _at(13)) == ["E1", "E2"]
    assert service.free_resources(ResourceKind.PERSON, _at(10), _at(11)) == ["T1"]
