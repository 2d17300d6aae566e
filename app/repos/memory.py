"""In-memory event repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from app.domain.errors import ResourceNotFoundError
from app.domain.models import (
    ClientRef,
    EquipmentRequirement,
    Event,
    EventFilters,
    EventType,
    Interval,
    ResourceKind,
    ResourceScope,
)
from app.services.intervals import overlaps


class InMemoryEventRepository:
    """Dict-backed store for Event instances, keyed by id.

    People and equipment must be registered before events may reference them,
    unless the repository was created with ``strict_resources=False``.
    """

    def __init__(self, strict_resources: bool = True) -> None:
        self._store: dict[str, Event] = {}
        self._people: set[str] = set()
        self._equipment: set[str] = set()
        self.strict_resources = strict_resources

    # -- resource registry ---------------------------------------------------

    def register_person(self, person_id: str) -> None:
        self._people.add(person_id)

    def register_equipment(self, equipment_id: str) -> None:
        self._equipment.add(equipment_id)

    def ensure_resources_exist(self, resources: ResourceScope) -> None:
        if not self.strict_resources:
            return
        for person_id in resources.people:
            if person_id not in self._people:
                raise ResourceNotFoundError("person", person_id)
        for equipment_id in resources.equipment:
            if equipment_id not in self._equipment:
                raise ResourceNotFoundError("equipment", equipment_id)

    def list_resource_ids(self, kind: ResourceKind) -> list[str]:
        ids = self._equipment if kind == ResourceKind.EQUIPMENT else self._people
        return sorted(ids)

    # -- events ----------------------------------------------------------------

    def get(self, event_id: str) -> Event:
        event = self._store.get(event_id)
        if event is None:
            raise ResourceNotFoundError("event", event_id)
        return event

    def list_all(self) -> list[Event]:
        return sorted(self._store.values(), key=lambda e: e.start_date)

    def list_children(self, parent_id: str) -> list[Event]:
        """Return all occurrences belonging to a recurring series."""
        return sorted(
            (e for e in self._store.values() if e.parent_event_id == parent_id),
            key=lambda e: e.start_date,
        )

    def find_by_date_range(
        self, window: Interval, filters: EventFilters | None = None
    ) -> list[Event]:
        """Return events overlapping *window*, narrowed by *filters*."""
        return [
            e
            for e in self.list_all()
            if overlaps(e.interval, window) and (filters is None or filters.matches(e))
        ]

    def find_active_events_for_resources(self, resources: ResourceScope) -> list[Event]:
        people = set(resources.people)
        equipment = set(resources.equipment)
        return [
            e
            for e in self._store.values()
            if e.is_active and (e.person_ids & people or e.equipment_ids & equipment)
        ]

    def insert(self, event: Event) -> Event:
        self._store[event.id] = event
        return event

    def update(self, event_id: str, patch: dict[str, Any]) -> Event:
        current = self.get(event_id)
        data = current.model_dump()
        data.update(patch)
        data["id"] = current.id
        updated = Event.model_validate(data)
        self._store[event_id] = updated
        return updated


# ---------------------------------------------------------------------------
# Seed data: the equipment-assignment scenario of the tree-care crew
# ---------------------------------------------------------------------------

DEMO_EQUIPMENT = {
    "E1": "Chainsaw STIHL MS180",
    "E2": "Pole pruner Husqvarna P525D",
    "E3": "Brush cutter ECHO SRM225",
    "E4": "Wood chipper Vermeer BC1000XL",
}

DEMO_PEOPLE = ("T1", "T2")


def _seed_events(repo: InMemoryEventRepository) -> None:
    assigned_at = datetime(2025, 9, 6, 10, 0, tzinfo=timezone.utc)

    repo.insert(
        Event(
            id="O1",
            title="Tree pruning",
            type=EventType.SERVICE_ORDER,
            start_date=datetime(2025, 9, 7, 8, 0, tzinfo=timezone.utc),
            end_date=datetime(2025, 9, 7, 16, 0, tzinfo=timezone.utc),
            client=ClientRef(id="C1", name="João Silva"),
            related_order_id="O1",
            required_equipment=[
                EquipmentRequirement(
                    equipment_id="E1",
                    assigned_at=assigned_at,
                    notes="Main pruning equipment",
                )
            ],
        )
    )
    repo.insert(
        Event(
            id="O2",
            title="Grass cutting",
            type=EventType.SERVICE_ORDER,
            start_date=datetime(2025, 9, 7, 14, 0, tzinfo=timezone.utc),
            end_date=datetime(2025, 9, 7, 18, 0, tzinfo=timezone.utc),
            client=ClientRef(id="C2", name="Maria Santos"),
            related_order_id="O2",
            required_equipment=[
                EquipmentRequirement(
                    equipment_id="E3",
                    assigned_at=assigned_at.replace(hour=15),
                    notes="Residential area cutting",
                )
            ],
        )
    )


def create_event_repository() -> InMemoryEventRepository:
    """Return a repository pre-loaded with sample resources and orders."""
    repo = InMemoryEventRepository()
    for equipment_id in DEMO_EQUIPMENT:
        repo.register_equipment(equipment_id)
    for person_id in DEMO_PEOPLE:
        repo.register_person(person_id)
    _seed_events(repo)
    return repo
