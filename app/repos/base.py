"""Persistence contract consumed by the scheduling core."""

from __future__ import annotations

from typing import Any, Protocol

from app.domain.models import Event, EventFilters, Interval, ResourceKind, ResourceScope


class EventRepository(Protocol):
    """Any store satisfying this interface can back the scheduling service.

    Lookups of unknown events or resources raise ``ResourceNotFoundError``.
    """

    def get(self, event_id: str) -> Event: ...

    def list_all(self) -> list[Event]: ...

    def list_children(self, parent_id: str) -> list[Event]: ...

    def find_by_date_range(
        self, window: Interval, filters: EventFilters | None = None
    ) -> list[Event]:
        """Events overlapping *window* that satisfy *filters*, ordered by start."""
        ...

    def find_active_events_for_resources(self, resources: ResourceScope) -> list[Event]:
        """Active events booking at least one of *resources*."""
        ...

    def insert(self, event: Event) -> Event: ...

    def update(self, event_id: str, patch: dict[str, Any]) -> Event: ...

    def ensure_resources_exist(self, resources: ResourceScope) -> None: ...

    def list_resource_ids(self, kind: ResourceKind) -> list[str]: ...
