"""Builds Events from drafts, applying business defaults at creation time."""

from __future__ import annotations

from datetime import datetime, timezone

from app.domain.models import Event, EventDraft, EventType

DEFAULT_COLOR = "#6B7280"

TYPE_COLORS: dict[EventType, str] = {
    EventType.SERVICE_ORDER: "#3B82F6",
    EventType.MAINTENANCE: "#F59E0B",
    EventType.PREVENTIVE_MAINTENANCE: "#EF4444",
    EventType.INSTALLATION: "#10B981",
    EventType.TRAINING: "#8B5CF6",
    EventType.INSPECTION: "#F97316",
    EventType.CUSTOM: DEFAULT_COLOR,
}

_PREVENTIVE_TITLE = "Preventive maintenance"
_PREVENTIVE_DESCRIPTION = "Preventive maintenance generated automatically"


def build_event(draft: EventDraft, actor: str, now: datetime | None = None) -> Event:
    """Turn a draft into an Event.

    Fills the type color when none is given. Preventive maintenance tied to a
    piece of equipment gets a default title and description. Raises
    ``InvalidIntervalError`` if the draft's start is not before its end.
    """
    created_at = now or datetime.now(timezone.utc)
    title = draft.title
    description = draft.description
    if draft.type == EventType.PREVENTIVE_MAINTENANCE and draft.related_equipment_id:
        title = title or _PREVENTIVE_TITLE
        description = description or _PREVENTIVE_DESCRIPTION

    fields = draft.model_dump(exclude={"title", "description", "color"})
    return Event(
        **fields,
        title=title or draft.type.replace("_", " ").capitalize(),
        description=description or "",
        color=draft.color or TYPE_COLORS.get(draft.type, DEFAULT_COLOR),
        created_by=actor,
        created_at=created_at,
        updated_at=created_at,
    )
