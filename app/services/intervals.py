"""Interval overlap predicate shared by every scheduling service."""

from __future__ import annotations

from app.domain.models import Interval


def overlaps(a: Interval, b: Interval) -> bool:
    """Return True if the half-open ranges ``[a.start, a.end)`` and
    ``[b.start, b.end)`` share at least one instant.

    Exact boundary touches (a.end == b.start) are NOT overlaps.
    """
    return a.start < b.end and b.start < a.end


def clip(interval: Interval, window: Interval) -> Interval | None:
    """Truncate *interval* to *window*, or None if they do not overlap."""
    if not overlaps(interval, window):
        return None
    return Interval(
        start=max(interval.start, window.start), end=min(interval.end, window.end)
    )
