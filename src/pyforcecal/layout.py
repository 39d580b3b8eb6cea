"""Side-by-side column layout for overlapping timed events.

Given the timed events of one time-grid column (one day), assign each a
column index and the column count of its overlap cluster, so concurrent
events render next to each other at equal width.  This is greedy interval
graph coloring: sort by start (longer first on ties), place each interval
in the lowest free column, then size every cluster by the highest column
it used.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, time
from typing import Protocol, TypeVar

from pyforcecal.models._base import align_awareness

_MINUTES_PER_DAY = 24 * 60


class TimedEvent(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def start(self) -> datetime: ...

    @property
    def end(self) -> datetime: ...


class _DayEvent(TimedEvent, Protocol):
    @property
    def all_day(self) -> bool: ...


E = TypeVar("E", bound=_DayEvent)


@dataclass(frozen=True, slots=True)
class OverlapLayoutEntry:
    column: int
    total_columns: int


@dataclass(slots=True)
class _Interval:
    id: str
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


def _to_interval(event: TimedEvent) -> _Interval:
    start = event.start
    start_minute = start.hour * 60 + start.minute
    day_start = datetime.combine(start.date(), time.min, tzinfo=start.tzinfo)
    end = align_awareness(event.end, start)
    end_minute = int((end - day_start).total_seconds() // 60)
    end_minute = min(end_minute, _MINUTES_PER_DAY)
    # Zero-length events still occupy a column.
    return _Interval(event.id, start_minute, max(start_minute + 1, end_minute))


def compute_overlap_layout(events: Iterable[TimedEvent]) -> dict[str, OverlapLayoutEntry]:
    """Map each event id to its ``OverlapLayoutEntry``.

    Events that overlap in time never share a column, and every event of
    one overlap cluster gets the same ``total_columns``.  End times past
    the start's day are clamped to midnight.
    A naive end paired with an aware start is read in the start's zone.

    Raises
    ------
    ValueError
        If two events share an id.
    """
    intervals: list[_Interval] = []
    seen: set[str] = set()
    for event in events:
        if event.id in seen:
            raise ValueError(f"Duplicate event id {event.id!r} in overlap layout")
        seen.add(event.id)
        intervals.append(_to_interval(event))
    intervals.sort(key=lambda iv: (iv.start, -iv.length))
    if not intervals:
        return {}

    # Greedy placement: each column remembers when its last event ends.
    column_ends: list[int] = []
    columns: dict[str, int] = {}
    for iv in intervals:
        for index, occupied_until in enumerate(column_ends):
            if occupied_until <= iv.start:
                column_ends[index] = iv.end
                columns[iv.id] = index
                break
        else:
            columns[iv.id] = len(column_ends)
            column_ends.append(iv.end)

    layout: dict[str, OverlapLayoutEntry] = {}
    for cluster in _clusters(intervals):
        total = max(columns[iv.id] for iv in cluster) + 1
        for iv in cluster:
            layout[iv.id] = OverlapLayoutEntry(column=columns[iv.id], total_columns=total)
    return layout


def _clusters(intervals: Sequence[_Interval]) -> list[list[_Interval]]:
    """Split start-sorted intervals into runs that transitively overlap."""
    clusters: list[list[_Interval]] = []
    current: list[_Interval] = []
    cluster_end = 0
    for iv in intervals:
        if current and iv.start < cluster_end:
            current.append(iv)
            cluster_end = max(cluster_end, iv.end)
            continue
        if current:
            clusters.append(current)
        current = [iv]
        cluster_end = iv.end
    if current:
        clusters.append(current)
    return clusters


def partition_day_events(events: Iterable[E]) -> tuple[list[E], list[E]]:
    """Split a day's events into ``(timed, all_day)``.

    Only the timed list belongs in :func:`compute_overlap_layout`.
    """
    timed: list[E] = []
    all_day: list[E] = []
    for event in events:
        (all_day if event.all_day else timed).append(event)
    return timed, all_day
