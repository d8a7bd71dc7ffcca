"""
Heat map aggregation for group polls.

Turns the raw (window, response, participant) rows of a poll into one cell per
window with the share of participants who marked that exact slot, plus summary
statistics used to highlight the best times. Pure and deterministic: no I/O,
no clock, cells come back in window input order.
"""

from collections import defaultdict
from datetime import date, time
from typing import Iterable, Protocol

from pydantic import BaseModel

from grouppoll.common.timeutils import format_date, format_time

SlotKey = tuple[date, time, time]


class WindowLike(Protocol):
    date: date
    start_time: time
    end_time: time


class ResponseLike(Protocol):
    participant_id: int
    date: date
    start_time: time
    end_time: time


class ParticipantLike(Protocol):
    id: int
    name: str
    type: str


class HeatMapCell(BaseModel):
    """Aggregated availability for a single window."""

    date: str  # YYYY-MM-DD
    start_time: str  # HH:MM
    end_time: str  # HH:MM
    response_count: int
    total_participants: int
    percent_available: int  # 0-100
    participant_names: list[str]


class HeatMapStats(BaseModel):
    optimal_slots: list[HeatMapCell]  # cells at the highest non-zero availability
    perfect_slots: list[HeatMapCell]  # cells everyone can make
    total_responses: int
    total_participants: int
    max_availability: int


class HeatMap(BaseModel):
    cells: list[HeatMapCell]
    stats: HeatMapStats


def empty_heat_map() -> HeatMap:
    return HeatMap(
        cells=[],
        stats=HeatMapStats(
            optimal_slots=[],
            perfect_slots=[],
            total_responses=0,
            total_participants=0,
            max_availability=0,
        ),
    )


def slot_key(item: WindowLike | ResponseLike) -> SlotKey:
    return (item.date, item.start_time, item.end_time)


def group_responses(
    responses: Iterable[ResponseLike], names: dict[int, str]
) -> dict[SlotKey, list[str]]:
    """Map each slot to the names of the participants who selected it.

    Responses from participants missing from `names` are skipped. A participant
    counts at most once per slot, however many duplicate rows they have.
    """
    covering: dict[SlotKey, list[str]] = defaultdict(list)
    seen: set[tuple[SlotKey, int]] = set()
    for response in responses:
        if response.participant_id not in names:
            continue
        key = slot_key(response)
        if (key, response.participant_id) in seen:
            continue
        seen.add((key, response.participant_id))
        covering[key].append(names[response.participant_id])
    return covering


def percent(count: int, total: int) -> int:
    """Whole-number percentage, rounding halves up like the UI does."""
    if total <= 0:
        return 0
    return int(count * 100 / total + 0.5)


def compute_heat_map(
    windows: Iterable[WindowLike],
    responses: Iterable[ResponseLike],
    participants: Iterable[ParticipantLike],
    type_filter: str | None = None,
) -> HeatMap:
    """Compute the heat map for a poll.

    Args:
        windows: candidate windows, in display order
        responses: every response row of the poll
        participants: every participant of the poll
        type_filter: only count participants of this type (e.g. required cadre)

    Every participant matching the filter is in the denominator, whether or not
    they have responded yet.
    """
    windows = list(windows)
    if not windows:
        return empty_heat_map()

    filtered = [
        p for p in participants if type_filter is None or p.type == type_filter
    ]
    total_participants = len(filtered)
    covering = group_responses(responses, {p.id: p.name for p in filtered})

    cells = []
    for window in windows:
        names = covering.get(slot_key(window), [])
        cells.append(
            HeatMapCell(
                date=format_date(window.date),
                start_time=format_time(window.start_time),
                end_time=format_time(window.end_time),
                response_count=len(names),
                total_participants=total_participants,
                percent_available=percent(len(names), total_participants),
                participant_names=list(names),
            )
        )

    max_availability = max(cell.percent_available for cell in cells)
    # Ties at zero are not "optimal" - nobody can make any of them
    optimal = (
        [c for c in cells if c.percent_available == max_availability]
        if max_availability > 0
        else []
    )

    return HeatMap(
        cells=cells,
        stats=HeatMapStats(
            optimal_slots=optimal,
            perfect_slots=[c for c in cells if c.percent_available == 100],
            total_responses=sum(c.response_count for c in cells),
            total_participants=total_participants,
            max_availability=max_availability,
        ),
    )


def anonymize(heat_map: HeatMap) -> HeatMap:
    """Strip participant names, for public (participant-facing) views."""

    def strip(cell: HeatMapCell) -> HeatMapCell:
        return cell.model_copy(update={"participant_names": []})

    return HeatMap(
        cells=[strip(c) for c in heat_map.cells],
        stats=heat_map.stats.model_copy(
            update={
                "optimal_slots": [strip(c) for c in heat_map.stats.optimal_slots],
                "perfect_slots": [strip(c) for c in heat_map.stats.perfect_slots],
            }
        ),
    )
