"""Request and response shapes shared by the poll services and the API.

Dates and times stay canonical strings here (``YYYY-MM-DD`` / ``HH:MM``); the
services parse them with ``grouppoll.common.timeutils`` so malformed values
surface as FormatError / RangeError rather than pydantic validation errors.
"""

import datetime as dt

from pydantic import BaseModel, Field

from grouppoll.common import settings
from grouppoll.common.db.models import (
    ParticipantPayload,
    ParticipantType,
    PollSummaryPayload,
    RosterEntryPayload,
    SlotPayload,
    WindowPayload,
)
from grouppoll.common.heatmap import HeatMap


# Requests


class SlotInput(BaseModel):
    date: str
    start_time: str
    end_time: str


class ParticipantInput(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str
    type: ParticipantType = ParticipantType.CLIENT
    user_id: int | None = None


class PollCreate(BaseModel):
    title: str = Field(min_length=1, max_length=settings.MAX_TITLE_LENGTH)
    description: str | None = None
    duration_minutes: int = settings.DEFAULT_POLL_DURATION
    date_range_start: str
    date_range_end: str
    event_type_id: int | None = None
    windows: list[SlotInput] = []
    participants: list[ParticipantInput] = []


class PollUpdate(BaseModel):
    """Partial edit. Omitted fields are left alone; an explicit null description clears it."""

    title: str | None = Field(default=None, min_length=1, max_length=settings.MAX_TITLE_LENGTH)
    description: str | None = None
    date_range_start: str | None = None
    date_range_end: str | None = None
    windows: list[SlotInput] | None = None
    add_participants: list[ParticipantInput] = []
    remove_participant_ids: list[int] = []


class BookRequest(SlotInput):
    pass


class ResponseSubmit(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str
    slots: list[SlotInput] = []


class MultiResponseSubmit(BaseModel):
    participant_ids: list[int] = Field(min_length=1)
    slots: list[SlotInput] = []


# Results


class CreatedPoll(BaseModel):
    id: int
    share_slug: str
    share_url: str
    invites_sent: int
    invites_failed: int


class UpdatedPoll(BaseModel):
    id: int
    title: str
    participants_added: int
    participants_removed: int
    windows_replaced: bool
    invites_sent: int
    invites_failed: int


class EventTypeSummary(BaseModel):
    id: int
    title: str
    length_minutes: int


class BookingSummary(BaseModel):
    id: int
    uid: str
    title: str
    start_time: dt.datetime
    end_time: dt.datetime
    status: str


class PollDetail(PollSummaryPayload):
    event_type: EventTypeSummary | None
    booking: BookingSummary | None
    selected_date: str | None
    selected_start_time: str | None
    selected_end_time: str | None
    windows: list[WindowPayload]
    participants: list[ParticipantPayload]
    heat_map: HeatMap
    required_heat_map: HeatMap


class BookingResult(BaseModel):
    booking_id: int
    booking_uid: str
    title: str
    start_time: dt.datetime
    end_time: dt.datetime
    attendee_count: int
    calendar_synced: bool


class ParticipantView(BaseModel):
    """What a participant sees through their personal link."""

    poll: PollSummaryPayload
    windows: list[WindowPayload]
    participant: RosterEntryPayload
    roster: list[RosterEntryPayload]
    my_responses: list[SlotPayload]
    heat_map: HeatMap


class SharedPollView(BaseModel):
    """What anyone holding the shared link sees."""

    poll: PollSummaryPayload
    windows: list[WindowPayload]
    roster: list[RosterEntryPayload]
    heat_map: HeatMap


class SubmitResult(BaseModel):
    success: bool = True
    updated_count: int = 1
