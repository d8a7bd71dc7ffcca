"""
Turning a poll into a real booking.

Booking happens in two steps:

1. `prepare_booking` runs every precondition against a plain read of the poll
   (slot shape, ownership, event type, not already booked, slot inside a
   window) and works out who can attend.
2. `commit_booking` claims the poll with a single conditional UPDATE
   (``booking_id IS NULL AND status = 'active'``). Only one request can match
   that row, so of any number of concurrent bookings exactly one wins; the
   rest get Conflict. The booking row, its attendees and the poll's booking
   link are written in the same transaction.

Calendar sync runs after the commit and can only ever degrade to a log line.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session as DBSession

from grouppoll.common.calendar_sync import (
    CalendarAttendee,
    CalendarEvent,
    CalendarSync,
    sync_with_retry,
)
from grouppoll.common.db.models import (
    Booking,
    BookingAttendee,
    BookingReference,
    BookingStatus,
    GroupPoll,
    PollParticipant,
    PollStatus,
    User,
)
from grouppoll.common.errors import BadRequest, Conflict
from grouppoll.common.timeutils import parse_slot
from grouppoll.polls.schemas import BookingResult, BookRequest
from grouppoll.polls.store import ensure_active, load_owned_poll

logger = logging.getLogger(__name__)


@dataclass
class PreparedBooking:
    poll_id: int
    user_id: int
    event_type_id: int
    title: str
    description: str | None
    slot_date: date
    start: time
    end: time
    organizer_name: str
    organizer_email: str
    attendees: list[CalendarAttendee] = field(default_factory=list)

    @property
    def start_time(self) -> datetime:
        return datetime.combine(self.slot_date, self.start, tzinfo=timezone.utc)

    @property
    def end_time(self) -> datetime:
        return datetime.combine(self.slot_date, self.end, tzinfo=timezone.utc)


def booking_title(event_type_title: str, poll_title: str) -> str:
    return f"{event_type_title} (from Group Poll: {poll_title})"


def available_participants(
    poll: GroupPoll, slot_date: date, start: time, end: time
) -> list[PollParticipant]:
    """Participants with a response that covers the whole slot."""
    return [
        participant
        for participant in poll.participants
        if any(r.covers(slot_date, start, end) for r in participant.responses)
    ]


def prepare_booking(
    db: DBSession, user: User, poll_id: int, data: BookRequest
) -> PreparedBooking:
    """Check every precondition, in order, without writing anything."""
    slot_date, start, end = parse_slot(data.date, data.start_time, data.end_time)

    poll = load_owned_poll(db, user, poll_id)
    event_type = poll.event_type
    if event_type is None:
        raise BadRequest("This poll has no event type, so it cannot be booked")

    # Optimistic check; commit_booking re-checks atomically
    if poll.booking_id is not None or poll.status == PollStatus.BOOKED.value:
        raise BadRequest("This poll has already been booked")

    ensure_active(db, poll)

    if not any(w.covers(slot_date, start, end) for w in poll.windows):
        raise BadRequest("The selected time is not within any of the poll's windows")

    return PreparedBooking(
        poll_id=poll.id,
        user_id=user.id,
        event_type_id=event_type.id,
        title=booking_title(event_type.title, poll.title),
        description=poll.description or event_type.description,
        slot_date=slot_date,
        start=start,
        end=end,
        organizer_name=user.display_name,
        organizer_email=user.email,
        attendees=[
            CalendarAttendee(name=p.name, email=p.email)
            for p in available_participants(poll, slot_date, start, end)
        ],
    )


def commit_booking(db: DBSession, prepared: PreparedBooking) -> Booking:
    """Claim the poll and create the booking, all or nothing.

    Raises Conflict if another request claimed the poll first.
    """
    claimed = db.execute(
        update(GroupPoll)
        .where(
            GroupPoll.id == prepared.poll_id,
            GroupPoll.booking_id.is_(None),
            GroupPoll.status == PollStatus.ACTIVE.value,
        )
        .values(
            status=PollStatus.BOOKED.value,
            selected_date=prepared.slot_date,
            selected_start_time=prepared.start,
            selected_end_time=prepared.end,
        )
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        db.rollback()
        raise Conflict(
            "This poll was just booked by another request. Refresh and try again."
        )

    try:
        booking = Booking(
            title=prepared.title,
            description=prepared.description,
            start_time=prepared.start_time,
            end_time=prepared.end_time,
            status=BookingStatus.ACCEPTED.value,
            event_type_id=prepared.event_type_id,
            user_id=prepared.user_id,
            poll_id=prepared.poll_id,
            attendees=[
                BookingAttendee(name=a.name, email=a.email, time_zone=a.time_zone)
                for a in prepared.attendees
            ],
        )
        db.add(booking)
        db.flush()
        db.execute(
            update(GroupPoll)
            .where(GroupPoll.id == prepared.poll_id)
            .values(booking_id=booking.id)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"Booked poll {prepared.poll_id} as booking {booking.id} "
        f"({prepared.start_time.isoformat()}, {len(prepared.attendees)} attendees)"
    )
    return booking


def sync_calendar(
    db: DBSession,
    booking: Booking,
    prepared: PreparedBooking,
    calendar: CalendarSync | None,
) -> bool:
    """Best-effort external calendar sync. Returns whether it succeeded."""
    if calendar is None:
        return False

    references = sync_with_retry(
        calendar,
        CalendarEvent(
            uid=booking.uid,
            title=booking.title,
            description=booking.description or "",
            start_time=prepared.start_time,
            end_time=prepared.end_time,
            organizer_name=prepared.organizer_name,
            organizer_email=prepared.organizer_email,
            attendees=prepared.attendees,
        ),
    )
    if references is None:
        logger.error(
            f"Booking {booking.id} for poll {prepared.poll_id} stands without "
            f"calendar references; sync it manually"
        )
        return False

    booking.references.extend(
        BookingReference(
            type=ref.type,
            uid=ref.uid,
            meeting_id=ref.meeting_id,
            meeting_url=ref.meeting_url,
            external_calendar_id=ref.external_calendar_id,
        )
        for ref in references
    )
    db.commit()
    return True


def book_slot(
    db: DBSession,
    user: User,
    poll_id: int,
    data: BookRequest,
    calendar: CalendarSync | None = None,
) -> BookingResult:
    prepared = prepare_booking(db, user, poll_id, data)
    booking = commit_booking(db, prepared)
    synced = sync_calendar(db, booking, prepared, calendar)
    return BookingResult(
        booking_id=booking.id,
        booking_uid=booking.uid,
        title=booking.title,
        start_time=prepared.start_time,
        end_time=prepared.end_time,
        attendee_count=len(prepared.attendees),
        calendar_synced=synced,
    )
