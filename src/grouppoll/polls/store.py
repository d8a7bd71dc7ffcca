"""
Poll lifecycle: create, read, edit, close and delete polls, plus the lazy
expiration sweep every read path runs first.

Status machine::

    active --(date_range_end < today, on read)--> expired
    active --(organizer)--> closed
    active --(booking commit)--> booked

closed, expired and booked are terminal here.
"""

import logging
from datetime import date, datetime, timezone
from typing import Iterable

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import update
from sqlalchemy.orm import Session as DBSession

from grouppoll.common import settings
from grouppoll.common.db.models import (
    EventType,
    GroupPoll,
    ParticipantPayload,
    ParticipantType,
    PollParticipant,
    PollResponse,
    PollStatus,
    PollSummaryPayload,
    PollWindow,
    RosterEntryPayload,
    User,
    WindowPayload,
)
from grouppoll.common.errors import (
    BadRequest,
    Conflict,
    Forbidden,
    InvalidState,
    NotFound,
)
from grouppoll.common.heatmap import compute_heat_map
from grouppoll.common.notifications import InviteNotifier, send_invites, share_link
from grouppoll.common.timeutils import format_date, format_time, parse_date, parse_slot
from grouppoll.polls.schemas import (
    BookingSummary,
    CreatedPoll,
    EventTypeSummary,
    ParticipantInput,
    PollCreate,
    PollDetail,
    PollUpdate,
    SlotInput,
    UpdatedPoll,
)

logger = logging.getLogger(__name__)


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


# Validation helpers


def check_email(email: str) -> str:
    """Reject malformed addresses. Returns the address as given (trimmed)."""
    email = email.strip()
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise BadRequest(f"Invalid email address {email!r}: {e}")
    return email


def parse_date_range(start_str: str, end_str: str) -> tuple[date, date]:
    start, end = parse_date(start_str), parse_date(end_str)
    if start > end:
        raise BadRequest("Date range start must be on or before its end")
    return start, end


def parse_windows(windows: Iterable[SlotInput]) -> list[tuple]:
    return [parse_slot(w.date, w.start_time, w.end_time) for w in windows]


def check_duration(minutes: int) -> int:
    if not settings.MIN_POLL_DURATION <= minutes <= settings.MAX_POLL_DURATION:
        raise BadRequest(
            f"Duration must be between {settings.MIN_POLL_DURATION} "
            f"and {settings.MAX_POLL_DURATION} minutes"
        )
    return minutes


def check_title(title: str) -> str:
    title = title.strip()
    if not title:
        raise BadRequest("Title is required")
    return title


def check_event_type(db: DBSession, user: User, event_type_id: int | None) -> EventType | None:
    if event_type_id is None:
        return None
    event_type = db.get(EventType, event_type_id)
    if not event_type or event_type.owner_id != user.id:
        raise NotFound("Event type not found")
    return event_type


def new_participants(
    poll_id: int | None, entries: Iterable[ParticipantInput]
) -> list[PollParticipant]:
    return [
        PollParticipant(
            poll_id=poll_id,
            type=ParticipantType(entry.type).value,
            name=entry.name.strip(),
            email=check_email(entry.email),
            user_id=entry.user_id,
        )
        for entry in entries
    ]


# Loading


def load_poll(db: DBSession, poll_id: int) -> GroupPoll:
    poll = db.get(GroupPoll, poll_id)
    if not poll:
        raise NotFound("Poll not found")
    return poll


def load_owned_poll(db: DBSession, user: User, poll_id: int) -> GroupPoll:
    poll = load_poll(db, poll_id)
    if poll.user_id != user.id:
        raise Forbidden("You don't have permission to access this poll")
    return poll


# Expiration


def sweep_expired(
    db: DBSession,
    owner_id: int | None = None,
    poll_id: int | None = None,
    today: date | None = None,
) -> int:
    """Move overdue active polls to expired. Returns how many were moved.

    Scoped to one owner's polls, one poll, or (with neither) every poll.
    """
    today = today or today_utc()
    query = db.query(GroupPoll.id).filter(
        GroupPoll.status == PollStatus.ACTIVE.value,
        GroupPoll.date_range_end < today,
    )
    if owner_id is not None:
        query = query.filter(GroupPoll.user_id == owner_id)
    if poll_id is not None:
        query = query.filter(GroupPoll.id == poll_id)

    # Read first so the common nothing-to-do case never takes a write lock
    overdue = [row.id for row in query]
    if not overdue:
        return 0

    result = db.execute(
        update(GroupPoll)
        .where(
            GroupPoll.id.in_(overdue),
            GroupPoll.status == PollStatus.ACTIVE.value,
        )
        .values(status=PollStatus.EXPIRED.value)
    )
    expired = result.rowcount or 0
    db.commit()
    logger.info(f"Expired {expired} poll(s) ending before {today.isoformat()}")
    return expired


def expire_poll_if_overdue(db: DBSession, poll_id: int, today: date | None = None) -> bool:
    return sweep_expired(db, poll_id=poll_id, today=today) > 0


def ensure_active(db: DBSession, poll: GroupPoll) -> None:
    """Expire the poll if overdue, then refuse anything but an active poll."""
    expire_poll_if_overdue(db, poll.id)
    if not poll.is_active:
        raise InvalidState(f"This poll is {poll.status}", poll.status)


# Presentation


def roster_entry(participant: PollParticipant) -> RosterEntryPayload:
    return RosterEntryPayload(
        id=participant.id,
        name=participant.name,
        type=participant.type,
        has_responded=participant.has_responded,
    )


def participant_payload(participant: PollParticipant) -> ParticipantPayload:
    return ParticipantPayload(
        **roster_entry(participant).model_dump(),
        email=participant.email,
        access_token=participant.access_token,
        responded_at=participant.responded_at,
        user_id=participant.user_id,
    )


def poll_detail(poll: GroupPoll) -> PollDetail:
    windows = poll.sorted_windows
    responses = poll.responses
    event_type = poll.event_type
    booking = poll.booking
    return PollDetail(
        **PollSummaryPayload.from_poll(poll).model_dump(),
        event_type=event_type
        and EventTypeSummary(
            id=event_type.id,
            title=event_type.title,
            length_minutes=event_type.length_minutes,
        ),
        booking=booking
        and BookingSummary(
            id=booking.id,
            uid=booking.uid,
            title=booking.title,
            start_time=booking.start_time,
            end_time=booking.end_time,
            status=booking.status,
        ),
        selected_date=poll.selected_date and format_date(poll.selected_date),
        selected_start_time=poll.selected_start_time
        and format_time(poll.selected_start_time),
        selected_end_time=poll.selected_end_time and format_time(poll.selected_end_time),
        windows=[WindowPayload.from_row(w) for w in windows],
        participants=[participant_payload(p) for p in poll.participants],
        heat_map=compute_heat_map(windows, responses, poll.participants),
        required_heat_map=compute_heat_map(
            windows,
            responses,
            poll.participants,
            type_filter=ParticipantType.CADRE_REQUIRED.value,
        ),
    )


# Operations


def create_poll(
    db: DBSession,
    user: User,
    data: PollCreate,
    notifier: InviteNotifier | None = None,
) -> CreatedPoll:
    """Create a poll with its windows and participants, then invite everyone.

    Invites are best-effort: failures are counted in the result, never raised.
    """
    title = check_title(data.title)
    start, end = parse_date_range(data.date_range_start, data.date_range_end)
    duration = check_duration(data.duration_minutes)
    slots = parse_windows(data.windows)
    participants = new_participants(None, data.participants)
    check_event_type(db, user, data.event_type_id)

    poll = GroupPoll(
        title=title,
        description=data.description,
        duration_minutes=duration,
        date_range_start=start,
        date_range_end=end,
        status=PollStatus.ACTIVE.value,
        user_id=user.id,
        event_type_id=data.event_type_id,
    )
    poll.windows = [
        PollWindow(date=slot_date, start_time=slot_start, end_time=slot_end)
        for slot_date, slot_start, slot_end in slots
    ]
    poll.participants = participants
    db.add(poll)
    db.commit()

    stats = send_invites(notifier, poll, poll.participants, user.display_name)
    logger.info(
        f"Created poll {poll.id} for user {user.id}: {len(slots)} windows, "
        f"{len(participants)} participants, invites sent={stats.sent} failed={stats.failed}"
    )
    return CreatedPoll(
        id=poll.id,
        share_slug=poll.share_slug,
        share_url=share_link(poll.share_slug),
        invites_sent=stats.sent,
        invites_failed=stats.failed,
    )


def get_poll(
    db: DBSession, user: User, poll_id: int, today: date | None = None
) -> PollDetail:
    poll = load_owned_poll(db, user, poll_id)
    expire_poll_if_overdue(db, poll.id, today)
    return poll_detail(poll)


def list_polls(
    db: DBSession, user: User, today: date | None = None
) -> list[PollSummaryPayload]:
    """The user's polls, newest first."""
    sweep_expired(db, owner_id=user.id, today=today)
    polls = (
        db.query(GroupPoll)
        .filter(GroupPoll.user_id == user.id)
        .order_by(GroupPoll.created_at.desc(), GroupPoll.id.desc())
        .all()
    )
    return [PollSummaryPayload.from_poll(poll) for poll in polls]


def count_open_polls(db: DBSession, user: User, today: date | None = None) -> int:
    sweep_expired(db, owner_id=user.id, today=today)
    return (
        db.query(GroupPoll)
        .filter(
            GroupPoll.user_id == user.id,
            GroupPoll.status == PollStatus.ACTIVE.value,
        )
        .count()
    )


def delete_participants(db: DBSession, participant_ids: list[int]) -> None:
    """Remove participants along with their responses."""
    if not participant_ids:
        return
    db.query(PollResponse).filter(
        PollResponse.participant_id.in_(participant_ids)
    ).delete()
    db.query(PollParticipant).filter(
        PollParticipant.id.in_(participant_ids)
    ).delete()


def replace_windows(db: DBSession, poll: GroupPoll, slots: list[tuple]) -> None:
    """Swap in a new window set.

    Every response was made against the old windows, so all of them are
    dropped and every participant goes back to not having responded.
    """
    participant_ids = [p.id for p in poll.participants]
    if participant_ids:
        db.query(PollResponse).filter(
            PollResponse.participant_id.in_(participant_ids)
        ).delete()
    db.query(PollWindow).filter(PollWindow.poll_id == poll.id).delete()
    db.add_all(
        PollWindow(poll_id=poll.id, date=slot_date, start_time=slot_start, end_time=slot_end)
        for slot_date, slot_start, slot_end in slots
    )
    db.query(PollParticipant).filter(PollParticipant.poll_id == poll.id).update(
        {PollParticipant.has_responded: False, PollParticipant.responded_at: None}
    )


def update_poll(
    db: DBSession,
    user: User,
    poll_id: int,
    patch: PollUpdate,
    notifier: InviteNotifier | None = None,
) -> UpdatedPoll:
    """Apply an organizer's edit.

    Everything is validated before anything is written, so a rejected patch
    leaves the poll untouched.
    """
    poll = load_owned_poll(db, user, poll_id)
    if poll.status == PollStatus.BOOKED.value:
        raise InvalidState("Cannot edit a poll that has already been booked", poll.status)

    title = check_title(patch.title) if patch.title is not None else poll.title
    start = (
        parse_date(patch.date_range_start)
        if patch.date_range_start is not None
        else poll.date_range_start
    )
    end = (
        parse_date(patch.date_range_end)
        if patch.date_range_end is not None
        else poll.date_range_end
    )
    if start > end:
        raise BadRequest("Date range start must be on or before its end")
    slots = parse_windows(patch.windows) if patch.windows is not None else None

    to_remove = set(patch.remove_participant_ids)
    removed = [p.id for p in poll.participants if p.id in to_remove]
    taken = {p.email.lower() for p in poll.participants if p.id not in to_remove}
    added = new_participants(poll.id, patch.add_participants)
    for participant in added:
        email = participant.email.lower()
        if email in taken:
            raise Conflict(f"A participant with email {participant.email} is already on this poll")
        taken.add(email)

    poll.title = title
    if "description" in patch.model_fields_set:
        poll.description = patch.description
    poll.date_range_start, poll.date_range_end = start, end
    delete_participants(db, removed)
    if slots is not None:
        replace_windows(db, poll, slots)
    db.add_all(added)
    db.commit()

    stats = send_invites(notifier, poll, added, user.display_name)
    logger.info(
        f"Updated poll {poll.id}: +{len(added)} / -{len(removed)} participants, "
        f"windows replaced={slots is not None}"
    )
    return UpdatedPoll(
        id=poll.id,
        title=poll.title,
        participants_added=len(added),
        participants_removed=len(removed),
        windows_replaced=slots is not None,
        invites_sent=stats.sent,
        invites_failed=stats.failed,
    )


def close_poll(db: DBSession, user: User, poll_id: int) -> PollSummaryPayload:
    poll = load_owned_poll(db, user, poll_id)
    if poll.status == PollStatus.BOOKED.value:
        raise InvalidState("Cannot close a poll that has already been booked", poll.status)
    if poll.status == PollStatus.CLOSED.value:
        raise InvalidState("Poll is already closed", poll.status)
    if poll.status == PollStatus.EXPIRED.value:
        raise InvalidState("Poll has already expired", poll.status)

    poll.status = PollStatus.CLOSED.value
    db.commit()
    logger.info(f"Closed poll {poll.id}")
    return PollSummaryPayload.from_poll(poll)


def delete_poll(db: DBSession, user: User, poll_id: int) -> None:
    """Delete a poll and everything under it, whatever its status.

    A booking made from the poll is left alone.
    """
    poll = load_owned_poll(db, user, poll_id)
    poll_id = poll.id

    delete_participants(db, [p.id for p in poll.participants])
    db.query(PollWindow).filter(PollWindow.poll_id == poll_id).delete()
    db.query(GroupPoll).filter(GroupPoll.id == poll_id).delete()
    db.commit()
    logger.info(f"Deleted poll {poll_id}")
