"""
Response intake: participants marking the slots they can make.

A participant's responses are always replaced as a whole (delete, then
insert) inside one transaction, so readers see either the old set or the new
one. An empty slot list is a real answer ("none of these work").
"""

import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy.orm import Session as DBSession

from grouppoll.common.db.models import GroupPoll, PollParticipant, PollResponse
from grouppoll.common.errors import BadRequest, NotFound
from grouppoll.common.notifications import ResponseNotifier, notify_response, response_event
from grouppoll.common.timeutils import parse_slot
from grouppoll.polls.schemas import (
    MultiResponseSubmit,
    ResponseSubmit,
    SlotInput,
    SubmitResult,
)
from grouppoll.polls.store import check_email, ensure_active

logger = logging.getLogger(__name__)


def parse_response_slots(slots: Iterable[SlotInput]) -> list[tuple]:
    """Parse slots, dropping exact duplicates but keeping order."""
    parsed = []
    for slot in slots:
        key = parse_slot(slot.date, slot.start_time, slot.end_time)
        if key not in parsed:
            parsed.append(key)
    return parsed


def replace_responses(
    db: DBSession, participant: PollParticipant, slots: list[tuple], now: datetime
) -> None:
    db.query(PollResponse).filter(PollResponse.participant_id == participant.id).delete()
    db.add_all(
        PollResponse(
            participant_id=participant.id,
            date=slot_date,
            start_time=start,
            end_time=end,
        )
        for slot_date, start, end in slots
    )
    participant.has_responded = True
    participant.responded_at = now


def submit_response(
    db: DBSession,
    access_token: str,
    data: ResponseSubmit,
    notifier: ResponseNotifier | None = None,
) -> SubmitResult:
    """Record a participant's availability through their personal link."""
    participant = (
        db.query(PollParticipant)
        .filter(PollParticipant.access_token == access_token)
        .first()
    )
    if not participant:
        raise NotFound("Invalid access token")

    poll = participant.poll
    ensure_active(db, poll)

    name = data.name.strip()
    if not name:
        raise BadRequest("Name is required")
    email = check_email(data.email)
    slots = parse_response_slots(data.slots)

    replace_responses(db, participant, slots, datetime.now(timezone.utc))
    participant.name = name
    participant.email = email
    db.commit()

    logger.info(
        f"Participant {participant.id} responded to poll {poll.id} with {len(slots)} slots"
    )
    notify_response(notifier, response_event(poll, participant))
    return SubmitResult(updated_count=1)


def submit_multi_response(
    db: DBSession,
    share_slug: str,
    data: MultiResponseSubmit,
    notifier: ResponseNotifier | None = None,
) -> SubmitResult:
    """Record the same availability for several participants via the shared link.

    Either every named participant is updated or none is.
    """
    poll = db.query(GroupPoll).filter(GroupPoll.share_slug == share_slug).first()
    if not poll:
        raise NotFound("Poll not found")
    ensure_active(db, poll)

    by_id = {p.id: p for p in poll.participants}
    unknown = [pid for pid in data.participant_ids if pid not in by_id]
    if unknown:
        raise BadRequest(
            f"Participants {', '.join(map(str, unknown))} do not belong to this poll"
        )
    slots = parse_response_slots(data.slots)

    selected = [by_id[pid] for pid in dict.fromkeys(data.participant_ids)]
    now = datetime.now(timezone.utc)
    for participant in selected:
        replace_responses(db, participant, slots, now)
    db.commit()

    logger.info(
        f"Shared-link submission for poll {poll.id}: {len(selected)} participants, "
        f"{len(slots)} slots"
    )
    for participant in selected:
        notify_response(notifier, response_event(poll, participant))
    return SubmitResult(updated_count=len(selected))
