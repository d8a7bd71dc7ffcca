"""
Public, unauthenticated views of a poll.

A participant's access token or the poll's share slug is the only credential.
Neither view exposes email addresses, access tokens or who picked which slot:
the heat map is anonymized before it leaves this module.
"""

from sqlalchemy.orm import Session as DBSession

from grouppoll.common.db.models import (
    GroupPoll,
    PollParticipant,
    PollSummaryPayload,
    SlotPayload,
    WindowPayload,
)
from grouppoll.common.errors import NotFound
from grouppoll.common.heatmap import HeatMap, anonymize, compute_heat_map
from grouppoll.polls.schemas import ParticipantView, SharedPollView
from grouppoll.polls.store import ensure_active, roster_entry


def public_heat_map(poll: GroupPoll) -> HeatMap:
    return anonymize(
        compute_heat_map(poll.sorted_windows, poll.responses, poll.participants)
    )


def get_poll_by_token(db: DBSession, access_token: str) -> ParticipantView:
    participant = (
        db.query(PollParticipant)
        .filter(PollParticipant.access_token == access_token)
        .first()
    )
    if not participant:
        raise NotFound("Invalid access token")

    poll = participant.poll
    ensure_active(db, poll)

    return ParticipantView(
        poll=PollSummaryPayload.from_poll(poll),
        windows=[WindowPayload.from_row(w) for w in poll.sorted_windows],
        participant=roster_entry(participant),
        roster=[roster_entry(p) for p in poll.participants],
        my_responses=[SlotPayload.from_row(r) for r in participant.responses],
        heat_map=public_heat_map(poll),
    )


def get_poll_by_share_slug(db: DBSession, share_slug: str) -> SharedPollView:
    poll = db.query(GroupPoll).filter(GroupPoll.share_slug == share_slug).first()
    if not poll:
        raise NotFound("Poll not found")
    ensure_active(db, poll)

    return SharedPollView(
        poll=PollSummaryPayload.from_poll(poll),
        windows=[WindowPayload.from_row(w) for w in poll.sorted_windows],
        roster=[roster_entry(p) for p in poll.participants],
        heat_map=public_heat_map(poll),
    )
