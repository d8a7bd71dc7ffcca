"""Organizer endpoints for group polls.

Thin wrappers over grouppoll.polls: every route authenticates the organizer,
hands the request body to the service and returns its result.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session as DBSession

from grouppoll.api.auth import get_current_user
from grouppoll.common.calendar_sync import get_calendar_sync
from grouppoll.common.db.connection import get_session
from grouppoll.common.db.models import PollSummaryPayload, User
from grouppoll.common.notifications import get_invite_notifier
from grouppoll.polls import booking, store
from grouppoll.polls.schemas import (
    BookingResult,
    BookRequest,
    CreatedPoll,
    PollCreate,
    PollDetail,
    PollUpdate,
    UpdatedPoll,
)

router = APIRouter(prefix="/group-polls", tags=["group-polls"])


@router.post("")
def create_poll(
    data: PollCreate,
    user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
) -> CreatedPoll:
    """Create a poll and invite its participants."""
    return store.create_poll(db, user, data, notifier=get_invite_notifier())


@router.get("")
def list_polls(
    user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
) -> list[PollSummaryPayload]:
    return store.list_polls(db, user)


@router.get("/open-count")
def open_count(
    user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
) -> dict:
    """Number of active polls, for the navigation badge."""
    return {"count": store.count_open_polls(db, user)}


@router.get("/{poll_id}")
def get_poll(
    poll_id: int,
    user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
) -> PollDetail:
    return store.get_poll(db, user, poll_id)


@router.patch("/{poll_id}")
def update_poll(
    poll_id: int,
    patch: PollUpdate,
    user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
) -> UpdatedPoll:
    return store.update_poll(db, user, poll_id, patch, notifier=get_invite_notifier())


@router.post("/{poll_id}/close")
def close_poll(
    poll_id: int,
    user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
) -> PollSummaryPayload:
    return store.close_poll(db, user, poll_id)


@router.delete("/{poll_id}")
def delete_poll(
    poll_id: int,
    user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
) -> dict:
    store.delete_poll(db, user, poll_id)
    return {"status": "deleted"}


@router.post("/{poll_id}/book")
def book_poll(
    poll_id: int,
    data: BookRequest,
    user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
) -> BookingResult:
    """Book the chosen slot for everyone available at that time."""
    return booking.book_slot(db, user, poll_id, data, calendar=get_calendar_sync())
