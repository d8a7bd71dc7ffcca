"""Public poll endpoints (no auth required).

Participants reach a poll either through their personal link (access token)
or through the poll's shared link (share slug).
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session as DBSession

from grouppoll.common.db.connection import get_session
from grouppoll.common.notifications import get_response_notifier
from grouppoll.polls import access, responses
from grouppoll.polls.schemas import (
    MultiResponseSubmit,
    ParticipantView,
    ResponseSubmit,
    SharedPollView,
    SubmitResult,
)

router = APIRouter(prefix="/public/polls", tags=["public-polls"])


@router.get("/token/{access_token}")
def get_poll_by_token(
    access_token: str,
    db: DBSession = Depends(get_session),
) -> ParticipantView:
    return access.get_poll_by_token(db, access_token)


@router.post("/token/{access_token}/responses")
def submit_response(
    access_token: str,
    data: ResponseSubmit,
    db: DBSession = Depends(get_session),
) -> SubmitResult:
    return responses.submit_response(
        db, access_token, data, notifier=get_response_notifier()
    )


@router.get("/share/{share_slug}")
def get_poll_by_share_slug(
    share_slug: str,
    db: DBSession = Depends(get_session),
) -> SharedPollView:
    return access.get_poll_by_share_slug(db, share_slug)


@router.post("/share/{share_slug}/responses")
def submit_multi_response(
    share_slug: str,
    data: MultiResponseSubmit,
    db: DBSession = Depends(get_session),
) -> SubmitResult:
    """Submit the same availability for one or more participants."""
    return responses.submit_multi_response(
        db, share_slug, data, notifier=get_response_notifier()
    )
