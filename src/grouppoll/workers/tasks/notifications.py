"""Celery tasks that deliver poll notifications."""

import logging
from dataclasses import asdict

from grouppoll.common.celery_app import NOTIFY_POLL_RESPONSE, SEND_POLL_INVITE, app
from grouppoll.common.notifications import (
    EmailInviteNotifier,
    ResponseEvent,
    SlackResponseNotifier,
)

logger = logging.getLogger(__name__)


@app.task(name=SEND_POLL_INVITE)
def send_poll_invite(
    recipient_email: str,
    poll_title: str,
    poll_link: str,
    organizer_name: str,
    recipient_name: str | None = None,
    poll_description: str | None = None,
) -> dict:
    """Email a participant their personal poll link."""
    result = EmailInviteNotifier().notify(
        recipient_email=recipient_email,
        poll_title=poll_title,
        poll_link=poll_link,
        organizer_name=organizer_name,
        recipient_name=recipient_name,
        poll_description=poll_description,
    )
    if not result.success:
        logger.error(
            f"Invite to {recipient_email} for '{poll_title}' failed: {result.error}"
        )
    return asdict(result)


@app.task(name=NOTIFY_POLL_RESPONSE)
def notify_poll_response(**event) -> dict:
    """Slack the poll's cadre about a new response."""
    result = SlackResponseNotifier().notify(ResponseEvent(**event))
    return asdict(result)
