"""
Best-effort notification channels for group polls.

Two channels:
- invites: one email per new participant with their personal link
- response alerts: Slack DMs to the poll's cadre when a required participant
  responds or when everybody has responded

The core only ever sees the `InviteNotifier` / `ResponseNotifier` protocols.
The default implementations queue Celery tasks so nothing here blocks a
request; the worker side does the actual SMTP / Slack I/O. Failures are
returned as unsuccessful `NotificationResult`s and logged, never raised.
"""

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Protocol

import httpx

from grouppoll.common import settings
from grouppoll.common.celery_app import (
    NOTIFY_POLL_RESPONSE,
    SEND_POLL_INVITE,
    app as celery_app,
)
from grouppoll.common.db.models.polls import ParticipantType
from grouppoll.common.email_sender import SmtpConfig, build_invite_email, send_via_smtp
from grouppoll.common.slack import SlackAPIError, SlackClient

if TYPE_CHECKING:
    from grouppoll.common.db.models import GroupPoll, PollParticipant

logger = logging.getLogger(__name__)


@dataclass
class NotificationResult:
    success: bool
    error: str | None = None
    task_id: str | None = None


@dataclass
class InviteStats:
    sent: int = 0
    failed: int = 0


@dataclass
class ResponseEvent:
    """What happened, with enough context to decide who to tell."""

    poll_id: int
    poll_title: str
    share_slug: str
    responder_name: str
    responder_type: str
    responded_count: int
    total_participants: int
    cadre_emails: list[str] = field(default_factory=list)


class AlertKind(str, Enum):
    REQUIRED_RESPONDED = "required_responded"
    ALL_RESPONDED = "all_responded"


class InviteNotifier(Protocol):
    def notify(
        self,
        recipient_email: str,
        poll_title: str,
        poll_link: str,
        organizer_name: str,
        recipient_name: str | None = None,
        poll_description: str | None = None,
    ) -> NotificationResult: ...


class ResponseNotifier(Protocol):
    def notify(self, event: ResponseEvent) -> NotificationResult: ...


def participant_link(access_token: str) -> str:
    return f"{settings.SERVER_URL}/p/{access_token}"


def share_link(share_slug: str) -> str:
    return f"{settings.SERVER_URL}/poll/{share_slug}"


def organizer_link(poll_id: int) -> str:
    return f"{settings.SERVER_URL}/group-polls/{poll_id}"


def alert_kind(event: ResponseEvent) -> AlertKind | None:
    """Everyone responding wins over a single required response."""
    if event.total_participants and event.responded_count >= event.total_participants:
        return AlertKind.ALL_RESPONDED
    if event.responder_type == ParticipantType.CADRE_REQUIRED.value:
        return AlertKind.REQUIRED_RESPONDED
    return None


def response_event(poll: "GroupPoll", participant: "PollParticipant") -> ResponseEvent:
    return ResponseEvent(
        poll_id=poll.id,
        poll_title=poll.title,
        share_slug=poll.share_slug,
        responder_name=participant.name,
        responder_type=participant.type,
        responded_count=poll.responded_count,
        total_participants=len(poll.participants),
        cadre_emails=[p.email for p in poll.participants if p.is_cadre],
    )


# Core-facing helpers


def send_invites(
    notifier: InviteNotifier | None,
    poll: "GroupPoll",
    participants: Iterable["PollParticipant"],
    organizer_name: str,
) -> InviteStats:
    """Invite each participant, counting (not raising) failures."""
    stats = InviteStats()
    if notifier is None:
        return stats

    for participant in participants:
        try:
            result = notifier.notify(
                recipient_email=participant.email,
                poll_title=poll.title,
                poll_link=participant_link(participant.access_token),
                organizer_name=organizer_name,
                recipient_name=participant.name,
                poll_description=poll.description,
            )
        except Exception as e:
            logger.exception(
                f"Invite for poll {poll.id} to {participant.email} raised: {e}"
            )
            result = NotificationResult(success=False, error=str(e))

        if result.success:
            stats.sent += 1
        else:
            stats.failed += 1
            logger.error(
                f"Failed to invite {participant.email} to poll {poll.id}: {result.error}"
            )

    if stats.failed:
        logger.warning(
            f"Some invites for poll {poll.id} failed: sent={stats.sent}, failed={stats.failed}"
        )
    return stats


def notify_response(
    notifier: ResponseNotifier | None, event: ResponseEvent
) -> NotificationResult | None:
    """Alert the organizer's delegates if this response warrants it."""
    if notifier is None or alert_kind(event) is None:
        return None

    try:
        result = notifier.notify(event)
    except Exception as e:
        logger.exception(f"Response alert for poll {event.poll_id} raised: {e}")
        return NotificationResult(success=False, error=str(e))

    if not result.success:
        logger.error(
            f"Response alert for poll {event.poll_id} "
            f"({event.responder_name}) failed: {result.error}"
        )
    return result


# Queued (default) implementations


class QueuedInviteNotifier:
    """Hands the invite to a Celery worker."""

    def notify(
        self,
        recipient_email: str,
        poll_title: str,
        poll_link: str,
        organizer_name: str,
        recipient_name: str | None = None,
        poll_description: str | None = None,
    ) -> NotificationResult:
        try:
            task = celery_app.send_task(
                SEND_POLL_INVITE,
                queue=f"{settings.CELERY_QUEUE_PREFIX}-notifications",
                kwargs={
                    "recipient_email": recipient_email,
                    "poll_title": poll_title,
                    "poll_link": poll_link,
                    "organizer_name": organizer_name,
                    "recipient_name": recipient_name,
                    "poll_description": poll_description,
                },
            )
        except Exception as e:
            return NotificationResult(success=False, error=f"Could not queue invite: {e}")
        return NotificationResult(success=True, task_id=task.id)


class QueuedResponseNotifier:
    """Hands the response alert to a Celery worker."""

    def notify(self, event: ResponseEvent) -> NotificationResult:
        try:
            task = celery_app.send_task(
                NOTIFY_POLL_RESPONSE,
                queue=f"{settings.CELERY_QUEUE_PREFIX}-notifications",
                kwargs=asdict(event),
            )
        except Exception as e:
            return NotificationResult(success=False, error=f"Could not queue alert: {e}")
        return NotificationResult(success=True, task_id=task.id)


def get_invite_notifier() -> InviteNotifier | None:
    return QueuedInviteNotifier() if settings.NOTIFICATIONS_ENABLED else None


def get_response_notifier() -> ResponseNotifier | None:
    return QueuedResponseNotifier() if settings.NOTIFICATIONS_ENABLED else None


# Worker-side implementations


class EmailInviteNotifier:
    def __init__(self, config: SmtpConfig | None = None):
        self.config = config or SmtpConfig.from_settings()

    def notify(
        self,
        recipient_email: str,
        poll_title: str,
        poll_link: str,
        organizer_name: str,
        recipient_name: str | None = None,
        poll_description: str | None = None,
    ) -> NotificationResult:
        email = build_invite_email(
            organizer_name=organizer_name,
            poll_title=poll_title,
            poll_link=poll_link,
            recipient_name=recipient_name,
            poll_description=poll_description,
        )
        result = send_via_smtp(
            self.config, recipient_email, email.subject, email.body, email.html_body
        )
        return NotificationResult(success=result.success, error=result.error)


def build_alert_message(kind: AlertKind, event: ResponseEvent) -> tuple[str, list[dict]]:
    """Slack (text, blocks) for a response alert."""
    url = organizer_link(event.poll_id)
    if kind == AlertKind.ALL_RESPONDED:
        text = f'Everyone has responded to "{event.poll_title}"!'
        sections = [
            f"*All {event.total_participants} participants* have responded to your poll!",
            f"*{event.poll_title}*\nReady to book? View the results to pick a time.",
        ]
        button = "View Results & Book"
    else:
        text = f'{event.responder_name} responded to "{event.poll_title}"'
        sections = [
            f"*{event.responder_name}* just responded to your poll!",
            f"*Poll:* {event.poll_title}\n*Progress:* "
            f"{event.responded_count}/{event.total_participants} responded",
        ]
        button = "View Results"

    blocks: list[dict] = [
        {"type": "section", "text": {"type": "mrkdwn", "text": section}}
        for section in sections
    ]
    blocks.append(
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": button},
                    "url": url,
                    "style": "primary",
                }
            ],
        }
    )
    return text, blocks


class SlackResponseNotifier:
    """DMs every cadre participant that has a Slack account."""

    def __init__(self, token: str | None = None):
        self.token = settings.SLACK_BOT_TOKEN if token is None else token

    def notify(self, event: ResponseEvent) -> NotificationResult:
        kind = alert_kind(event)
        if kind is None:
            return NotificationResult(success=True)
        if not self.token:
            logger.debug(f"Slack not configured, skipping alert for poll {event.poll_id}")
            return NotificationResult(success=True)
        if not event.cadre_emails:
            logger.debug(f"No cadre participants to notify for poll {event.poll_id}")
            return NotificationResult(success=True)

        text, blocks = build_alert_message(kind, event)
        failures = []
        with SlackClient(self.token) as client:
            for email in event.cadre_emails:
                try:
                    user_id = client.lookup_user_id(email)
                    if not user_id:
                        logger.debug(f"No Slack user found for {email}")
                        continue
                    client.post_message(user_id, text, blocks)
                except (SlackAPIError, httpx.HTTPError) as e:
                    logger.error(
                        f"Failed to send Slack alert for poll {event.poll_id} to {email}: {e}"
                    )
                    failures.append(email)

        logger.info(
            f"Slack alerts for poll {event.poll_id}: kind={kind.value}, "
            f"recipients={len(event.cadre_emails)}, failed={len(failures)}"
        )
        if failures:
            return NotificationResult(
                success=False, error=f"Failed for: {', '.join(failures)}"
            )
        return NotificationResult(success=True)
