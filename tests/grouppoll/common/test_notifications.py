from unittest.mock import MagicMock, patch

import httpx
import pytest

from grouppoll.common import notifications
from grouppoll.common.notifications import (
    AlertKind,
    EmailInviteNotifier,
    NotificationResult,
    QueuedInviteNotifier,
    QueuedResponseNotifier,
    ResponseEvent,
    SlackResponseNotifier,
    alert_kind,
    build_alert_message,
    notify_response,
    participant_link,
    response_event,
    send_invites,
)
from grouppoll.common.email_sender import EmailResult, SmtpConfig
from grouppoll.common.slack import SlackAPIError


def make_event(**overrides) -> ResponseEvent:
    fields = {
        "poll_id": 7,
        "poll_title": "Planning",
        "share_slug": "abc123",
        "responder_name": "Alice",
        "responder_type": "client",
        "responded_count": 1,
        "total_participants": 3,
        "cadre_emails": ["lead@example.com", "ops@example.com"],
    }
    fields.update(overrides)
    return ResponseEvent(**fields)


@pytest.mark.parametrize(
    "responder_type, responded, total, expected",
    [
        ("client", 1, 3, None),
        ("cadre_optional", 2, 3, None),
        ("cadre_required", 1, 3, AlertKind.REQUIRED_RESPONDED),
        ("client", 3, 3, AlertKind.ALL_RESPONDED),
        ("cadre_required", 3, 3, AlertKind.ALL_RESPONDED),
        ("client", 0, 0, None),
    ],
)
def test_alert_kind(responder_type, responded, total, expected):
    event = make_event(
        responder_type=responder_type, responded_count=responded, total_participants=total
    )
    assert alert_kind(event) == expected


def test_participant_link_uses_server_url():
    with patch.object(notifications.settings, "SERVER_URL", "https://polls.example.com"):
        assert participant_link("tok") == "https://polls.example.com/p/tok"


def test_response_event_from_poll(make_poll):
    poll = make_poll(
        participants=(
            ("Alice", "alice@example.com", "cadre_required"),
            ("Opal", "opal@example.com", "cadre_optional"),
            ("Bob", "bob@example.com", "client"),
        ),
        responses={0: []},
    )

    event = response_event(poll, poll.participants[0])

    assert event.poll_id == poll.id
    assert event.share_slug == poll.share_slug
    assert event.responder_name == "Alice"
    assert event.responder_type == "cadre_required"
    assert event.responded_count == 1
    assert event.total_participants == 3
    assert event.cadre_emails == ["alice@example.com", "opal@example.com"]


def test_send_invites_counts_failures(make_poll, make_invite_notifier):
    poll = make_poll()
    notifier = make_invite_notifier(fail_for={"bob@example.com"})

    stats = send_invites(notifier, poll, poll.participants, "Olivia")

    assert (stats.sent, stats.failed) == (1, 1)
    assert [c["recipient_email"] for c in notifier.calls] == [
        "alice@example.com",
        "bob@example.com",
    ]
    assert notifier.calls[0]["poll_link"].endswith(f"/p/{poll.participants[0].access_token}")
    assert notifier.calls[0]["organizer_name"] == "Olivia"


def test_send_invites_survives_exceptions(make_poll):
    poll = make_poll()
    notifier = MagicMock()
    notifier.notify.side_effect = RuntimeError("boom")

    stats = send_invites(notifier, poll, poll.participants, "Olivia")

    assert (stats.sent, stats.failed) == (0, 2)


def test_send_invites_without_notifier(make_poll):
    poll = make_poll()
    stats = send_invites(None, poll, poll.participants, "Olivia")
    assert (stats.sent, stats.failed) == (0, 0)


def test_notify_response_skips_uninteresting_events(response_notifier):
    assert notify_response(response_notifier, make_event()) is None
    assert response_notifier.events == []


def test_notify_response_sends_for_required(response_notifier):
    event = make_event(responder_type="cadre_required")
    result = notify_response(response_notifier, event)
    assert result.success
    assert response_notifier.events == [event]


def test_notify_response_swallows_errors(make_response_notifier):
    notifier = make_response_notifier(error=RuntimeError("slack down"))
    result = notify_response(notifier, make_event(responded_count=3))
    assert result.success is False
    assert "slack down" in result.error


@patch("grouppoll.common.notifications.celery_app")
def test_queued_invite_notifier(mock_celery):
    mock_celery.send_task.return_value = MagicMock(id="task-1")

    result = QueuedInviteNotifier().notify(
        recipient_email="a@example.com",
        poll_title="Planning",
        poll_link="http://x/p/tok",
        organizer_name="Olivia",
    )

    assert result == NotificationResult(success=True, task_id="task-1")
    args, kwargs = mock_celery.send_task.call_args
    assert args[0] == notifications.SEND_POLL_INVITE
    assert kwargs["kwargs"]["recipient_email"] == "a@example.com"
    assert kwargs["queue"].endswith("-notifications")


@patch("grouppoll.common.notifications.celery_app")
def test_queued_response_notifier_reports_broker_errors(mock_celery):
    mock_celery.send_task.side_effect = ConnectionError("broker down")

    result = QueuedResponseNotifier().notify(make_event())

    assert result.success is False
    assert "broker down" in result.error


def test_default_notifiers_respect_enabled_flag():
    with patch.object(notifications.settings, "NOTIFICATIONS_ENABLED", False):
        assert notifications.get_invite_notifier() is None
        assert notifications.get_response_notifier() is None
    with patch.object(notifications.settings, "NOTIFICATIONS_ENABLED", True):
        assert isinstance(notifications.get_invite_notifier(), QueuedInviteNotifier)
        assert isinstance(notifications.get_response_notifier(), QueuedResponseNotifier)


@patch("grouppoll.common.notifications.send_via_smtp")
def test_email_invite_notifier(mock_send):
    mock_send.return_value = EmailResult(success=False, error="relay denied")
    config = SmtpConfig("polls@example.com", "smtp.example.com", 587, None, None)

    result = EmailInviteNotifier(config).notify(
        recipient_email="a@example.com",
        poll_title="Planning",
        poll_link="http://x/p/tok",
        organizer_name="Olivia",
        recipient_name="Alice",
    )

    assert result == NotificationResult(success=False, error="relay denied")
    sent_config, to, subject, body, html_body = mock_send.call_args.args
    assert sent_config is config
    assert to == "a@example.com"
    assert "Planning" in subject
    assert "http://x/p/tok" in body


def test_build_alert_message_all_responded():
    text, blocks = build_alert_message(AlertKind.ALL_RESPONDED, make_event(responded_count=3))
    assert text == 'Everyone has responded to "Planning"!'
    assert "All 3 participants" in blocks[0]["text"]["text"]
    assert blocks[-1]["elements"][0]["url"].endswith("/group-polls/7")


def test_build_alert_message_required():
    text, blocks = build_alert_message(
        AlertKind.REQUIRED_RESPONDED, make_event(responder_type="cadre_required")
    )
    assert text == 'Alice responded to "Planning"'
    assert "1/3 responded" in blocks[1]["text"]["text"]


def test_slack_notifier_without_token_is_a_noop():
    with patch("grouppoll.common.notifications.SlackClient") as mock_client:
        result = SlackResponseNotifier(token="").notify(make_event(responded_count=3))
    assert result.success
    mock_client.assert_not_called()


def test_slack_notifier_ignores_uninteresting_events():
    with patch("grouppoll.common.notifications.SlackClient") as mock_client:
        result = SlackResponseNotifier(token="xoxb-1").notify(make_event())
    assert result.success
    mock_client.assert_not_called()


@patch("grouppoll.common.notifications.SlackClient")
def test_slack_notifier_messages_each_cadre_member(mock_client_cls):
    client = mock_client_cls.return_value.__enter__.return_value
    client.lookup_user_id.side_effect = ["U1", None]

    result = SlackResponseNotifier(token="xoxb-1").notify(make_event(responded_count=3))

    assert result.success
    mock_client_cls.assert_called_once_with("xoxb-1")
    client.post_message.assert_called_once()
    channel, text, blocks = client.post_message.call_args.args
    assert channel == "U1"
    assert text.startswith("Everyone has responded")


@patch("grouppoll.common.notifications.SlackClient")
def test_slack_notifier_reports_partial_failures(mock_client_cls):
    client = mock_client_cls.return_value.__enter__.return_value
    client.lookup_user_id.side_effect = [SlackAPIError("invalid_auth"), "U2"]
    client.post_message.side_effect = [httpx.ConnectError("offline")]

    result = SlackResponseNotifier(token="xoxb-1").notify(
        make_event(responder_type="cadre_required")
    )

    assert result.success is False
    assert "lead@example.com" in result.error
    assert "ops@example.com" in result.error
