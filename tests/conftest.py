from datetime import date, time
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from grouppoll.common.db.connection import engine_options
from grouppoll.common.db.models import (
    Base,
    EventType,
    GroupPoll,
    ParticipantType,
    PollParticipant,
    PollResponse,
    PollStatus,
    PollWindow,
    User,
)
from grouppoll.common.notifications import NotificationResult, ResponseEvent


@pytest.fixture
def test_db(tmp_path):
    """
    A fresh SQLite database file for one test.

    Returns:
        The URL to the test database
    """
    test_db_url = f"sqlite:///{tmp_path / 'grouppoll.db'}"
    with patch("grouppoll.common.settings.DB_URL", test_db_url):
        yield test_db_url


@pytest.fixture
def db_engine(test_db):
    """
    SQLAlchemy engine with every table created.
    """
    engine = create_engine(test_db, **engine_options(test_db))
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    """
    Create a new database session for a test.
    """
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def user(db_session):
    user = User(name="Olivia Organizer", email="olivia@example.com")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def other_user(db_session):
    user = User(name="Mallory", email="mallory@example.com")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def event_type(db_session, user):
    event_type = EventType(
        title="Kickoff Call",
        description="Project kickoff",
        length_minutes=60,
        owner_id=user.id,
    )
    db_session.add(event_type)
    db_session.commit()
    return event_type


@pytest.fixture
def make_poll(db_session, user):
    """
    Build a poll straight into the database.

    windows: (date, start, end) tuples
    participants: (name, email, type) tuples
    responses: {participant index: [(date, start, end), ...]}
    """

    def _make_poll(
        windows=((date(2030, 6, 3), time(9, 0), time(12, 0)),),
        participants=(
            ("Alice", "alice@example.com", ParticipantType.CADRE_REQUIRED.value),
            ("Bob", "bob@example.com", ParticipantType.CLIENT.value),
        ),
        responses=None,
        owner=None,
        **kwargs,
    ) -> GroupPoll:
        fields = {
            "title": "Planning",
            "duration_minutes": 60,
            "date_range_start": date(2030, 6, 1),
            "date_range_end": date(2030, 6, 30),
            "status": PollStatus.ACTIVE.value,
            "user_id": (owner or user).id,
        }
        fields.update(kwargs)
        poll = GroupPoll(**fields)
        poll.windows = [
            PollWindow(date=d, start_time=s, end_time=e) for d, s, e in windows
        ]
        poll.participants = [
            PollParticipant(name=name, email=email, type=type_)
            for name, email, type_ in participants
        ]
        db_session.add(poll)
        db_session.flush()

        for index, slots in (responses or {}).items():
            participant = poll.participants[index]
            participant.has_responded = True
            db_session.add_all(
                PollResponse(participant_id=participant.id, date=d, start_time=s, end_time=e)
                for d, s, e in slots
            )
        db_session.commit()
        db_session.expire_all()
        return poll

    return _make_poll


class RecordingInviteNotifier:
    """Records every invite; fails for addresses listed in `fail_for`."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.calls = []

    def notify(
        self,
        recipient_email,
        poll_title,
        poll_link,
        organizer_name,
        recipient_name=None,
        poll_description=None,
    ):
        self.calls.append(
            {
                "recipient_email": recipient_email,
                "poll_title": poll_title,
                "poll_link": poll_link,
                "organizer_name": organizer_name,
                "recipient_name": recipient_name,
            }
        )
        if recipient_email in self.fail_for:
            return NotificationResult(success=False, error="mailbox unavailable")
        return NotificationResult(success=True)


class RecordingResponseNotifier:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.events: list[ResponseEvent] = []

    def notify(self, event):
        self.events.append(event)
        if self.error:
            raise self.error
        return NotificationResult(success=True)


@pytest.fixture
def invite_notifier():
    return RecordingInviteNotifier()


@pytest.fixture
def response_notifier():
    return RecordingResponseNotifier()


@pytest.fixture
def make_invite_notifier():
    return RecordingInviteNotifier


@pytest.fixture
def make_response_notifier():
    return RecordingResponseNotifier
