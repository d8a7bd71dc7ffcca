from datetime import date, time

import pytest

from grouppoll.common.db.models import GroupPoll, PollParticipant, PollResponse, PollStatus
from grouppoll.common.errors import BadRequest, FormatError, InvalidState, NotFound, RangeError
from grouppoll.polls.responses import (
    parse_response_slots,
    submit_multi_response,
    submit_response,
)
from grouppoll.polls.schemas import MultiResponseSubmit, ResponseSubmit, SlotInput

JUNE_3 = date(2030, 6, 3)
MORNING = (JUNE_3, time(9, 0), time(12, 0))


def slot(day="2030-06-03", start="09:00", end="10:00") -> SlotInput:
    return SlotInput(date=day, start_time=start, end_time=end)


def slots_of(db_session, participant_id) -> list[tuple]:
    return [
        (r.date, r.start_time, r.end_time)
        for r in db_session.query(PollResponse)
        .filter_by(participant_id=participant_id)
        .order_by(PollResponse.id)
    ]


def test_parse_response_slots_dedupes():
    parsed = parse_response_slots(
        [slot(start="10:00", end="11:00"), slot(), slot(start="10:00", end="11:00")]
    )
    assert parsed == [
        (JUNE_3, time(10, 0), time(11, 0)),
        (JUNE_3, time(9, 0), time(10, 0)),
    ]


# submit_response


def test_submit_response(db_session, make_poll, response_notifier):
    poll = make_poll()
    alice = poll.participants[0]

    result = submit_response(
        db_session,
        alice.access_token,
        ResponseSubmit(
            name=" Alice Liddell ",
            email="alice.l@example.com",
            slots=[slot(), slot(start="10:00", end="11:00")],
        ),
        response_notifier,
    )

    assert result.success is True
    assert result.updated_count == 1
    alice = db_session.get(PollParticipant, alice.id)
    assert alice.has_responded is True
    assert alice.responded_at is not None
    assert (alice.name, alice.email) == ("Alice Liddell", "alice.l@example.com")
    assert slots_of(db_session, alice.id) == [
        (JUNE_3, time(9, 0), time(10, 0)),
        (JUNE_3, time(10, 0), time(11, 0)),
    ]

    # Alice is a required participant, so the organizer hears about it
    [event] = response_notifier.events
    assert event.poll_id == poll.id
    assert event.responder_name == "Alice Liddell"
    assert event.responder_type == "cadre_required"
    assert (event.responded_count, event.total_participants) == (1, 2)


def test_submit_response_replaces_previous_set(db_session, make_poll):
    poll = make_poll(responses={1: [MORNING]})
    bob = poll.participants[1]

    submit_response(
        db_session,
        bob.access_token,
        ResponseSubmit(name="Bob", email="bob@example.com", slots=[slot(start="11:00", end="12:00")]),
    )

    assert slots_of(db_session, bob.id) == [(JUNE_3, time(11, 0), time(12, 0))]


def test_submit_empty_response_means_available_for_nothing(db_session, make_poll):
    poll = make_poll(responses={1: [MORNING]})
    bob = poll.participants[1]

    submit_response(
        db_session, bob.access_token, ResponseSubmit(name="Bob", email="bob@example.com")
    )

    bob = db_session.get(PollParticipant, bob.id)
    assert bob.has_responded is True
    assert slots_of(db_session, bob.id) == []


def test_resubmitting_same_slots_is_idempotent(db_session, make_poll):
    poll = make_poll()
    token = poll.participants[1].access_token
    data = ResponseSubmit(name="Bob", email="bob@example.com", slots=[slot()])

    submit_response(db_session, token, data)
    submit_response(db_session, token, data)

    assert slots_of(db_session, poll.participants[1].id) == [(JUNE_3, time(9, 0), time(10, 0))]


def test_submit_response_client_only_is_quiet(db_session, make_poll, response_notifier):
    poll = make_poll()

    submit_response(
        db_session,
        poll.participants[1].access_token,
        ResponseSubmit(name="Bob", email="bob@example.com", slots=[slot()]),
        response_notifier,
    )

    assert response_notifier.events == []


def test_submit_response_last_one_in_alerts(db_session, make_poll, response_notifier):
    poll = make_poll(responses={0: [MORNING]})

    submit_response(
        db_session,
        poll.participants[1].access_token,
        ResponseSubmit(name="Bob", email="bob@example.com", slots=[slot()]),
        response_notifier,
    )

    [event] = response_notifier.events
    assert (event.responded_count, event.total_participants) == (2, 2)


def test_submit_response_notifier_failure_is_not_raised(db_session, make_poll, make_response_notifier):
    poll = make_poll()
    alice = poll.participants[0]

    result = submit_response(
        db_session,
        alice.access_token,
        ResponseSubmit(name="Alice", email="alice@example.com", slots=[slot()]),
        make_response_notifier(error=RuntimeError("slack down")),
    )

    assert result.success is True
    assert db_session.get(PollParticipant, alice.id).has_responded is True


def test_submit_response_bad_token(db_session, make_poll):
    make_poll()
    with pytest.raises(NotFound):
        submit_response(
            db_session, "nope", ResponseSubmit(name="Bob", email="bob@example.com")
        )


@pytest.mark.parametrize("status", ["closed", "booked", "expired"])
def test_submit_response_inactive_poll(db_session, make_poll, status):
    poll = make_poll(status=status)
    bob = poll.participants[1]

    with pytest.raises(InvalidState) as exc:
        submit_response(
            db_session,
            bob.access_token,
            ResponseSubmit(name="Bob", email="bob@example.com", slots=[slot()]),
        )

    assert exc.value.status == status
    assert db_session.get(PollParticipant, bob.id).has_responded is False


def test_submit_response_to_overdue_poll_expires_it(db_session, make_poll):
    poll = make_poll(date_range_start=date(2020, 1, 1), date_range_end=date(2020, 1, 31))

    with pytest.raises(InvalidState) as exc:
        submit_response(
            db_session,
            poll.participants[1].access_token,
            ResponseSubmit(name="Bob", email="bob@example.com", slots=[slot()]),
        )

    assert exc.value.status == "expired"
    assert db_session.get(GroupPoll, poll.id).status == PollStatus.EXPIRED.value


@pytest.mark.parametrize(
    "data, error",
    [
        (ResponseSubmit(name="Bob", email="bob@example.com", slots=[slot(start="9:00")]), FormatError),
        (ResponseSubmit(name="Bob", email="bob@example.com", slots=[slot(end="24:00")]), RangeError),
        (ResponseSubmit(name="Bob", email="bob@example.com", slots=[slot(end="23:60")]), RangeError),
        (
            ResponseSubmit(name="Bob", email="bob@example.com", slots=[slot(start="10:00", end="09:00")]),
            RangeError,
        ),
        (ResponseSubmit(name="   ", email="bob@example.com"), BadRequest),
        (ResponseSubmit(name="Bob", email="bob-at-example"), BadRequest),
    ],
)
def test_submit_response_validation(db_session, make_poll, data, error):
    poll = make_poll(responses={1: [MORNING]})
    bob = poll.participants[1]

    with pytest.raises(error):
        submit_response(db_session, bob.access_token, data)

    db_session.rollback()
    assert slots_of(db_session, bob.id) == [MORNING]


# submit_multi_response


def test_submit_multi_response(db_session, make_poll, response_notifier):
    poll = make_poll(
        participants=(
            ("Alice", "alice@example.com", "cadre_required"),
            ("Bob", "bob@example.com", "client"),
            ("Carol", "carol@example.com", "client"),
        ),
        responses={0: [MORNING]},
    )
    alice, bob, carol = poll.participants

    result = submit_multi_response(
        db_session,
        poll.share_slug,
        MultiResponseSubmit(participant_ids=[bob.id, carol.id], slots=[slot()]),
        response_notifier,
    )

    assert result.updated_count == 2
    for participant in (bob, carol):
        assert db_session.get(PollParticipant, participant.id).has_responded is True
        assert slots_of(db_session, participant.id) == [(JUNE_3, time(9, 0), time(10, 0))]
    # Alice is untouched
    assert slots_of(db_session, alice.id) == [MORNING]

    # Everyone has now responded: one alert per updated participant
    assert [e.responder_name for e in response_notifier.events] == ["Bob", "Carol"]
    assert all(e.responded_count == 3 for e in response_notifier.events)


def test_submit_multi_response_duplicate_ids(db_session, make_poll):
    poll = make_poll()
    bob = poll.participants[1]

    result = submit_multi_response(
        db_session,
        poll.share_slug,
        MultiResponseSubmit(participant_ids=[bob.id, bob.id], slots=[slot()]),
    )

    assert result.updated_count == 1
    assert len(slots_of(db_session, bob.id)) == 1


def test_submit_multi_response_foreign_participant(db_session, make_poll, other_user):
    poll = make_poll()
    other = make_poll(owner=other_user)
    bob = poll.participants[1]

    with pytest.raises(BadRequest):
        submit_multi_response(
            db_session,
            poll.share_slug,
            MultiResponseSubmit(
                participant_ids=[bob.id, other.participants[0].id], slots=[slot()]
            ),
        )

    # No partial application
    assert db_session.get(PollParticipant, bob.id).has_responded is False
    assert slots_of(db_session, bob.id) == []


def test_submit_multi_response_unknown_slug(db_session, make_poll):
    poll = make_poll()
    with pytest.raises(NotFound):
        submit_multi_response(
            db_session,
            "missing",
            MultiResponseSubmit(participant_ids=[poll.participants[0].id]),
        )


def test_submit_multi_response_closed_poll(db_session, make_poll):
    poll = make_poll(status=PollStatus.CLOSED.value)
    with pytest.raises(InvalidState):
        submit_multi_response(
            db_session,
            poll.share_slug,
            MultiResponseSubmit(participant_ids=[poll.participants[0].id]),
        )


def test_submit_multi_response_bad_slot_writes_nothing(db_session, make_poll):
    poll = make_poll(responses={0: [MORNING]})
    alice = poll.participants[0]

    with pytest.raises(FormatError):
        submit_multi_response(
            db_session,
            poll.share_slug,
            MultiResponseSubmit(participant_ids=[alice.id], slots=[slot(day="2030/06/03")]),
        )

    assert slots_of(db_session, alice.id) == [MORNING]
