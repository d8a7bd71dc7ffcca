from grouppoll.common.db.models.base import Base
from grouppoll.common.db.models.users import (
    User,
    EventType,
)
from grouppoll.common.db.models.bookings import (
    Booking,
    BookingAttendee,
    BookingReference,
    BookingStatus,
)
from grouppoll.common.db.models.polls import (
    GroupPoll,
    PollWindow,
    PollParticipant,
    PollResponse,
    PollStatus,
    ParticipantType,
    CADRE_TYPES,
    SlotPayload,
    WindowPayload,
    RosterEntryPayload,
    ParticipantPayload,
    PollSummaryPayload,
)

__all__ = [
    "Base",
    # Users
    "User",
    "EventType",
    # Bookings
    "Booking",
    "BookingAttendee",
    "BookingReference",
    "BookingStatus",
    # Polls
    "GroupPoll",
    "PollWindow",
    "PollParticipant",
    "PollResponse",
    "PollStatus",
    "ParticipantType",
    "CADRE_TYPES",
    # Payloads
    "SlotPayload",
    "WindowPayload",
    "RosterEntryPayload",
    "ParticipantPayload",
    "PollSummaryPayload",
]
