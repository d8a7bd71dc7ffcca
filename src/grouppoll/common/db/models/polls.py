"""
Database models for group scheduling polls.

An organizer offers a set of candidate windows; each participant (internal
cadre, required or optional, or an external client) marks the windows that
work for them through a personal link or the poll's shared link.
"""

from __future__ import annotations

import secrets
import string
import datetime as dt
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel
from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from grouppoll.common import settings
from grouppoll.common.db.models.base import Base
from grouppoll.common.timeutils import format_date, format_time

if TYPE_CHECKING:
    from grouppoll.common.db.models.bookings import Booking
    from grouppoll.common.db.models.users import EventType, User


def generate_share_slug(length: int = settings.SHARE_SLUG_LENGTH) -> str:
    """Random URL-safe slug for the poll's shared link."""
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_access_token() -> str:
    """Unguessable per-participant credential, never derived from the id."""
    return secrets.token_urlsafe(settings.ACCESS_TOKEN_BYTES)


class PollStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    EXPIRED = "expired"
    BOOKED = "booked"


class ParticipantType(str, Enum):
    CADRE_REQUIRED = "cadre_required"
    CADRE_OPTIONAL = "cadre_optional"
    CLIENT = "client"


CADRE_TYPES = (ParticipantType.CADRE_REQUIRED.value, ParticipantType.CADRE_OPTIONAL.value)


class GroupPoll(Base):
    """
    A request for group availability over a date range.

    `booking_id` and `status == booked` are only ever written together, in the
    same transaction (see grouppoll.polls.booking).
    """

    __tablename__ = "group_polls"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=settings.DEFAULT_POLL_DURATION
    )
    date_range_start: Mapped[dt.date] = mapped_column(Date, nullable=False)
    date_range_end: Mapped[dt.date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PollStatus.ACTIVE.value
    )
    share_slug: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    event_type_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("event_types.id", ondelete="SET NULL"), nullable=True
    )
    booking_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, unique=True
    )

    selected_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    selected_start_time: Mapped[dt.time | None] = mapped_column(Time, nullable=True)
    selected_end_time: Mapped[dt.time | None] = mapped_column(Time, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: dt.datetime.now(dt.timezone.utc),
        nullable=False,
    )

    user: Mapped[User] = relationship("User")
    event_type: Mapped[EventType | None] = relationship("EventType")
    booking: Mapped[Booking | None] = relationship(
        "Booking", foreign_keys=[booking_id]
    )
    windows: Mapped[list[PollWindow]] = relationship(
        "PollWindow",
        back_populates="poll",
        order_by="PollWindow.id",
        lazy="selectin",
    )
    participants: Mapped[list[PollParticipant]] = relationship(
        "PollParticipant",
        back_populates="poll",
        order_by="PollParticipant.id",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_group_polls_user_id", "user_id"),
        Index("idx_group_polls_status", "status"),
        Index("idx_group_polls_created_at", "created_at"),
    )

    def __init__(self, **kwargs: Any) -> None:
        if "share_slug" not in kwargs:
            kwargs["share_slug"] = generate_share_slug()
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<GroupPoll(id={self.id}, title={self.title}, status={self.status})>"

    @property
    def is_active(self) -> bool:
        return self.status == PollStatus.ACTIVE.value

    @property
    def responses(self) -> list[PollResponse]:
        return [r for p in self.participants for r in p.responses]

    @property
    def responded_count(self) -> int:
        return sum(1 for p in self.participants if p.has_responded)

    @property
    def sorted_windows(self) -> list[PollWindow]:
        return sorted(self.windows, key=lambda w: (w.date, w.start_time))


class PollWindow(Base):
    """A candidate time span on one date. The only legal slot boundaries."""

    __tablename__ = "group_poll_windows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    poll_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("group_polls.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    end_time: Mapped[dt.time] = mapped_column(Time, nullable=False)

    poll: Mapped[GroupPoll] = relationship("GroupPoll", back_populates="windows")

    __table_args__ = (Index("idx_group_poll_windows_poll_id", "poll_id"),)

    def __repr__(self) -> str:
        return f"<PollWindow(id={self.id}, {self.date} {self.start_time}-{self.end_time})>"

    def covers(self, slot_date: dt.date, start: dt.time, end: dt.time) -> bool:
        return self.date == slot_date and self.start_time <= start and self.end_time >= end


class PollParticipant(Base):
    """
    Someone asked for their availability.

    `has_responded` is a convenience flag; response rows are the ground truth
    for aggregation.
    """

    __tablename__ = "group_poll_participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    poll_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("group_polls.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ParticipantType.CLIENT.value
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    access_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    has_responded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    responded_at: Mapped[dt.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    poll: Mapped[GroupPoll] = relationship("GroupPoll", back_populates="participants")
    responses: Mapped[list[PollResponse]] = relationship(
        "PollResponse",
        back_populates="participant",
        order_by="PollResponse.id",
        lazy="selectin",
    )

    __table_args__ = (Index("idx_group_poll_participants_poll_id", "poll_id"),)

    def __init__(self, **kwargs: Any) -> None:
        if "access_token" not in kwargs:
            kwargs["access_token"] = generate_access_token()
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<PollParticipant(id={self.id}, poll_id={self.poll_id}, name={self.name})>"

    @property
    def is_cadre(self) -> bool:
        return self.type in CADRE_TYPES


class PollResponse(Base):
    """One exact (date, start, end) slot a participant says they can make."""

    __tablename__ = "group_poll_responses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    participant_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("group_poll_participants.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    end_time: Mapped[dt.time] = mapped_column(Time, nullable=False)

    participant: Mapped[PollParticipant] = relationship(
        "PollParticipant", back_populates="responses"
    )

    __table_args__ = (
        Index("idx_group_poll_responses_participant_id", "participant_id"),
    )

    def __repr__(self) -> str:
        return f"<PollResponse(id={self.id}, {self.date} {self.start_time}-{self.end_time})>"

    def covers(self, slot_date: dt.date, start: dt.time, end: dt.time) -> bool:
        """True if this response spans the whole slot (not merely overlaps it)."""
        return self.date == slot_date and self.start_time <= start and self.end_time >= end


# Pydantic models for API responses


class SlotPayload(BaseModel):
    date: str  # YYYY-MM-DD
    start_time: str  # HH:MM
    end_time: str  # HH:MM

    @classmethod
    def from_row(cls, row: PollWindow | PollResponse) -> SlotPayload:
        return cls(
            date=format_date(row.date),
            start_time=format_time(row.start_time),
            end_time=format_time(row.end_time),
        )


class WindowPayload(SlotPayload):
    id: int

    @classmethod
    def from_row(cls, row: PollWindow) -> WindowPayload:  # type: ignore[override]
        return cls(id=row.id, **SlotPayload.from_row(row).model_dump())


class RosterEntryPayload(BaseModel):
    """A participant as seen by other participants: no email, no token."""

    id: int
    name: str
    type: str
    has_responded: bool


class ParticipantPayload(RosterEntryPayload):
    """A participant as seen by the organizer."""

    email: str
    access_token: str
    responded_at: dt.datetime | None
    user_id: int | None


class PollSummaryPayload(BaseModel):
    id: int
    title: str
    description: str | None
    duration_minutes: int
    date_range_start: str
    date_range_end: str
    status: str
    share_slug: str
    created_at: dt.datetime
    window_count: int
    participant_count: int
    responded_count: int

    @classmethod
    def from_poll(cls, poll: GroupPoll) -> PollSummaryPayload:
        return cls(
            id=poll.id,
            title=poll.title,
            description=poll.description,
            duration_minutes=poll.duration_minutes,
            date_range_start=format_date(poll.date_range_start),
            date_range_end=format_date(poll.date_range_end),
            status=poll.status,
            share_slug=poll.share_slug,
            created_at=poll.created_at,
            window_count=len(poll.windows),
            participant_count=len(poll.participants),
            responded_count=poll.responded_count,
        )
