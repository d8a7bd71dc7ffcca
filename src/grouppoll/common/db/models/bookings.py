"""
Confirmed bookings created from group polls.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from grouppoll.common.db.models.base import Base


def generate_booking_uid() -> str:
    return secrets.token_urlsafe(16)


class BookingStatus(str, Enum):
    ACCEPTED = "accepted"


class Booking(Base):
    """
    A meeting on the calendar.

    `poll_id` records where the booking came from. It is deliberately not a
    foreign key: deleting the poll's administrative record leaves the booking.
    """

    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uid: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BookingStatus.ACCEPTED.value
    )
    event_type_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("event_types.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    poll_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    attendees: Mapped[list[BookingAttendee]] = relationship(
        "BookingAttendee",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingAttendee.id",
        lazy="selectin",
    )
    references: Mapped[list[BookingReference]] = relationship(
        "BookingReference",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_bookings_user_id", "user_id"),
        Index("idx_bookings_poll_id", "poll_id"),
    )

    def __init__(self, **kwargs: Any) -> None:
        if "uid" not in kwargs:
            kwargs["uid"] = generate_booking_uid()
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, uid={self.uid}, title={self.title})>"


class BookingAttendee(Base):
    __tablename__ = "booking_attendees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    time_zone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")

    booking: Mapped[Booking] = relationship("Booking", back_populates="attendees")

    __table_args__ = (Index("idx_booking_attendees_booking_id", "booking_id"),)


class BookingReference(Base):
    """An external calendar entry created for a booking."""

    __tablename__ = "booking_references"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    uid: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    meeting_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    meeting_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_calendar_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    booking: Mapped[Booking] = relationship("Booking", back_populates="references")

    __table_args__ = (Index("idx_booking_references_booking_id", "booking_id"),)
