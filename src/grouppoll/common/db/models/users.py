"""
Organizer identities and the event types they can book.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from grouppoll.common.db.models.base import Base


def generate_api_key() -> str:
    return f"gp_{secrets.token_hex(24)}"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    api_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __init__(self, **kwargs: Any) -> None:
        if "api_key" not in kwargs:
            kwargs["api_key"] = generate_api_key()
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"

    @property
    def display_name(self) -> str:
        return self.name or self.email


class EventType(Base):
    """A kind of meeting that can be booked (title, default length, owner)."""

    __tablename__ = "event_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    length_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    owner_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    owner: Mapped[User | None] = relationship("User")

    __table_args__ = (Index("idx_event_types_owner_id", "owner_id"),)

    def __repr__(self) -> str:
        return f"<EventType(id={self.id}, title={self.title})>"
