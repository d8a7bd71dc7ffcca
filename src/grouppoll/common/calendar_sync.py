"""
External calendar sync for bookings.

Given a confirmed booking, the sync collaborator creates the calendar event
(and sends the calendar invites) and hands back references to what it created.
Sync is an enhancement: failures are retried a little and then only logged.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Protocol

import httpx

from grouppoll.common import settings

logger = logging.getLogger(__name__)


class CalendarSyncError(Exception):
    """The calendar service rejected or could not process the event."""


@dataclass
class CalendarAttendee:
    name: str
    email: str
    time_zone: str = "UTC"


@dataclass
class CalendarEvent:
    uid: str
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    organizer_name: str
    organizer_email: str
    attendees: list[CalendarAttendee] = field(default_factory=list)

    def to_json(self) -> dict:
        data = asdict(self)
        data["start_time"] = self.start_time.isoformat()
        data["end_time"] = self.end_time.isoformat()
        return data


@dataclass
class CalendarReference:
    type: str
    uid: str = ""
    meeting_id: str | None = None
    meeting_url: str | None = None
    external_calendar_id: str | None = None


class CalendarSync(Protocol):
    def create_event(self, event: CalendarEvent) -> list[CalendarReference]: ...


class HttpCalendarSync:
    """Posts events to a calendar-sync service over HTTP."""

    def __init__(
        self,
        url: str,
        token: str | None = None,
        timeout: float = settings.CALENDAR_SYNC_TIMEOUT,
    ):
        self.url = url
        self.token = token
        self.timeout = timeout

    def create_event(self, event: CalendarEvent) -> list[CalendarReference]:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        response = httpx.post(
            self.url, json=event.to_json(), headers=headers, timeout=self.timeout
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict) or "references" not in data:
            raise CalendarSyncError(f"Unexpected calendar sync response: {data!r}")
        return [
            CalendarReference(
                type=ref["type"],
                uid=ref.get("uid") or "",
                meeting_id=ref.get("meeting_id"),
                meeting_url=ref.get("meeting_url"),
                external_calendar_id=ref.get("external_calendar_id"),
            )
            for ref in data["references"]
        ]


def get_calendar_sync() -> CalendarSync | None:
    if not settings.CALENDAR_SYNC_URL:
        return None
    return HttpCalendarSync(settings.CALENDAR_SYNC_URL, settings.CALENDAR_SYNC_TOKEN)


def sync_with_retry(
    syncer: CalendarSync,
    event: CalendarEvent,
    attempts: int = settings.CALENDAR_SYNC_ATTEMPTS,
    backoff: float = settings.CALENDAR_SYNC_BACKOFF_SECONDS,
) -> list[CalendarReference] | None:
    """Create the calendar event, retrying transient failures.

    Returns the references, or None once all attempts have failed.
    """
    for attempt in range(1, attempts + 1):
        try:
            return syncer.create_event(event)
        except (httpx.HTTPError, CalendarSyncError) as e:
            if attempt < attempts:
                logger.warning(
                    f"Calendar sync for booking {event.uid} failed "
                    f"(attempt {attempt}/{attempts}), retrying in {backoff}s: {e}"
                )
                time.sleep(backoff)
                continue
            logger.error(
                f"Calendar sync for booking {event.uid} failed after {attempts} attempts: {e}"
            )
    return None
