"""
Mirror upcoming Google Calendar events into the meetings table.
"""
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from postmeeting.database import Database
from postmeeting.logging_config import LogContext, get_logger
from postmeeting.models import Meeting, Provider
from postmeeting.models.base import utcnow
from postmeeting.services.providers import GoogleAdapter
from postmeeting.services.token_manager import TokenLifecycleManager
from postmeeting.utils import parse_timestamp

logger = get_logger(__name__)

ZOOM_URL = re.compile(r"https?://(?:[a-z0-9-]+\.)?zoom\.us/[a-z]/[0-9]+(?:\?pwd=[\w-]+)?", re.IGNORECASE)
MEET_URL = re.compile(r"https?://meet\.google\.com/[a-z]{3}-[a-z]{4}-[a-z]{3}", re.IGNORECASE)
TEAMS_URL = re.compile(r"https?://teams\.microsoft\.com/l/meetup-join/\S+", re.IGNORECASE)


def detect_meeting_platform(event: Dict[str, Any]) -> str:
    """Guess the conferencing platform: zoom, google, teams or unknown."""
    text = " ".join(
        event.get(key) or "" for key in ("location", "description", "hangoutLink")
    ).lower()

    if "zoom.us" in text:
        return "zoom"
    if "meet.google.com" in text or "google.com/hangouts" in text:
        return "google"
    if "teams.microsoft.com" in text or "teams.live.com" in text:
        return "teams"
    return "unknown"


def extract_meeting_url(event: Dict[str, Any]) -> Optional[str]:
    """
    Find the join URL of a calendar event.

    The Meet ``hangoutLink`` wins; otherwise location and description are
    searched for Zoom, Meet and Teams links in that order.
    """
    if event.get("hangoutLink"):
        return event["hangoutLink"]

    text = f"{event.get('location') or ''} {event.get('description') or ''}"
    for pattern in (ZOOM_URL, MEET_URL, TEAMS_URL):
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def _event_time(value: Optional[Dict[str, Any]]) -> Optional[datetime]:
    # all-day events carry only "date"
    if not value:
        return None
    return parse_timestamp(value.get("dateTime") or value.get("date"))


@dataclass
class SyncResult:
    events: int = 0
    meetings_with_url: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"events": self.events, "meetings_with_url": self.meetings_with_url}


class CalendarSync:
    """Pulls events with a fresh Google token and upserts meetings."""

    def __init__(
        self,
        database: Database,
        token_manager: TokenLifecycleManager,
        google: GoogleAdapter,
        lookahead_days: int = 90,
    ):
        self.database = database
        self.token_manager = token_manager
        self.google = google
        self.lookahead = timedelta(days=lookahead_days)

    async def sync(self, user_id: str, now: Optional[datetime] = None) -> SyncResult:
        """
        Sync the user's upcoming events.

        Existing meetings keep their ``notetaker_enabled`` flag; every other
        field is overwritten with the calendar's current data.

        Raises:
            NotConnected, ReauthRequired, RefreshFailed: From token lookup
            ExternalServiceError: Calendar list could not be fetched
        """
        now = now or utcnow()
        with LogContext(user_id=user_id):
            access_token = await self.token_manager.get_valid_access_token(user_id, Provider.GOOGLE)
            events = await self.google.list_calendar_events(access_token, now, now + self.lookahead)

            result = SyncResult()
            async with self.database.session() as session:
                for event in events:
                    if not event.get("id") or event.get("status") == "cancelled":
                        continue

                    meeting_url = extract_meeting_url(event)
                    stmt = self.database.upsert(Meeting).values(
                        user_id=user_id,
                        calendar_event_id=event["id"],
                        calendar_id=event.get("calendarId"),
                        title=event.get("summary"),
                        description=event.get("description"),
                        start_time=_event_time(event.get("start")),
                        end_time=_event_time(event.get("end")),
                        meeting_url=meeting_url,
                        meeting_platform=detect_meeting_platform(event),
                        notetaker_enabled=False,
                        created_at=now,
                        updated_at=now,
                    )
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[Meeting.user_id, Meeting.calendar_event_id],
                        set_={
                            "calendar_id": stmt.excluded.calendar_id,
                            "title": stmt.excluded.title,
                            "description": stmt.excluded.description,
                            "start_time": stmt.excluded.start_time,
                            "end_time": stmt.excluded.end_time,
                            "meeting_url": stmt.excluded.meeting_url,
                            "meeting_platform": stmt.excluded.meeting_platform,
                            "updated_at": now,
                        },
                    )
                    await session.execute(stmt)

                    result.events += 1
                    if meeting_url:
                        result.meetings_with_url += 1

            logger.info("calendar_synced", events=result.events, meetings_with_url=result.meetings_with_url)
            return result
