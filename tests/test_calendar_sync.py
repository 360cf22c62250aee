"""
Tests for calendar synchronization and meeting link detection.
"""
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from postmeeting.exceptions import NotConnected
from postmeeting.models import Meeting
from postmeeting.services.calendar_sync import CalendarSync, detect_meeting_platform, extract_meeting_url

from tests.conftest import NOW_MS, USER_ID

API = "https://www.googleapis.com/calendar/v3"
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestMeetingLinks:
    """Test meeting URL extraction from event fields."""

    def test_hangout_link_wins(self):
        event = {
            "hangoutLink": "https://meet.google.com/abc-defg-hij",
            "description": "Backup: https://zoom.us/j/987654321",
        }
        assert extract_meeting_url(event) == "https://meet.google.com/abc-defg-hij"

    def test_zoom_link_in_description(self):
        event = {"description": "Join here https://us02web.zoom.us/j/812345678?pwd=abc123 thanks"}

        assert extract_meeting_url(event) == "https://us02web.zoom.us/j/812345678?pwd=abc123"
        assert detect_meeting_platform(event) == "zoom"

    def test_teams_link_in_location(self):
        event = {"location": "https://teams.microsoft.com/l/meetup-join/19%3ameeting_abc%40thread.v2/0"}

        assert extract_meeting_url(event).startswith("https://teams.microsoft.com/l/meetup-join/")
        assert detect_meeting_platform(event) == "teams"

    def test_meet_link_in_description(self):
        event = {"description": "Video call: https://meet.google.com/xyz-abcd-efg"}

        assert extract_meeting_url(event) == "https://meet.google.com/xyz-abcd-efg"
        assert detect_meeting_platform(event) == "google"

    def test_no_link(self):
        event = {"location": "Conference room 4", "description": None}

        assert extract_meeting_url(event) is None
        assert detect_meeting_platform(event) == "unknown"


@pytest.fixture
def calendar_sync(database, token_manager, adapters):
    return CalendarSync(database, token_manager, adapters["google"])


def _route_events(fake_http, items):
    fake_http.routes.clear()
    fake_http.add("GET", f"{API}/users/me/calendarList", json_body={"items": [{"id": "primary", "summary": "Me"}]})
    fake_http.add("GET", f"{API}/calendars/primary/events", json_body={"items": items})


async def _meetings(database):
    async with database.session() as session:
        result = await session.execute(select(Meeting).order_by(Meeting.calendar_event_id))
        return result.scalars().all()


EVENTS = [
    {
        "id": "evt-1",
        "summary": "Client review",
        "start": {"dateTime": "2026-03-03T15:00:00Z"},
        "end": {"dateTime": "2026-03-03T16:00:00Z"},
        "hangoutLink": "https://meet.google.com/abc-defg-hij",
    },
    {
        "id": "evt-2",
        "summary": "Planning",
        "start": {"dateTime": "2026-03-04T10:00:00Z"},
        "description": "https://zoom.us/j/123456789",
    },
    {"id": "evt-3", "summary": "Lunch", "start": {"date": "2026-03-05"}},
    {"id": "evt-4", "summary": "Cancelled call", "status": "cancelled"},
    {"summary": "No id"},
]


@pytest.mark.unit
class TestCalendarSync:
    """Test mirroring calendar events into meetings."""

    async def test_sync_stores_events(self, calendar_sync, store, database, fake_http):
        await store.upsert(USER_ID, "google", "g-token", "g-refresh", NOW_MS + 60_000)
        _route_events(fake_http, EVENTS)

        result = await calendar_sync.sync(USER_ID, now=NOW)

        assert result.to_dict() == {"events": 3, "meetings_with_url": 2}
        meetings = await _meetings(database)
        assert [m.calendar_event_id for m in meetings] == ["evt-1", "evt-2", "evt-3"]
        assert meetings[0].meeting_url == "https://meet.google.com/abc-defg-hij"
        assert meetings[0].meeting_platform == "google"
        assert meetings[1].meeting_platform == "zoom"
        assert meetings[2].meeting_url is None
        assert meetings[2].start_time is not None
        assert all(m.notetaker_enabled is False for m in meetings)
        assert fake_http.requests[0].headers["Authorization"] == "Bearer g-token"

    async def test_resync_preserves_notetaker_flag(self, calendar_sync, store, database, fake_http):
        await store.upsert(USER_ID, "google", "g-token", "g-refresh", NOW_MS + 60_000)
        _route_events(fake_http, EVENTS[:1])
        await calendar_sync.sync(USER_ID, now=NOW)

        meeting = (await _meetings(database))[0]
        async with database.session() as session:
            stored = await session.get(Meeting, meeting.id)
            stored.notetaker_enabled = True

        renamed = dict(EVENTS[0], summary="Client review (moved)", start={"dateTime": "2026-03-03T17:00:00Z"})
        _route_events(fake_http, [renamed])
        await calendar_sync.sync(USER_ID, now=NOW)

        meetings = await _meetings(database)
        assert len(meetings) == 1
        assert meetings[0].id == meeting.id
        assert meetings[0].title == "Client review (moved)"
        assert meetings[0].start_time.hour == 17
        assert meetings[0].notetaker_enabled is True

    async def test_not_connected(self, calendar_sync, fake_http):
        with pytest.raises(NotConnected):
            await calendar_sync.sync(USER_ID, now=NOW)
        assert fake_http.requests == []
