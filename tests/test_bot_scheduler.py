"""
Tests for bot job creation and scheduled joining.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy import func, select

from postmeeting.exceptions import ExternalServiceError, InvalidRequest, NotFound
from postmeeting.models import BotJob
from postmeeting.services.bot_client import ExternalBot
from postmeeting.services import bot_scheduler
from postmeeting.services.bot_scheduler import BotScheduler
from postmeeting.services.meetings import MeetingService

from tests.conftest import USER_ID

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def recall():
    client = AsyncMock()
    counter = {"n": 0}

    async def create_bot(meeting_url, bot_name, meeting_start_time=None):
        counter["n"] += 1
        return ExternalBot(id=f"bot-{counter['n']}", status="ready")

    client.create_bot.side_effect = create_bot
    return client


@pytest.fixture
def scheduler(database, recall):
    return BotScheduler(database, recall, MeetingService(database), bot_name="Notetaker")


async def _job_count(database):
    async with database.session() as session:
        return (await session.execute(select(func.count()).select_from(BotJob))).scalar_one()


@pytest.mark.unit
class TestCreateForMeeting:
    """Test manual bot requests."""

    async def test_creates_pending_job(self, scheduler, recall, make_meeting):
        meeting = await make_meeting(start_time=NOW + timedelta(minutes=10))

        bot_job, created = await scheduler.create_for_meeting(USER_ID, meeting.id)

        assert created is True
        assert bot_job.status == "pending"
        assert bot_job.external_bot_id == "bot-1"
        assert bot_job.meeting_url == "https://zoom.us/j/123456789"
        args = recall.create_bot.call_args.args
        assert args[0] == "https://zoom.us/j/123456789"
        assert args[1] == "Notetaker"

    async def test_explicit_url_and_name_override(self, scheduler, recall, make_meeting):
        meeting = await make_meeting(meeting_url=None)

        bot_job, created = await scheduler.create_for_meeting(
            USER_ID, meeting.id, meeting_url="https://meet.google.com/abc-defg-hij", bot_name="Scribe"
        )

        assert created is True
        assert bot_job.meeting_url == "https://meet.google.com/abc-defg-hij"
        assert recall.create_bot.call_args.args[1] == "Scribe"

    async def test_existing_job_is_returned(self, scheduler, recall, database, make_meeting, make_bot_job):
        meeting = await make_meeting()
        existing = await make_bot_job(meeting, "bot-existing")

        bot_job, created = await scheduler.create_for_meeting(USER_ID, meeting.id)

        assert created is False
        assert bot_job.id == existing.id
        recall.create_bot.assert_not_called()

    async def test_lost_insert_race_reports_orphaned_bot(self, scheduler, recall, database, make_meeting, monkeypatch):
        meeting = await make_meeting()

        async def create_bot_while_another_request_wins(meeting_url, bot_name, meeting_start_time=None):
            async with database.session() as session:
                session.add(BotJob(
                    meeting_id=meeting.id,
                    external_bot_id="bot-winner",
                    status="pending",
                    meeting_url=meeting_url,
                ))
            return ExternalBot(id="bot-loser", status="ready")

        recall.create_bot.side_effect = create_bot_while_another_request_wins

        logger = Mock()
        monkeypatch.setattr(bot_scheduler, "logger", logger)

        bot_job, created = await scheduler.create_for_meeting(USER_ID, meeting.id)

        assert created is False
        assert bot_job.external_bot_id == "bot-winner"
        assert await _job_count(database) == 1
        logger.error.assert_called_once_with(
            "orphaned_external_bot",
            meeting_id=meeting.id,
            external_bot_id="bot-loser",
            meeting_url="https://zoom.us/j/123456789",
        )

    async def test_meeting_without_url(self, scheduler, recall, make_meeting):
        meeting = await make_meeting(meeting_url=None)

        with pytest.raises(InvalidRequest):
            await scheduler.create_for_meeting(USER_ID, meeting.id)
        recall.create_bot.assert_not_called()

    async def test_other_users_meeting(self, scheduler, make_meeting):
        meeting = await make_meeting(user_id="someone-else")

        with pytest.raises(NotFound):
            await scheduler.create_for_meeting(USER_ID, meeting.id)

    async def test_provider_failure_creates_no_job(self, scheduler, recall, database, make_meeting):
        meeting = await make_meeting()
        recall.create_bot.side_effect = ExternalServiceError("create_bot failed: 400", status_code=400)

        with pytest.raises(ExternalServiceError):
            await scheduler.create_for_meeting(USER_ID, meeting.id)
        assert await _job_count(database) == 0


@pytest.mark.unit
class TestJoinUpcomingMeetings:
    """Test the scheduled join pass."""

    async def test_joins_meeting_at_lead_time(self, scheduler, make_meeting):
        meeting = await make_meeting(start_time=NOW + timedelta(minutes=5))

        result = await scheduler.join_upcoming_meetings(now=NOW)

        assert [b["meeting_id"] for b in result.joined] == [meeting.id]
        assert result.errors == []
        assert result.to_dict()["joined"] == 1

    async def test_meeting_outside_join_window_is_skipped(self, scheduler, recall, make_meeting):
        await make_meeting(start_time=NOW + timedelta(minutes=30))

        result = await scheduler.join_upcoming_meetings(now=NOW)

        assert result.joined == []
        recall.create_bot.assert_not_called()

    async def test_ineligible_meetings_are_skipped(self, scheduler, recall, make_meeting, make_bot_job):
        await make_meeting(start_time=NOW + timedelta(minutes=5), notetaker_enabled=False)
        await make_meeting(start_time=NOW + timedelta(minutes=5), meeting_url=None)
        await make_meeting(start_time=NOW - timedelta(minutes=1))
        has_bot = await make_meeting(start_time=NOW + timedelta(minutes=5))
        await make_bot_job(has_bot, "bot-existing")

        result = await scheduler.join_upcoming_meetings(now=NOW)

        assert result.joined == []
        recall.create_bot.assert_not_called()

    async def test_uses_per_user_lead_time(self, scheduler, make_meeting):
        await scheduler.save_user_settings(USER_ID, 30)
        mine = await make_meeting(start_time=NOW + timedelta(minutes=30))
        await make_meeting(user_id="other-user", start_time=NOW + timedelta(minutes=30))

        result = await scheduler.join_upcoming_meetings(now=NOW)

        assert [b["meeting_id"] for b in result.joined] == [mine.id]

    async def test_second_run_does_not_duplicate(self, scheduler, database, make_meeting):
        await make_meeting(start_time=NOW + timedelta(minutes=5))

        await scheduler.join_upcoming_meetings(now=NOW)
        second = await scheduler.join_upcoming_meetings(now=NOW + timedelta(minutes=1))

        assert second.joined == []
        assert await _job_count(database) == 1

    async def test_failures_are_collected(self, scheduler, recall, database, make_meeting):
        first = await make_meeting(start_time=NOW + timedelta(minutes=4))
        second = await make_meeting(start_time=NOW + timedelta(minutes=6))

        async def create_bot(meeting_url, bot_name, meeting_start_time=None):
            if meeting_start_time is not None and meeting_start_time == NOW + timedelta(minutes=4):
                raise ExternalServiceError("create_bot failed: 503", status_code=503)
            return ExternalBot(id="bot-ok", status="ready")

        recall.create_bot.side_effect = create_bot

        result = await scheduler.join_upcoming_meetings(now=NOW)

        assert [b["meeting_id"] for b in result.joined] == [second.id]
        assert result.errors == [{"meeting_id": first.id, "error": "create_bot failed: 503"}]
        assert await _job_count(database) == 1


@pytest.mark.unit
class TestUserSettings:
    """Test bot lead time preferences."""

    async def test_defaults(self, scheduler):
        assert await scheduler.get_user_settings(USER_ID) == {"bot_join_minutes_before": 5}

    async def test_save_and_update(self, scheduler):
        await scheduler.save_user_settings(USER_ID, 10)
        await scheduler.save_user_settings(USER_ID, 0)

        assert await scheduler.get_user_settings(USER_ID) == {"bot_join_minutes_before": 0}

    @pytest.mark.parametrize("minutes", [-1, 61])
    async def test_out_of_range(self, scheduler, minutes):
        with pytest.raises(InvalidRequest):
            await scheduler.save_user_settings(USER_ID, minutes)

    async def test_set_notetaker(self, scheduler, make_meeting):
        meeting = await make_meeting(notetaker_enabled=False)

        updated = await scheduler.set_notetaker(USER_ID, meeting.id, True)

        assert updated.notetaker_enabled is True
        with pytest.raises(NotFound):
            await scheduler.set_notetaker("someone-else", meeting.id, False)
