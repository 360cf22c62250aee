"""
Ownership-checked reads and toggles on meetings and their transcripts.
"""
from typing import List, Optional, Tuple

from sqlalchemy import select

from postmeeting.database import Database
from postmeeting.exceptions import NotFound
from postmeeting.logging_config import get_logger
from postmeeting.models import BotJob, Meeting, Transcript

logger = get_logger(__name__)


class MeetingService:
    """Meeting queries scoped to the requesting user."""

    def __init__(self, database: Database):
        self.database = database

    async def get_meeting(self, user_id: str, meeting_id: int) -> Meeting:
        """
        Load a meeting owned by the user.

        Raises:
            NotFound: Meeting missing or owned by another user
        """
        async with self.database.session() as session:
            result = await session.execute(
                select(Meeting).where(Meeting.id == meeting_id, Meeting.user_id == user_id)
            )
            meeting = result.scalar_one_or_none()
        if meeting is None:
            raise NotFound("Meeting not found")
        return meeting

    async def list_meetings(self, user_id: str) -> List[Tuple[Meeting, Optional[BotJob]]]:
        """Meetings with their bot job, soonest first."""
        async with self.database.session() as session:
            result = await session.execute(
                select(Meeting, BotJob)
                .outerjoin(BotJob, BotJob.meeting_id == Meeting.id)
                .where(Meeting.user_id == user_id)
                .order_by(Meeting.start_time)
            )
            return [(meeting, bot_job) for meeting, bot_job in result.all()]

    async def set_notetaker(self, user_id: str, meeting_id: int, enabled: bool) -> Meeting:
        """Toggle automatic bot joining for one meeting."""
        async with self.database.session() as session:
            result = await session.execute(
                select(Meeting).where(Meeting.id == meeting_id, Meeting.user_id == user_id)
            )
            meeting = result.scalar_one_or_none()
            if meeting is None:
                raise NotFound("Meeting not found")
            meeting.notetaker_enabled = enabled

        logger.info("notetaker_toggled", meeting_id=meeting_id, enabled=enabled)
        return meeting

    async def latest_transcript(self, user_id: str, meeting_id: int) -> Optional[Transcript]:
        """Most recent transcript of a meeting owned by the user."""
        await self.get_meeting(user_id, meeting_id)
        async with self.database.session() as session:
            result = await session.execute(
                select(Transcript)
                .where(Transcript.meeting_id == meeting_id)
                .order_by(Transcript.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()
