"""
Creating bot jobs, on request and ahead of upcoming meetings.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from postmeeting.database import Database
from postmeeting.exceptions import InvalidRequest
from postmeeting.logging_config import get_logger
from postmeeting.models import BotJob, BotStatus, Meeting, UserSettings
from postmeeting.models.base import utcnow
from postmeeting.monitoring import bots_created_total, record_error
from postmeeting.services.bot_client import RecallClient
from postmeeting.services.meetings import MeetingService
from postmeeting.utils import as_utc

logger = get_logger(__name__)

MIN_JOIN_MINUTES = 0
MAX_JOIN_MINUTES = 60


@dataclass
class JoinResult:
    """Outcome of one join-upcoming-meetings run."""

    joined: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"joined": len(self.joined), "bots": self.joined, "errors": self.errors}


class BotScheduler:
    """Creates at most one bot job per meeting."""

    def __init__(
        self,
        database: Database,
        client: RecallClient,
        meetings: MeetingService,
        bot_name: str = "Post-Meeting Assistant",
        default_join_minutes: int = 5,
        join_window_minutes: int = 5,
        lookahead_minutes: int = 60,
    ):
        self.database = database
        self.client = client
        self.meetings = meetings
        self.bot_name = bot_name
        self.default_join_minutes = default_join_minutes
        self.join_window = timedelta(minutes=join_window_minutes)
        self.lookahead = timedelta(minutes=lookahead_minutes)

    async def _existing_job(self, meeting_id: int) -> Optional[BotJob]:
        async with self.database.session() as session:
            result = await session.execute(select(BotJob).where(BotJob.meeting_id == meeting_id))
            return result.scalar_one_or_none()

    async def _launch(
        self,
        meeting: Meeting,
        meeting_url: str,
        start_time: Optional[datetime],
        bot_name: str,
        trigger: str,
    ) -> Tuple[BotJob, bool]:
        try:
            external = await self.client.create_bot(meeting_url, bot_name, as_utc(start_time))
        except Exception:
            bots_created_total.labels(trigger=trigger, status="failed").inc()
            raise

        try:
            async with self.database.session() as session:
                bot_job = BotJob(
                    meeting_id=meeting.id,
                    external_bot_id=external.id,
                    status=BotStatus.PENDING.value,
                    meeting_url=meeting_url,
                )
                session.add(bot_job)
                await session.flush()
        except IntegrityError:
            # another request created the job first; unique meeting_id keeps theirs.
            # The bot just created at the provider is tracked by nothing and must be
            # removed there by hand, so its id goes out at error level.
            bots_created_total.labels(trigger=trigger, status="orphaned").inc()
            logger.error(
                "orphaned_external_bot",
                meeting_id=meeting.id,
                external_bot_id=external.id,
                meeting_url=meeting_url,
            )
            return await self._existing_job(meeting.id), False

        bots_created_total.labels(trigger=trigger, status="success").inc()
        logger.info(
            "bot_job_created",
            meeting_id=meeting.id,
            bot_job_id=bot_job.id,
            external_bot_id=external.id,
            trigger=trigger,
        )
        return bot_job, True

    async def create_for_meeting(
        self,
        user_id: str,
        meeting_id: int,
        meeting_url: Optional[str] = None,
        meeting_start_time: Optional[datetime] = None,
        bot_name: Optional[str] = None,
    ) -> Tuple[BotJob, bool]:
        """
        Request a bot for a meeting the user owns.

        Args:
            user_id: Requesting user
            meeting_id: Meeting to record
            meeting_url: Overrides the meeting's stored URL
            meeting_start_time: Overrides the meeting's start time
            bot_name: Display name of the bot

        Returns:
            (bot job, created) where created is False when a job already existed

        Raises:
            NotFound: Meeting missing or owned by another user
            InvalidRequest: No meeting URL known
            ExternalServiceError: Bot provider rejected the request
        """
        meeting = await self.meetings.get_meeting(user_id, meeting_id)

        existing = await self._existing_job(meeting.id)
        if existing is not None:
            logger.info("bot_job_exists", meeting_id=meeting.id, bot_job_id=existing.id)
            return existing, False

        url = meeting_url or meeting.meeting_url
        if not url:
            raise InvalidRequest("Meeting has no meeting URL")

        return await self._launch(
            meeting,
            url,
            meeting_start_time or meeting.start_time,
            bot_name or self.bot_name,
            trigger="manual",
        )

    async def join_upcoming_meetings(self, now: Optional[datetime] = None) -> JoinResult:
        """
        Create bots for meetings whose configured lead time has arrived.

        Picks meetings with a URL and the notetaker enabled that have no bot
        yet and start within the lookahead window, then joins those whose
        ``start - lead`` is within the join window of now.

        Returns:
            JoinResult with created bots and per-meeting failures
        """
        now = now or utcnow()
        async with self.database.session() as session:
            result = await session.execute(
                select(Meeting)
                .outerjoin(BotJob, BotJob.meeting_id == Meeting.id)
                .where(
                    Meeting.meeting_url.isnot(None),
                    Meeting.notetaker_enabled.is_(True),
                    BotJob.id.is_(None),
                    Meeting.start_time >= now,
                    Meeting.start_time <= now + self.lookahead,
                )
                .order_by(Meeting.start_time)
            )
            meetings = result.scalars().all()

            settings_result = await session.execute(select(UserSettings))
            join_minutes = {s.user_id: s.bot_join_minutes_before for s in settings_result.scalars().all()}

        outcome = JoinResult()
        for meeting in meetings:
            minutes = join_minutes.get(meeting.user_id, self.default_join_minutes)
            join_time = as_utc(meeting.start_time) - timedelta(minutes=minutes)
            if abs(now - join_time) > self.join_window:
                continue

            try:
                bot_job, created = await self._launch(
                    meeting,
                    meeting.meeting_url,
                    meeting.start_time,
                    self.bot_name,
                    trigger="scheduled",
                )
            except Exception as e:
                record_error(type(e).__name__, "bot_scheduler")
                logger.error("scheduled_join_failed", meeting_id=meeting.id, error=str(e))
                outcome.errors.append({"meeting_id": meeting.id, "error": str(e)})
                continue

            if created:
                outcome.joined.append({
                    "meeting_id": meeting.id,
                    "bot_job_id": bot_job.id,
                    "external_bot_id": bot_job.external_bot_id,
                })

        logger.info("join_upcoming_finished", candidates=len(meetings), joined=len(outcome.joined))
        return outcome

    async def get_user_settings(self, user_id: str) -> Dict[str, Any]:
        """Scheduling preferences of a user, defaults applied."""
        async with self.database.session() as session:
            result = await session.execute(select(UserSettings).where(UserSettings.user_id == user_id))
            settings = result.scalar_one_or_none()
        minutes = settings.bot_join_minutes_before if settings else self.default_join_minutes
        return {"bot_join_minutes_before": minutes}

    async def save_user_settings(self, user_id: str, minutes: int) -> Dict[str, Any]:
        """
        Store the user's bot lead time.

        Raises:
            InvalidRequest: Outside 0-60 minutes
        """
        if not MIN_JOIN_MINUTES <= minutes <= MAX_JOIN_MINUTES:
            raise InvalidRequest(
                f"bot_join_minutes_before must be between {MIN_JOIN_MINUTES} and {MAX_JOIN_MINUTES}"
            )

        now = utcnow()
        stmt = self.database.upsert(UserSettings).values(
            user_id=user_id,
            bot_join_minutes_before=minutes,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserSettings.user_id],
            set_={"bot_join_minutes_before": minutes, "updated_at": now},
        )
        async with self.database.session() as session:
            await session.execute(stmt)

        logger.info("user_settings_saved", user_id=user_id, bot_join_minutes_before=minutes)
        return {"bot_join_minutes_before": minutes}

    async def set_notetaker(self, user_id: str, meeting_id: int, enabled: bool) -> Meeting:
        """Opt a meeting in or out of scheduled joining."""
        return await self.meetings.set_notetaker(user_id, meeting_id, enabled)
