"""
Bot polling state machine.

Each poll reads the external bot status, maps it onto the internal lifecycle

    pending -> joining -> recording -> processing -> completed
                                   (any state) -> failed

and writes it back unconditionally, so repeated polls are idempotent. When a
bot is completed the transcript is fetched and upserted by bot job id, so at
most one transcript row exists per bot job however many polls or pollers run.
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update

from postmeeting.database import Database
from postmeeting.exceptions import NotFound
from postmeeting.logging_config import LogContext, get_logger
from postmeeting.models import ACTIVE_STATUSES, BotJob, BotStatus, Meeting, Transcript
from postmeeting.models.base import utcnow
from postmeeting.monitoring import (
    bot_poll_batch_duration,
    bot_polls_total,
    record_error,
    track_time,
    transcripts_saved_total,
)
from postmeeting.services.bot_client import ExternalBot, RecallClient
from postmeeting.utils import format_duration

logger = get_logger(__name__)


EXTERNAL_STATUS_MAP: Dict[str, BotStatus] = {
    **{status.value: status for status in BotStatus},
    # Recall.ai status_changes codes
    "ready": BotStatus.PENDING,
    "joining_call": BotStatus.JOINING,
    "in_waiting_room": BotStatus.JOINING,
    "in_call_not_recording": BotStatus.JOINING,
    "recording_permission_allowed": BotStatus.JOINING,
    "in_call_recording": BotStatus.RECORDING,
    "call_ended": BotStatus.PROCESSING,
    "recording_done": BotStatus.PROCESSING,
    "done": BotStatus.COMPLETED,
    "analysis_done": BotStatus.COMPLETED,
    "fatal": BotStatus.FAILED,
    "recording_permission_denied": BotStatus.FAILED,
}


def map_external_status(raw: Optional[str]) -> BotStatus:
    """Map a provider status onto the lifecycle; unknown values count as pending."""
    if not raw:
        return BotStatus.PENDING
    return EXTERNAL_STATUS_MAP.get(raw.strip().lower(), BotStatus.PENDING)


@dataclass
class PollResult:
    """Outcome of polling one bot job."""

    bot_job_id: int
    status: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    transcript_saved: bool = False
    transcript_error: Optional[str] = None


@dataclass
class PollError:
    bot_job_id: int
    error: str


@dataclass
class BatchPollResult:
    """Outcome of polling every active bot job."""

    results: List[PollResult] = field(default_factory=list)
    errors: List[PollError] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "results": [asdict(r) for r in self.results],
            "errors": [asdict(e) for e in self.errors],
        }


class BotPoller:
    """Advances bot jobs from external status queries."""

    def __init__(self, database: Database, client: RecallClient):
        self.database = database
        self.client = client

    async def poll_once(self, bot_job: BotJob) -> PollResult:
        """
        Poll one bot job and persist what the provider reports.

        The status write happens on every call. Terminal jobs are not guarded
        against here; batch callers exclude them in their query.

        Args:
            bot_job: Bot job to poll

        Returns:
            PollResult describing the persisted state

        Raises:
            ExternalServiceError: If the status query fails (nothing is written)
        """
        with LogContext(bot_job_id=bot_job.id):
            external = await self.client.get_bot(bot_job.external_bot_id)
            status = map_external_status(external.status)
            values = self._status_values(bot_job, external, status)

            async with self.database.session() as session:
                await session.execute(
                    update(BotJob).where(BotJob.id == bot_job.id).values(**values)
                )

            bot_polls_total.labels(status=status.value).inc()
            logger.info("bot_polled", external_status=external.status, status=status.value)

            started_at = values.get("started_at") or bot_job.started_at
            completed_at = values.get("completed_at") or bot_job.completed_at
            result = PollResult(
                bot_job_id=bot_job.id,
                status=status.value,
                started_at=started_at.isoformat() if started_at else None,
                completed_at=completed_at.isoformat() if completed_at else None,
            )

            if status == BotStatus.COMPLETED and external.transcript_available:
                result.transcript_saved, result.transcript_error = await self._ingest_transcript(bot_job)

            return result

    @staticmethod
    def _status_values(bot_job: BotJob, external: ExternalBot, status: BotStatus) -> Dict[str, Any]:
        values: Dict[str, Any] = {"status": status.value}
        if external.recording_started_at:
            values["started_at"] = external.recording_started_at
        if external.recording_ended_at:
            values["completed_at"] = external.recording_ended_at
        elif status == BotStatus.COMPLETED and bot_job.completed_at is None:
            values["completed_at"] = utcnow()
        if status == BotStatus.FAILED:
            values["error_message"] = f"Bot reported status '{external.status}'"
        return values

    async def _ingest_transcript(self, bot_job: BotJob) -> Tuple[bool, Optional[str]]:
        """
        Fetch the transcript and upsert it by bot job id.

        Never raises: a failure is reported and retried on a later poll.

        Returns:
            (saved, error message)
        """
        try:
            payload = await self.client.get_transcript(bot_job.external_bot_id)
            if not payload.text.strip():
                transcripts_saved_total.labels(status="empty").inc()
                return False, "Transcript not available yet"

            now = utcnow()
            stmt = self.database.upsert(Transcript).values(
                meeting_id=bot_job.meeting_id,
                bot_job_id=bot_job.id,
                content=payload.text,
                summary=payload.summary,
                duration_seconds=payload.duration_seconds,
                participant_count=payload.participant_count,
                participants=payload.participants,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[Transcript.bot_job_id],
                set_={
                    "content": stmt.excluded.content,
                    "summary": stmt.excluded.summary,
                    "duration_seconds": stmt.excluded.duration_seconds,
                    "participant_count": stmt.excluded.participant_count,
                    "participants": stmt.excluded.participants,
                    "updated_at": now,
                },
            )
            async with self.database.session() as session:
                await session.execute(stmt)
        except Exception as e:
            transcripts_saved_total.labels(status="failed").inc()
            record_error(type(e).__name__, "bot_poller")
            logger.warning("transcript_ingest_failed", error=str(e))
            return False, f"Failed to fetch transcript: {e}"

        transcripts_saved_total.labels(status="saved").inc()
        logger.info("transcript_saved", characters=len(payload.text))
        return True, None

    @track_time(bot_poll_batch_duration)
    async def poll_all_active(self) -> BatchPollResult:
        """
        Poll every bot job that is not in a terminal state.

        Each job is polled and committed on its own; one failure never
        aborts the batch.

        Returns:
            BatchPollResult with per-job results and errors
        """
        start = utcnow()
        async with self.database.session() as session:
            result = await session.execute(
                select(BotJob)
                .where(BotJob.status.in_(ACTIVE_STATUSES))
                .order_by(BotJob.id)
            )
            jobs = result.scalars().all()

        logger.info("bot_poll_batch_started", active_jobs=len(jobs))
        batch = BatchPollResult()

        for job in jobs:
            try:
                batch.results.append(await self.poll_once(job))
            except Exception as e:
                record_error(type(e).__name__, "bot_poller")
                logger.error("bot_poll_failed", bot_job_id=job.id, error=str(e))
                batch.errors.append(PollError(bot_job_id=job.id, error=str(e) or type(e).__name__))

        duration = (utcnow() - start).total_seconds()
        logger.info(
            "bot_poll_batch_finished",
            processed=batch.processed,
            errors=len(batch.errors),
            duration=format_duration(duration),
        )
        return batch

    async def poll_for_user(self, user_id: str, bot_job_id: int) -> PollResult:
        """
        Poll one bot job on behalf of its owner.

        Raises:
            NotFound: Bot job missing or owned by another user
        """
        async with self.database.session() as session:
            result = await session.execute(
                select(BotJob)
                .join(Meeting, Meeting.id == BotJob.meeting_id)
                .where(BotJob.id == bot_job_id, Meeting.user_id == user_id)
            )
            bot_job = result.scalar_one_or_none()

        if bot_job is None:
            raise NotFound("Bot not found")
        return await self.poll_once(bot_job)
