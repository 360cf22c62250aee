"""
Meeting, bot job and transcript models.
"""
import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from postmeeting.models.base import Base, utcnow


class BotStatus(str, enum.Enum):
    """Lifecycle of a recording bot."""

    PENDING = "pending"
    JOINING = "joining"
    RECORDING = "recording"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({BotStatus.COMPLETED.value, BotStatus.FAILED.value})
ACTIVE_STATUSES = frozenset(s.value for s in BotStatus) - TERMINAL_STATUSES


class Meeting(Base):
    """Calendar event mirrored from the user's Google calendars."""

    __tablename__ = 'meetings'
    __table_args__ = (
        UniqueConstraint('user_id', 'calendar_event_id', name='uq_meetings_user_event'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    calendar_event_id = Column(String(500), nullable=False)
    calendar_id = Column(String(500), nullable=True)
    title = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=True, index=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    meeting_url = Column(Text, nullable=True)
    meeting_platform = Column(String(32), nullable=True)  # zoom, google, teams, unknown
    notetaker_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Meeting(id={self.id}, title='{self.title}')>"


class BotJob(Base):
    """One external recording bot tied to one meeting."""

    __tablename__ = 'bot_jobs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    meeting_id = Column(Integer, ForeignKey('meetings.id', ondelete='CASCADE'), nullable=False, unique=True)
    external_bot_id = Column(String(255), nullable=False, index=True)
    status = Column(String(32), nullable=False, default=BotStatus.PENDING.value, index=True)
    meeting_url = Column(Text, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<BotJob(id={self.id}, external_bot_id='{self.external_bot_id}', status='{self.status}')>"


class Transcript(Base):
    """Transcript retrieved from a completed bot job."""

    __tablename__ = 'transcripts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    meeting_id = Column(Integer, ForeignKey('meetings.id', ondelete='CASCADE'), nullable=False, index=True)
    bot_job_id = Column(Integer, ForeignKey('bot_jobs.id', ondelete='CASCADE'), nullable=False, unique=True)
    content = Column(Text, nullable=False)
    summary = Column(Text, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    participant_count = Column(Integer, nullable=True)
    participants = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Transcript(id={self.id}, bot_job_id={self.bot_job_id})>"
