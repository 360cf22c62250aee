"""
Pydantic models for request/response validation.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageResponse(BaseModel):
    """Response after a successful operation."""
    message: str


class HealthCheck(BaseModel):
    """Health check response."""
    status: str
    database: str
    timestamp: str


class ConnectionInfo(BaseModel):
    """Connection state of one provider (tokens never exposed)."""
    provider: str
    connected: bool
    expired: bool = False
    can_refresh: bool = False
    expires_at: Optional[int] = Field(None, description="Expiry in ms since epoch")
    provider_account_id: Optional[str] = None


class RefreshResponse(BaseModel):
    message: str
    expires_at: Optional[int] = None


class CalendarSyncResponse(BaseModel):
    events: int
    meetings_with_url: int


class BotJobInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    meeting_id: int
    external_bot_id: str
    status: str
    meeting_url: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None


class MeetingInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    calendar_event_id: str
    calendar_id: Optional[str] = None
    title: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    meeting_url: Optional[str] = None
    meeting_platform: Optional[str] = None
    notetaker_enabled: bool
    bot: Optional[BotJobInfo] = None


class NotetakerToggle(BaseModel):
    enabled: bool


class CreateBotRequest(BaseModel):
    meeting_id: int
    meeting_url: Optional[str] = None
    meeting_start_time: Optional[datetime] = None
    bot_name: Optional[str] = None


class CreateBotResponse(BaseModel):
    created: bool
    bot: BotJobInfo


class PollResponse(BaseModel):
    bot_job_id: int
    status: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    transcript_saved: bool = False
    transcript_error: Optional[str] = None


class BatchPollResponse(BaseModel):
    processed: int
    results: List[PollResponse]
    errors: List[Dict[str, Any]]


class JoinMeetingsResponse(BaseModel):
    joined: int
    bots: List[Dict[str, Any]]
    errors: List[Dict[str, Any]]


class SocialPostRequest(BaseModel):
    platform: str = Field(..., description="linkedin or facebook")
    content: str = Field(..., min_length=1)
    page_id: Optional[str] = None
    meeting_id: Optional[int] = None
    automation_id: Optional[int] = None


class SocialPostResponse(BaseModel):
    message: str
    platform: str
    post_id: Optional[str] = None


class FacebookPage(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None


class GenerateRequest(BaseModel):
    meeting_id: int
    tone: Optional[str] = None
    hashtag_count: int = Field(3, ge=0, le=10)


class GeneratedContent(BaseModel):
    content: str


class AutomationRunResponse(BaseModel):
    count: int
    drafts: List[Dict[str, Any]]
    errors: List[Dict[str, Any]]


class AutomationCreate(BaseModel):
    name: str
    type: str = Field(..., description="email, linkedin or facebook")
    platform: Optional[str] = None
    tone: Optional[str] = None
    hashtag_count: int = 3
    prompt_template: Optional[str] = None


class AutomationUpdate(BaseModel):
    name: Optional[str] = None
    platform: Optional[str] = None
    tone: Optional[str] = None
    hashtag_count: Optional[int] = None
    prompt_template: Optional[str] = None
    enabled: Optional[bool] = None


class AutomationInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: str
    platform: str
    tone: str
    hashtag_count: int
    prompt_template: Optional[str] = None
    enabled: bool


class UserSettingsPayload(BaseModel):
    bot_join_minutes_before: int
