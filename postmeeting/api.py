"""
Post-Meeting Assistant - API Routes

Connection management, meetings, bots, content and scheduled triggers.
"""
import secrets
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from prometheus_client import CONTENT_TYPE_LATEST
from sqlalchemy import text

from postmeeting.container import Services
from postmeeting.exceptions import ConfigurationError, InvalidRequest, NotFound
from postmeeting.logging_config import get_logger
from postmeeting.models import Provider
from postmeeting.monitoring import get_metrics
from postmeeting.schemas import (
    AutomationCreate,
    AutomationInfo,
    AutomationRunResponse,
    AutomationUpdate,
    BatchPollResponse,
    BotJobInfo,
    CalendarSyncResponse,
    ConnectionInfo,
    CreateBotRequest,
    CreateBotResponse,
    FacebookPage,
    GeneratedContent,
    GenerateRequest,
    HealthCheck,
    JoinMeetingsResponse,
    MeetingInfo,
    MessageResponse,
    NotetakerToggle,
    PollResponse,
    RefreshResponse,
    SocialPostRequest,
    SocialPostResponse,
    UserSettingsPayload,
)

logger = get_logger(__name__)


# ============================================
# CREATE API ROUTER
# ============================================

router = APIRouter()
cron_bearer = HTTPBearer(auto_error=False)


# ============================================
# DEPENDENCY INJECTION
# ============================================

def get_services(request: Request) -> Services:
    """Services built during application startup."""
    return request.app.state.services


async def get_current_user(request: Request) -> str:
    """
    Get current user ID from session.

    Raises:
        HTTPException: If user is not authenticated
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated. Please sign in with Google first."
        )
    return user_id


async def verify_cron(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(cron_bearer),
    services: Services = Depends(get_services),
) -> None:
    """
    Require ``Authorization: Bearer <CRON_SECRET>``.

    Raises:
        ConfigurationError: No cron secret configured
        HTTPException: Missing or wrong bearer token
    """
    expected = services.settings.cron_secret
    if not expected:
        raise ConfigurationError("CRON_SECRET is not configured")
    if credentials is None or not secrets.compare_digest(credentials.credentials, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron credentials"
        )


# ============================================
# AUTHENTICATION
# ============================================

@router.get("/auth/{provider}/connect")
async def connect(
    provider: Provider,
    request: Request,
    services: Services = Depends(get_services),
):
    """Start the authorization code flow for a provider."""
    if provider != Provider.GOOGLE:
        # social accounts attach to an already signed-in user
        await get_current_user(request)

    adapter = services.adapters[provider.value]
    if not adapter.is_configured:
        raise ConfigurationError(f"{provider.value} OAuth is not configured")

    state = secrets.token_urlsafe(32)
    request.session["oauth_state"] = {"provider": provider.value, "state": state}
    logger.info("oauth_flow_started", provider=provider.value)
    return RedirectResponse(url=adapter.authorization_url(state))


@router.get("/auth/{provider}/callback", response_model=MessageResponse)
async def callback(
    provider: Provider,
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    services: Services = Depends(get_services),
):
    """Handle the OAuth callback and store the granted credential."""
    if error:
        raise InvalidRequest(f"Authorization denied: {error}")

    pending = request.session.pop("oauth_state", None) or {}
    if (
        not code
        or not state
        or pending.get("provider") != provider.value
        or not secrets.compare_digest(str(pending.get("state", "")), state)
    ):
        raise InvalidRequest("Invalid OAuth state")

    adapter = services.adapters[provider.value]
    grant = await adapter.exchange_code(code)
    profile = await adapter.fetch_profile(grant.access_token)

    if provider == Provider.GOOGLE:
        user_id = profile["sub"]
        account_id = profile["sub"]
    else:
        user_id = await get_current_user(request)
        account_id = profile.get("id")

    await services.tokens.connect(user_id, provider, grant, provider_account_id=account_id)
    request.session["user_id"] = user_id

    logger.info(
        "provider_connected",
        user_id=user_id,
        provider=provider.value,
        refresh_token_received=bool(grant.refresh_token),
    )
    return MessageResponse(message=f"{provider.value} connected successfully")


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(request: Request):
    """Clear session (credentials remain stored)."""
    request.session.clear()
    return MessageResponse(message="Logged out successfully")


# ============================================
# CONNECTIONS
# ============================================

@router.get("/connections", response_model=List[ConnectionInfo])
async def list_connections(
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Connection state of every provider."""
    statuses = await services.tokens.connection_status(user_id)
    return [ConnectionInfo(**vars(s)) for s in statuses.values()]


@router.delete("/connections/{provider}", response_model=MessageResponse)
async def disconnect(
    provider: Provider,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Remove a stored provider credential."""
    await services.tokens.disconnect(user_id, provider)
    return MessageResponse(message=f"{provider.value} disconnected")


@router.post("/google/refresh", response_model=RefreshResponse)
async def refresh_google(
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Force a Google token refresh."""
    credential = await services.tokens.refresh(user_id, Provider.GOOGLE)
    return RefreshResponse(message="Token refreshed successfully", expires_at=credential.expires_at)


# ============================================
# CALENDAR AND MEETINGS
# ============================================

@router.post("/calendar/sync", response_model=CalendarSyncResponse)
async def sync_calendar(
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Pull upcoming Google Calendar events into meetings."""
    result = await services.calendar.sync(user_id)
    return CalendarSyncResponse(**result.to_dict())


def _meeting_info(meeting, bot_job=None) -> MeetingInfo:
    info = MeetingInfo.model_validate(meeting)
    if bot_job is not None:
        info.bot = BotJobInfo.model_validate(bot_job)
    return info


@router.get("/meetings", response_model=List[MeetingInfo])
async def list_meetings(
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Meetings with their bot state."""
    rows = await services.meetings.list_meetings(user_id)
    return [_meeting_info(meeting, bot_job) for meeting, bot_job in rows]


@router.post("/meetings/{meeting_id}/notetaker", response_model=MeetingInfo)
async def toggle_notetaker(
    meeting_id: int,
    body: NotetakerToggle,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Enable or disable automatic bot joining for a meeting."""
    meeting = await services.scheduler.set_notetaker(user_id, meeting_id, body.enabled)
    return _meeting_info(meeting)


# ============================================
# MEETING BOTS
# ============================================

@router.post("/bots", response_model=CreateBotResponse)
async def create_bot(
    body: CreateBotRequest,
    response: Response,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Send a recording bot to a meeting (no-op when one exists)."""
    bot_job, created = await services.scheduler.create_for_meeting(
        user_id,
        body.meeting_id,
        meeting_url=body.meeting_url,
        meeting_start_time=body.meeting_start_time,
        bot_name=body.bot_name,
    )
    if created:
        response.status_code = status.HTTP_201_CREATED
    return CreateBotResponse(created=created, bot=BotJobInfo.model_validate(bot_job))


@router.post("/bots/{bot_job_id}/poll", response_model=PollResponse)
async def poll_bot(
    bot_job_id: int,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Poll one bot now, retrying the transcript fetch if it is completed."""
    result = await services.poller.poll_for_user(user_id, bot_job_id)
    return PollResponse(**vars(result))


# ============================================
# SOCIAL PUBLISHING
# ============================================

@router.post("/social/post", response_model=SocialPostResponse)
async def social_post(
    body: SocialPostRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Publish content to LinkedIn or Facebook."""
    result = await services.social.publish(
        user_id,
        body.platform,
        body.content,
        page_id=body.page_id,
        meeting_id=body.meeting_id,
        automation_id=body.automation_id,
    )
    return SocialPostResponse(
        message=f"Posted to {result.platform}",
        platform=result.platform,
        post_id=result.post_id,
    )


@router.get("/social/facebook/pages", response_model=List[FacebookPage])
async def facebook_pages(
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Facebook pages the user can post to."""
    return [FacebookPage(**page) for page in await services.social.facebook_pages(user_id)]


# ============================================
# CONTENT GENERATION
# ============================================

async def _transcript_for(services: Services, user_id: str, meeting_id: int):
    transcript = await services.meetings.latest_transcript(user_id, meeting_id)
    if transcript is None:
        raise NotFound("Transcript not found. Please ensure the meeting has been recorded.")
    return transcript


@router.post("/ai/email", response_model=GeneratedContent)
async def generate_email(
    body: GenerateRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Draft a follow-up email from the meeting transcript."""
    transcript = await _transcript_for(services, user_id, body.meeting_id)
    content = await services.content.generate_email(transcript.content, transcript.participants or [])
    return GeneratedContent(content=content)


@router.post("/ai/post", response_model=GeneratedContent)
async def generate_post(
    body: GenerateRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Draft a social post from the meeting transcript."""
    transcript = await _transcript_for(services, user_id, body.meeting_id)
    kwargs = {"hashtag_count": body.hashtag_count}
    if body.tone:
        kwargs["tone"] = body.tone
    content = await services.content.generate_post(transcript.content, **kwargs)
    return GeneratedContent(content=content)


@router.post("/ai/automation", response_model=AutomationRunResponse)
async def run_automations(
    body: GenerateRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Draft content for a meeting with every enabled automation."""
    run = await services.automations.run_for_meeting(user_id, body.meeting_id)
    return AutomationRunResponse(**run.to_dict())


# ============================================
# AUTOMATIONS
# ============================================

@router.get("/automations", response_model=List[AutomationInfo])
async def list_automations(
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return [AutomationInfo.model_validate(a) for a in await services.automations.list_automations(user_id)]


@router.post("/automations", response_model=AutomationInfo, status_code=status.HTTP_201_CREATED)
async def create_automation(
    body: AutomationCreate,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    automation = await services.automations.create(user_id, **body.model_dump())
    return AutomationInfo.model_validate(automation)


@router.patch("/automations/{automation_id}", response_model=AutomationInfo)
async def update_automation(
    automation_id: int,
    body: AutomationUpdate,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    automation = await services.automations.update(user_id, automation_id, **body.model_dump(exclude_unset=True))
    return AutomationInfo.model_validate(automation)


@router.delete("/automations/{automation_id}", response_model=MessageResponse)
async def delete_automation(
    automation_id: int,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    await services.automations.delete(user_id, automation_id)
    return MessageResponse(message="Automation deleted")


# ============================================
# USER SETTINGS
# ============================================

@router.get("/settings", response_model=UserSettingsPayload)
async def get_user_settings(
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return UserSettingsPayload(**await services.scheduler.get_user_settings(user_id))


@router.put("/settings", response_model=UserSettingsPayload)
async def save_user_settings(
    body: UserSettingsPayload,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    saved = await services.scheduler.save_user_settings(user_id, body.bot_join_minutes_before)
    return UserSettingsPayload(**saved)


# ============================================
# SCHEDULED TRIGGERS
# ============================================

@router.get("/cron/poll-bots", response_model=BatchPollResponse, dependencies=[Depends(verify_cron)])
async def cron_poll_bots(services: Services = Depends(get_services)):
    """Poll every active bot once."""
    batch = await services.poller.poll_all_active()
    return BatchPollResponse(**batch.to_dict())


@router.get("/cron/join-meetings", response_model=JoinMeetingsResponse, dependencies=[Depends(verify_cron)])
async def cron_join_meetings(services: Services = Depends(get_services)):
    """Send bots to meetings whose join time has arrived."""
    result = await services.scheduler.join_upcoming_meetings()
    return JoinMeetingsResponse(**result.to_dict())


# ============================================
# OPERATIONS
# ============================================

@router.get("/health", response_model=HealthCheck)
async def health_check(services: Services = Depends(get_services)):
    """Health check endpoint for monitoring."""
    try:
        async with services.database.session() as session:
            await session.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception:
        db_status = "disconnected"

    return HealthCheck(
        status="healthy" if db_status == "connected" else "degraded",
        database=db_status,
        timestamp=datetime.now(timezone.utc).isoformat()
    )


@router.get("/metrics")
async def metrics():
    """Prometheus metrics."""
    return Response(content=get_metrics(), media_type=CONTENT_TYPE_LATEST)
