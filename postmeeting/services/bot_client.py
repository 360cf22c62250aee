"""
Client for the Recall.ai meeting bot API.

Creates bots, reads their status and downloads transcripts. All failures are
raised as ExternalServiceError; interpreting the status is left to the poller.
"""
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx

from postmeeting.exceptions import ConfigurationError, ExternalServiceError
from postmeeting.logging_config import get_logger
from postmeeting.monitoring import api_requests_total
from postmeeting.rate_limiters import RateLimiters
from postmeeting.utils import parse_timestamp, safe_dict_get

logger = get_logger(__name__)


def _status_code(payload: Dict[str, Any]) -> Optional[str]:
    status = payload.get("status")
    if isinstance(status, dict):
        status = status.get("code")
    if status:
        return str(status)
    changes = payload.get("status_changes") or []
    if changes:
        return safe_dict_get(changes, -1, "code")
    return None


@dataclass(frozen=True)
class ExternalBot:
    """Bot state as reported by the bot provider."""

    id: str
    status: Optional[str]
    recording_started_at: Optional[datetime] = None
    recording_ended_at: Optional[datetime] = None
    transcript_id: Optional[str] = None

    @property
    def transcript_available(self) -> bool:
        return bool(self.transcript_id)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ExternalBot":
        transcript = payload.get("transcript")
        if isinstance(transcript, dict):
            transcript_id = transcript.get("id")
        else:
            transcript_id = payload.get("transcript_id")
        return cls(
            id=str(payload.get("id", "")),
            status=_status_code(payload),
            recording_started_at=parse_timestamp(payload.get("recording_started_at")),
            recording_ended_at=parse_timestamp(payload.get("recording_ended_at")),
            transcript_id=str(transcript_id) if transcript_id else None,
        )


@dataclass(frozen=True)
class TranscriptPayload:
    """Transcript download normalized to plain text."""

    text: str
    summary: Optional[str] = None
    duration_seconds: Optional[int] = None
    participant_count: Optional[int] = None
    participants: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Any) -> "TranscriptPayload":
        # Either {"transcript": "...", ...} or a bare list of speaker segments
        if isinstance(payload, list):
            payload = {"transcript": payload}
        raw = payload.get("transcript")
        participants = list(payload.get("participants") or [])

        if isinstance(raw, list):
            lines = []
            for segment in raw:
                speaker = segment.get("speaker") or safe_dict_get(segment, "participant", "name") or "Unknown"
                words = segment.get("words") or []
                text = " ".join(w.get("text", "") for w in words).strip() or segment.get("text", "")
                if text:
                    lines.append(f"{speaker}: {text}")
                if speaker != "Unknown" and speaker not in participants:
                    participants.append(speaker)
            text = "\n".join(lines)
        else:
            text = raw or ""

        duration = payload.get("duration_seconds")
        count = payload.get("participant_count")
        return cls(
            text=text,
            summary=payload.get("summary"),
            duration_seconds=int(duration) if duration is not None else None,
            participant_count=int(count) if count is not None else (len(participants) or None),
            participants=participants,
        )


class RecallClient:
    """Service to interact with the Recall.ai bot API."""

    SERVICE = "recall"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        auth_scheme: str = "Token",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        rate_limiters: Optional[RateLimiters] = None,
    ):
        """Initialize the client with a static API key."""
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.auth_scheme = auth_scheme
        self.timeout = timeout
        self.rate_limiters = rate_limiters
        self._client = client

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"{self.auth_scheme} {self.api_key}",
            "Content-Type": "application/json",
        }

    @asynccontextmanager
    async def _http(self) -> AsyncGenerator[httpx.AsyncClient, None]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    async def _request(self, method: str, path: str, operation: str, **kwargs) -> Any:
        """
        Send a request and return the decoded JSON body.

        Raises:
            ConfigurationError: If no API key is configured
            ExternalServiceError: On network errors or non-2xx responses
        """
        if not self.api_key:
            raise ConfigurationError("RECALL_API_KEY is not configured")
        if self.rate_limiters is not None:
            await self.rate_limiters.acquire_recall_limit()

        try:
            async with self._http() as client:
                response = await client.request(
                    method, f"{self.base_url}{path}", headers=self.headers, **kwargs
                )
        except httpx.HTTPError as e:
            api_requests_total.labels(service=self.SERVICE, endpoint=operation, status="network_error").inc()
            raise ExternalServiceError(f"{operation} failed: {e}", service=self.SERVICE)

        api_requests_total.labels(
            service=self.SERVICE, endpoint=operation, status=str(response.status_code)
        ).inc()
        if response.is_error:
            error_text = response.text[:500] if response.text else "No details"
            raise ExternalServiceError(
                f"{operation} failed: {response.status_code} {error_text}",
                status_code=response.status_code,
                service=self.SERVICE,
            )
        try:
            return response.json()
        except ValueError:
            raise ExternalServiceError(f"{operation} returned invalid JSON", service=self.SERVICE)

    async def create_bot(
        self,
        meeting_url: str,
        bot_name: str,
        meeting_start_time: Optional[datetime] = None,
    ) -> ExternalBot:
        """
        Ask the provider to send a bot to a meeting.

        Args:
            meeting_url: Zoom/Meet/Teams join URL
            bot_name: Display name of the bot in the meeting
            meeting_start_time: Scheduled start, lets the provider join on time

        Returns:
            The created bot
        """
        body: Dict[str, Any] = {"meeting_url": meeting_url, "bot_name": bot_name}
        if meeting_start_time is not None:
            body["join_at"] = meeting_start_time.isoformat()
            body["meeting_start_time"] = meeting_start_time.isoformat()

        data = await self._request("POST", "/bots/", "create_bot", json=body)
        bot = ExternalBot.from_payload(data)
        logger.info("recall_bot_created", external_bot_id=bot.id)
        return bot

    async def get_bot(self, bot_id: str) -> ExternalBot:
        """Current status of a bot."""
        data = await self._request("GET", f"/bots/{bot_id}/", "get_bot")
        return ExternalBot.from_payload(data)

    async def get_transcript(self, bot_id: str) -> TranscriptPayload:
        """Download the transcript of a finished bot."""
        data = await self._request("GET", f"/bots/{bot_id}/transcript/", "get_transcript")
        return TranscriptPayload.from_payload(data)
