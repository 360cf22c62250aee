"""
Service for generating follow-up emails and social posts from transcripts.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional

import httpx

from postmeeting.exceptions import ConfigurationError, ContentGenerationError
from postmeeting.logging_config import get_logger
from postmeeting.monitoring import api_requests_total
from postmeeting.rate_limiters import RateLimiters

logger = get_logger(__name__)

DEFAULT_TONE = "warm financial advisor"


class ContentGenerator:
    """Generates text with the OpenAI chat completions API."""

    OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
        rate_limiters: Optional[RateLimiters] = None,
    ):
        """Initialize the generator with an OpenAI API key."""
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.rate_limiters = rate_limiters
        self._client = client

    @asynccontextmanager
    async def _http(self) -> AsyncGenerator[httpx.AsyncClient, None]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    def _email_prompt(self, transcript: str, participants: List[str]) -> str:
        return f"""Based on the following meeting transcript, write a warm, professional follow-up email.

Meeting Transcript:
{transcript}

Attendees: {", ".join(participants) if participants else "not recorded"}

The email should:
- Thank attendees for their time
- Summarize key discussion points
- List any action items or next steps
- Be concise but complete

Email:"""

    def _post_prompt(self, transcript: str, tone: str, hashtag_count: int) -> str:
        return f"""Based on the following meeting transcript, write a social media post.

Meeting Transcript:
{transcript}

Requirements:
- 120-180 words
- First-person perspective
- {tone} tone
- Up to {hashtag_count} relevant hashtags
- Highlight key insights or takeaways
- Do not reveal confidential client details

Social Media Post:"""

    async def _complete(
        self,
        operation: str,
        system: str,
        prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        """
        Run one chat completion and return the message text.

        Raises:
            ConfigurationError: If no API key is configured
            ContentGenerationError: On network errors, error responses or empty output
        """
        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY is not configured")
        if self.rate_limiters is not None:
            await self.rate_limiters.acquire_openai_limit()

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with self._http() as client:
                response = await client.post(self.OPENAI_API_URL, headers=headers, json=payload)
        except httpx.HTTPError as e:
            api_requests_total.labels(service="openai", endpoint=operation, status="network_error").inc()
            raise ContentGenerationError(f"{operation} failed: {e}")

        api_requests_total.labels(service="openai", endpoint=operation, status=str(response.status_code)).inc()
        if response.is_error:
            logger.error("openai_request_failed", operation=operation, status_code=response.status_code)
            raise ContentGenerationError(
                f"{operation} failed: {response.status_code} {response.text[:500]}",
                status_code=response.status_code,
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise ContentGenerationError(f"{operation} returned an unexpected response")

        if not content or not content.strip():
            raise ContentGenerationError(f"{operation} returned no content")

        logger.info("content_generated", operation=operation, characters=len(content))
        return content.strip()

    async def generate_email(self, transcript: str, participants: Optional[List[str]] = None) -> str:
        """
        Draft a follow-up email for the meeting.

        Args:
            transcript: Meeting transcript text
            participants: Attendee names

        Returns:
            Email body
        """
        if not transcript or not transcript.strip():
            raise ContentGenerationError("Transcript is empty")
        return await self._complete(
            "generate_email",
            "You are a professional financial advisor assistant. "
            "Generate warm, professional follow-up emails based on meeting transcripts.",
            self._email_prompt(transcript, participants or []),
            temperature=0.7,
            max_tokens=1000,
        )

    async def generate_post(
        self,
        transcript: str,
        tone: str = DEFAULT_TONE,
        hashtag_count: int = 3,
    ) -> str:
        """
        Draft a social media post about the meeting.

        Args:
            transcript: Meeting transcript text
            tone: Voice of the post
            hashtag_count: Maximum number of hashtags

        Returns:
            Post text
        """
        if not transcript or not transcript.strip():
            raise ContentGenerationError("Transcript is empty")
        return await self._complete(
            "generate_post",
            "You are a financial advisor creating engaging social media content.",
            self._post_prompt(transcript, tone, hashtag_count),
            temperature=0.8,
            max_tokens=400,
        )

    async def generate_from_template(
        self,
        template: str,
        transcript: str,
        tone: str = DEFAULT_TONE,
        hashtag_count: int = 3,
    ) -> str:
        """
        Draft a post from a user-supplied prompt template.

        ``{transcript}``, ``{tone}`` and ``{hashtag_count}`` placeholders are
        substituted; other braces are left alone.
        """
        if not transcript or not transcript.strip():
            raise ContentGenerationError("Transcript is empty")
        prompt = (
            template.replace("{transcript}", transcript)
            .replace("{tone}", tone)
            .replace("{hashtag_count}", str(hashtag_count))
        )
        return await self._complete(
            "generate_from_template",
            "You are a financial advisor creating engaging social media content.",
            prompt,
            temperature=0.8,
            max_tokens=400,
        )
