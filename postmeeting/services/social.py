"""
Publishing generated content to LinkedIn and Facebook.

A ``PostedContent`` row is written only after the provider accepted the post;
any failure on the way (no connection, refresh failure, provider error)
leaves the log untouched.
"""
from typing import Dict, List, Optional

from sqlalchemy import select

from postmeeting.database import Database
from postmeeting.exceptions import InvalidRequest, NotFound
from postmeeting.logging_config import LogContext, get_logger
from postmeeting.models import Automation, PostedContent, Provider
from postmeeting.monitoring import social_posts_total
from postmeeting.services.meetings import MeetingService
from postmeeting.services.providers import FacebookAdapter, PostResult, ProviderAdapter
from postmeeting.services.token_manager import TokenLifecycleManager

logger = get_logger(__name__)

SOCIAL_PLATFORMS = (Provider.LINKEDIN.value, Provider.FACEBOOK.value)


class SocialPublisher:
    """Posts on behalf of a user with a currently-valid token."""

    def __init__(
        self,
        database: Database,
        token_manager: TokenLifecycleManager,
        adapters: Dict[str, ProviderAdapter],
        meetings: MeetingService,
    ):
        self.database = database
        self.token_manager = token_manager
        self.adapters = adapters
        self.meetings = meetings

    async def _check_references(
        self,
        user_id: str,
        meeting_id: Optional[int],
        automation_id: Optional[int],
    ) -> None:
        # the log row is written after the post is live, so bad references must fail first
        if meeting_id is not None:
            await self.meetings.get_meeting(user_id, meeting_id)
        if automation_id is not None:
            async with self.database.session() as session:
                result = await session.execute(
                    select(Automation.id).where(
                        Automation.id == automation_id,
                        Automation.user_id == user_id,
                    )
                )
                if result.scalar_one_or_none() is None:
                    raise NotFound("Automation not found")

    async def publish(
        self,
        user_id: str,
        platform: str,
        text: str,
        page_id: Optional[str] = None,
        meeting_id: Optional[int] = None,
        automation_id: Optional[int] = None,
    ) -> PostResult:
        """
        Publish a post and record it.

        Args:
            user_id: Posting user
            platform: linkedin or facebook
            text: Post body
            page_id: Facebook page to post to (user feed when omitted)
            meeting_id: Meeting the content came from
            automation_id: Automation that produced the content

        Returns:
            PostResult from the provider

        Raises:
            InvalidRequest: Unknown platform or empty text
            NotFound: Meeting or automation missing or owned by another user
            NotConnected, ReauthRequired, RefreshFailed: From token lookup
            ExternalServiceError: Provider rejected the post
        """
        if platform not in SOCIAL_PLATFORMS:
            raise InvalidRequest(f"Unsupported platform '{platform}'")
        if not text or not text.strip():
            raise InvalidRequest("Post content is required")
        await self._check_references(user_id, meeting_id, automation_id)

        with LogContext(user_id=user_id, platform=platform):
            try:
                access_token = await self.token_manager.get_valid_access_token(user_id, platform)
                adapter = self.adapters[platform]
                if platform == Provider.FACEBOOK.value:
                    result = await adapter.publish_post(access_token, text, page_id=page_id)
                else:
                    result = await adapter.publish_post(access_token, text)
            except Exception:
                social_posts_total.labels(platform=platform, status="failed").inc()
                logger.warning("social_post_failed")
                raise

            async with self.database.session() as session:
                session.add(PostedContent(
                    user_id=user_id,
                    platform=platform,
                    content=text,
                    post_id=result.post_id,
                    meeting_id=meeting_id,
                    automation_id=automation_id,
                ))

            social_posts_total.labels(platform=platform, status="success").inc()
            logger.info("social_post_published", post_id=result.post_id)
            return result

    async def facebook_pages(self, user_id: str) -> List[Dict[str, str]]:
        """Pages the user can post to."""
        access_token = await self.token_manager.get_valid_access_token(user_id, Provider.FACEBOOK)
        adapter: FacebookAdapter = self.adapters[Provider.FACEBOOK.value]
        return await adapter.list_pages(access_token)

    async def history(self, user_id: str, meeting_id: Optional[int] = None) -> List[PostedContent]:
        """Published posts, newest first."""
        query = select(PostedContent).where(PostedContent.user_id == user_id)
        if meeting_id is not None:
            query = query.where(PostedContent.meeting_id == meeting_id)
        async with self.database.session() as session:
            result = await session.execute(query.order_by(PostedContent.created_at.desc()))
            return list(result.scalars().all())
