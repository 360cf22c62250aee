"""
User automations: saved instructions for drafting emails and posts.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from postmeeting.database import Database
from postmeeting.exceptions import InvalidRequest, NotFound
from postmeeting.logging_config import get_logger
from postmeeting.models import Automation
from postmeeting.services.content import ContentGenerator
from postmeeting.services.meetings import MeetingService

logger = get_logger(__name__)

AUTOMATION_TYPES = ("email", "linkedin", "facebook")
PLATFORMS = ("linkedin", "facebook", "both")
MAX_HASHTAGS = 10

TYPE_DEFAULTS = {
    "email": {"platform": "both", "tone": "warm financial advisor"},
    "linkedin": {"platform": "linkedin", "tone": "professional and engaging financial advisor"},
    "facebook": {"platform": "facebook", "tone": "warm and friendly financial advisor"},
}

UPDATABLE_FIELDS = ("name", "platform", "tone", "hashtag_count", "prompt_template", "enabled")


def _validate_hashtags(count: int) -> None:
    if not 0 <= count <= MAX_HASHTAGS:
        raise InvalidRequest(f"hashtag_count must be between 0 and {MAX_HASHTAGS}")


def target_platforms(automation: Automation) -> List[str]:
    """Social platforms a non-email automation drafts for."""
    platforms = []
    if automation.type == "linkedin" or automation.platform in ("linkedin", "both"):
        platforms.append("linkedin")
    if automation.type == "facebook" or automation.platform in ("facebook", "both"):
        platforms.append("facebook")
    return platforms


@dataclass
class AutomationRun:
    """Drafts produced for one meeting by the user's enabled automations."""

    drafts: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"count": len(self.drafts), "drafts": self.drafts, "errors": self.errors}


class AutomationService:
    """CRUD over automations, always scoped to the owning user."""

    def __init__(
        self,
        database: Database,
        meetings: Optional[MeetingService] = None,
        generator: Optional[ContentGenerator] = None,
    ):
        self.database = database
        self.meetings = meetings
        self.generator = generator

    async def list_automations(self, user_id: str) -> List[Automation]:
        async with self.database.session() as session:
            result = await session.execute(
                select(Automation)
                .where(Automation.user_id == user_id)
                .order_by(Automation.created_at.desc(), Automation.id.desc())
            )
            return list(result.scalars().all())

    async def create(
        self,
        user_id: str,
        name: str,
        type: str,
        platform: Optional[str] = None,
        tone: Optional[str] = None,
        hashtag_count: int = 3,
        prompt_template: Optional[str] = None,
    ) -> Automation:
        """
        Create an enabled automation with per-type defaults.

        Raises:
            InvalidRequest: Missing name, unknown type or platform, bad hashtag count
        """
        if not name or not name.strip():
            raise InvalidRequest("name is required")
        if type not in AUTOMATION_TYPES:
            raise InvalidRequest("type must be 'email', 'linkedin', or 'facebook'")
        if platform is not None and platform not in PLATFORMS:
            raise InvalidRequest("platform must be 'linkedin', 'facebook', or 'both'")
        _validate_hashtags(hashtag_count)

        defaults = TYPE_DEFAULTS[type]
        automation = Automation(
            user_id=user_id,
            name=name.strip(),
            type=type,
            platform=platform or defaults["platform"],
            tone=tone or defaults["tone"],
            hashtag_count=hashtag_count,
            prompt_template=prompt_template or None,
            enabled=True,
        )
        async with self.database.session() as session:
            session.add(automation)
            await session.flush()

        logger.info("automation_created", user_id=user_id, automation_id=automation.id, type=type)
        return automation

    async def update(self, user_id: str, automation_id: int, **changes: Any) -> Automation:
        """
        Apply a partial update. ``None`` values are ignored.

        Raises:
            NotFound: Automation missing or owned by another user
            InvalidRequest: Invalid field values
        """
        changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}
        if "platform" in changes and changes["platform"] not in PLATFORMS:
            raise InvalidRequest("platform must be 'linkedin', 'facebook', or 'both'")
        if "hashtag_count" in changes:
            _validate_hashtags(changes["hashtag_count"])
        if "name" in changes and not changes["name"].strip():
            raise InvalidRequest("name is required")

        async with self.database.session() as session:
            result = await session.execute(
                select(Automation).where(Automation.id == automation_id, Automation.user_id == user_id)
            )
            automation = result.scalar_one_or_none()
            if automation is None:
                raise NotFound("Automation not found")
            for key, value in changes.items():
                setattr(automation, key, value)
            await session.flush()

        logger.info("automation_updated", automation_id=automation_id, fields=sorted(changes))
        return automation

    async def delete(self, user_id: str, automation_id: int) -> None:
        """
        Raises:
            NotFound: Automation missing or owned by another user
        """
        async with self.database.session() as session:
            result = await session.execute(
                select(Automation).where(Automation.id == automation_id, Automation.user_id == user_id)
            )
            automation = result.scalar_one_or_none()
            if automation is None:
                raise NotFound("Automation not found")
            await session.delete(automation)

        logger.info("automation_deleted", automation_id=automation_id)

    async def run_for_meeting(self, user_id: str, meeting_id: int) -> AutomationRun:
        """
        Draft content for a meeting with every enabled automation.

        Drafts are returned, not published. A failing automation is
        reported and the rest still run.

        Raises:
            NotFound: Meeting missing, not owned, or without a transcript
        """
        transcript = await self.meetings.latest_transcript(user_id, meeting_id)
        if transcript is None:
            raise NotFound("Transcript not found. Please ensure the meeting has been recorded.")

        automations = [a for a in await self.list_automations(user_id) if a.enabled]
        run = AutomationRun()
        for automation in automations:
            try:
                if automation.type == "email":
                    content = await self.generator.generate_email(
                        transcript.content, transcript.participants or []
                    )
                    run.drafts.append({"automation_id": automation.id, "platform": None, "content": content})
                    continue

                for platform in target_platforms(automation):
                    if automation.prompt_template:
                        content = await self.generator.generate_from_template(
                            automation.prompt_template,
                            transcript.content,
                            automation.tone,
                            automation.hashtag_count,
                        )
                    else:
                        content = await self.generator.generate_post(
                            transcript.content, automation.tone, automation.hashtag_count
                        )
                    run.drafts.append({"automation_id": automation.id, "platform": platform, "content": content})
            except Exception as e:
                logger.warning("automation_run_failed", automation_id=automation.id, error=str(e))
                run.errors.append({"automation_id": automation.id, "error": str(e)})

        logger.info("automations_ran", meeting_id=meeting_id, drafts=len(run.drafts), errors=len(run.errors))
        return run
