"""
Wiring of services from settings, shared by the web app and the cron job.
"""
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from postmeeting.config import Settings
from postmeeting.database import Database
from postmeeting.rate_limiters import RateLimiters
from postmeeting.services.automations import AutomationService
from postmeeting.services.bot_client import RecallClient
from postmeeting.services.bot_poller import BotPoller
from postmeeting.services.bot_scheduler import BotScheduler
from postmeeting.services.calendar_sync import CalendarSync
from postmeeting.services.content import ContentGenerator
from postmeeting.services.encryption import TokenCipher
from postmeeting.services.meetings import MeetingService
from postmeeting.services.providers import ProviderAdapter, build_adapters
from postmeeting.services.social import SocialPublisher
from postmeeting.services.token_manager import TokenLifecycleManager
from postmeeting.services.token_store import CredentialStore


@dataclass
class Services:
    settings: Settings
    database: Database
    adapters: Dict[str, ProviderAdapter]
    store: CredentialStore
    tokens: TokenLifecycleManager
    recall: RecallClient
    poller: BotPoller
    meetings: MeetingService
    scheduler: BotScheduler
    calendar: CalendarSync
    content: ContentGenerator
    social: SocialPublisher
    automations: AutomationService


def build_services(
    settings: Settings,
    database: Database,
    client: Optional[httpx.AsyncClient] = None,
) -> Services:
    """
    Construct every service for one process.

    Args:
        settings: Application settings
        database: Open database
        client: Shared HTTP client for all outbound calls (optional)
    """
    limiters = RateLimiters(
        recall_per_second=settings.recall_rate_limit_per_second,
        openai_per_minute=settings.openai_rate_limit_per_minute,
    )
    adapters = build_adapters(settings, client=client)
    store = CredentialStore(database, TokenCipher(settings.encryption_key))
    tokens = TokenLifecycleManager(store, adapters)

    recall = RecallClient(
        settings.recall_api_base_url,
        settings.recall_api_key,
        auth_scheme=settings.recall_auth_scheme,
        client=client,
        timeout=settings.http_timeout_seconds,
        rate_limiters=limiters,
    )
    meetings = MeetingService(database)
    content = ContentGenerator(
        settings.openai_api_key,
        model=settings.openai_model,
        client=client,
        rate_limiters=limiters,
    )

    return Services(
        settings=settings,
        database=database,
        adapters=adapters,
        store=store,
        tokens=tokens,
        recall=recall,
        poller=BotPoller(database, recall),
        meetings=meetings,
        scheduler=BotScheduler(
            database,
            recall,
            meetings,
            bot_name=settings.recall_bot_name,
            default_join_minutes=settings.default_bot_join_minutes_before,
            join_window_minutes=settings.join_window_minutes,
            lookahead_minutes=settings.join_lookahead_minutes,
        ),
        calendar=CalendarSync(
            database,
            tokens,
            adapters["google"],
            lookahead_days=settings.calendar_lookahead_days,
        ),
        content=content,
        social=SocialPublisher(database, tokens, adapters, meetings),
        automations=AutomationService(database, meetings=meetings, generator=content),
    )
