"""
Pytest configuration and fixtures.
"""
import json
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from cryptography.fernet import Fernet

from postmeeting.config import Settings
from postmeeting.database import Database
from postmeeting.models import BotJob, Meeting
from postmeeting.services.encryption import TokenCipher
from postmeeting.services.providers import FacebookAdapter, GoogleAdapter, LinkedInAdapter
from postmeeting.services.token_manager import TokenLifecycleManager
from postmeeting.services.token_store import CredentialStore

NOW_MS = 1_760_000_000_000
USER_ID = "user-123"


# ============================================
# TEST CONFIGURATION
# ============================================

@pytest.fixture(scope="session")
def test_encryption_key():
    """Generate a test encryption key."""
    return Fernet.generate_key().decode()


@pytest.fixture
def test_settings(test_encryption_key):
    """Create test settings."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        encryption_key=test_encryption_key,
        secret_key="test-secret-key-for-sessions",
        cron_secret="test-cron-secret",
        debug=True,
        base_url="http://testserver",
        google_client_id="google-client",
        google_client_secret="google-secret",
        linkedin_client_id="linkedin-client",
        linkedin_client_secret="linkedin-secret",
        facebook_client_id="facebook-client",
        facebook_client_secret="facebook-secret",
        recall_api_key="test-recall-key",
        recall_api_base_url="https://recall.test/api/v1",
        openai_api_key="test-openai-key",
    )


# ============================================
# CLOCK AND HTTP FAKES
# ============================================

class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = NOW_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeHTTP:
    """
    Records outbound requests and answers them from a route table.

    Routes are matched by method and URL prefix, first match wins. A route
    value is a Response, an exception to raise, or a callable taking the
    request.
    """

    def __init__(self):
        self.routes: List[tuple] = []
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, response=None, *, json_body=None, status_code: int = 200, headers=None):
        if response is None:
            response = httpx.Response(status_code, json=json_body, headers=headers)
        self.routes.append((method.upper(), url, response))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, url, response in self.routes:
            if request.method == method and str(request.url).startswith(url):
                if isinstance(response, Exception):
                    raise response
                if callable(response):
                    return response(request)
                return response
        return httpx.Response(404, json={"error": f"no route for {request.method} {request.url}"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls(self, method: str, url: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and str(r.url).startswith(url)]

    @staticmethod
    def json_of(request: httpx.Request) -> Dict:
        return json.loads(request.content)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_http():
    return FakeHTTP()


@pytest.fixture
async def http_client(fake_http):
    client = fake_http.client()
    yield client
    await client.aclose()


# ============================================
# DATABASE FIXTURES
# ============================================

@pytest.fixture
async def database():
    """In-memory SQLite database with all tables created."""
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def cipher(test_encryption_key):
    return TokenCipher(test_encryption_key)


@pytest.fixture
def store(database, cipher):
    return CredentialStore(database, cipher)


# ============================================
# PROVIDER FIXTURES
# ============================================

@pytest.fixture
def adapters(http_client, clock):
    common = {"client": http_client, "clock": clock}
    return {
        "google": GoogleAdapter(
            "google-client", "google-secret", "http://testserver/auth/google/callback", ["openid"], **common
        ),
        "linkedin": LinkedInAdapter(
            "linkedin-client", "linkedin-secret", "http://testserver/auth/linkedin/callback", ["openid"], **common
        ),
        "facebook": FacebookAdapter(
            "facebook-client", "facebook-secret", "http://testserver/auth/facebook/callback", ["public_profile"],
            graph_version="v18.0", **common
        ),
    }


@pytest.fixture
def token_manager(store, adapters, clock):
    return TokenLifecycleManager(store, adapters, clock=clock)


# ============================================
# MOCK DATA FIXTURES
# ============================================

@pytest.fixture
def make_meeting(database) -> Callable:
    """Insert a meeting and return it."""
    counter = {"n": 0}

    async def _make(
        user_id: str = USER_ID,
        start_time: Optional[datetime] = None,
        meeting_url: Optional[str] = "https://zoom.us/j/123456789",
        notetaker_enabled: bool = True,
        title: str = "Quarterly review",
    ) -> Meeting:
        counter["n"] += 1
        meeting = Meeting(
            user_id=user_id,
            calendar_event_id=f"event-{counter['n']}",
            calendar_id="primary",
            title=title,
            start_time=start_time or datetime.now(timezone.utc) + timedelta(hours=1),
            meeting_url=meeting_url,
            meeting_platform="zoom",
            notetaker_enabled=notetaker_enabled,
        )
        async with database.session() as session:
            session.add(meeting)
            await session.flush()
        return meeting

    return _make


@pytest.fixture
def make_bot_job(database) -> Callable:
    """Insert a bot job for a meeting and return it."""

    async def _make(meeting: Meeting, external_bot_id: str, status: str = "pending") -> BotJob:
        bot_job = BotJob(
            meeting_id=meeting.id,
            external_bot_id=external_bot_id,
            status=status,
            meeting_url=meeting.meeting_url or "https://zoom.us/j/1",
        )
        async with database.session() as session:
            session.add(bot_job)
            await session.flush()
        return bot_job

    return _make
