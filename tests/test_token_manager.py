"""
Tests for the token lifecycle manager.
"""
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from postmeeting.exceptions import NotConnected, NotFound, ReauthRequired, RefreshFailed
from postmeeting.services.providers import TokenGrant
from postmeeting.services.token_manager import TokenLifecycleManager

from tests.conftest import NOW_MS, USER_ID

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
LINKEDIN_TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
FACEBOOK_TOKEN_URL = "https://graph.facebook.com/v18.0/oauth/access_token"


@pytest.mark.unit
class TestExpiry:
    """Test the expiry predicate."""

    def test_absent_expiry_is_expired(self):
        assert TokenLifecycleManager.is_expired(None, NOW_MS) is True

    def test_expiry_boundary(self):
        assert TokenLifecycleManager.is_expired(NOW_MS, NOW_MS) is True
        assert TokenLifecycleManager.is_expired(NOW_MS + 1, NOW_MS) is False
        assert TokenLifecycleManager.is_expired(NOW_MS - 1, NOW_MS) is True


@pytest.mark.unit
class TestGetValidAccessToken:
    """Test token retrieval and transparent refresh."""

    async def test_not_connected(self, token_manager):
        with pytest.raises(NotConnected) as exc_info:
            await token_manager.get_valid_access_token(USER_ID, "google")
        assert exc_info.value.provider == "google"
        assert exc_info.value.user_id == USER_ID

    async def test_unexpired_token_returned_without_writes(self, token_manager, store, fake_http):
        """Fast path: no refresh call and no storage write."""
        await store.upsert(USER_ID, "google", "a1", "r1", NOW_MS + 60_000)
        before = await store.get(USER_ID, "google")

        with patch.object(store, "update_access_token", new=AsyncMock()) as update:
            token = await token_manager.get_valid_access_token(USER_ID, "google")

        assert token == "a1"
        update.assert_not_called()
        assert fake_http.requests == []
        assert await store.get(USER_ID, "google") == before

    async def test_expired_google_token_is_refreshed(self, token_manager, store, fake_http):
        """expires_at=now-1000 and a 3600s grant yields expiry now+3,600,000."""
        fake_http.add("POST", GOOGLE_TOKEN_URL, json_body={"access_token": "a2", "expires_in": 3600})
        await store.upsert(USER_ID, "google", "a1", "r1", NOW_MS - 1000)

        token = await token_manager.get_valid_access_token(USER_ID, "google")

        assert token == "a2"
        credential = await store.get(USER_ID, "google")
        assert credential.access_token == "a2"
        assert credential.expires_at == NOW_MS + 3_600_000
        assert credential.refresh_token == "r1"

        request = fake_http.calls("POST", GOOGLE_TOKEN_URL)[0]
        body = request.content.decode()
        assert "grant_type=refresh_token" in body
        assert "refresh_token=r1" in body

    async def test_refreshed_token_used_on_next_lookup(self, token_manager, store, fake_http):
        fake_http.add("POST", GOOGLE_TOKEN_URL, json_body={"access_token": "a2", "expires_in": 3600})
        await store.upsert(USER_ID, "google", "a1", "r1", NOW_MS - 1000)

        await token_manager.get_valid_access_token(USER_ID, "google")
        await token_manager.get_valid_access_token(USER_ID, "google")

        assert len(fake_http.calls("POST", GOOGLE_TOKEN_URL)) == 1

    async def test_absent_expiry_triggers_refresh(self, token_manager, store, fake_http):
        fake_http.add("POST", GOOGLE_TOKEN_URL, json_body={"access_token": "a2", "expires_in": 3600})
        await store.upsert(USER_ID, "google", "a1", "r1", None)

        assert await token_manager.get_valid_access_token(USER_ID, "google") == "a2"

    async def test_expired_without_refresh_token_requires_reauth(self, token_manager, store, fake_http):
        """LinkedIn without a refresh token fails fast and makes no call."""
        await store.upsert(USER_ID, "linkedin", "li-token", None, NOW_MS - 1)

        with pytest.raises(ReauthRequired) as exc_info:
            await token_manager.get_valid_access_token(USER_ID, "linkedin")

        assert exc_info.value.provider == "linkedin"
        assert fake_http.requests == []
        assert (await store.get(USER_ID, "linkedin")).access_token == "li-token"

    async def test_rejected_refresh_leaves_credential_unchanged(self, token_manager, store, fake_http):
        fake_http.add(
            "POST", GOOGLE_TOKEN_URL,
            status_code=400,
            json_body={"error": "invalid_grant", "error_description": "Token has been expired or revoked."},
        )
        await store.upsert(USER_ID, "google", "a1", "r1", NOW_MS - 1000)
        before = await store.get(USER_ID, "google")

        with pytest.raises(RefreshFailed) as exc_info:
            await token_manager.get_valid_access_token(USER_ID, "google")

        assert "invalid_grant" in str(exc_info.value)
        assert exc_info.value.user_id == USER_ID
        after = await store.get(USER_ID, "google")
        assert (after.access_token, after.refresh_token, after.expires_at) == (
            before.access_token, before.refresh_token, before.expires_at
        )

    async def test_network_error_leaves_credential_unchanged(self, token_manager, store, fake_http):
        fake_http.add("POST", GOOGLE_TOKEN_URL, httpx.ConnectError("connection refused"))
        await store.upsert(USER_ID, "google", "a1", "r1", NOW_MS - 1000)

        with pytest.raises(RefreshFailed):
            await token_manager.get_valid_access_token(USER_ID, "google")

        credential = await store.get(USER_ID, "google")
        assert credential.access_token == "a1"
        assert credential.expires_at == NOW_MS - 1000

    async def test_linkedin_refresh_with_refresh_token(self, token_manager, store, fake_http):
        fake_http.add(
            "POST", LINKEDIN_TOKEN_URL,
            json_body={"access_token": "li-2", "expires_in": 5_184_000},
        )
        await store.upsert(USER_ID, "linkedin", "li-1", "li-refresh", NOW_MS - 1)

        assert await token_manager.get_valid_access_token(USER_ID, "linkedin") == "li-2"
        assert (await store.get(USER_ID, "linkedin")).expires_at == NOW_MS + 5_184_000_000

    async def test_facebook_refresh_exchanges_current_token(self, token_manager, store, fake_http):
        """Facebook refresh is an fb_exchange_token grant; missing expires_in means 60 days."""
        fake_http.add("POST", FACEBOOK_TOKEN_URL, json_body={"access_token": "fb-2", "token_type": "bearer"})
        await store.upsert(USER_ID, "facebook", "fb-1", "fb-1", NOW_MS - 1)

        assert await token_manager.get_valid_access_token(USER_ID, "facebook") == "fb-2"

        body = fake_http.calls("POST", FACEBOOK_TOKEN_URL)[0].content.decode()
        assert "grant_type=fb_exchange_token" in body
        assert "fb_exchange_token=fb-1" in body
        assert (await store.get(USER_ID, "facebook")).expires_at == NOW_MS + 60 * 24 * 3600 * 1000

    async def test_unparseable_expiry_is_stored_as_absent(self, token_manager, store, fake_http):
        fake_http.add("POST", GOOGLE_TOKEN_URL, json_body={"access_token": "a2", "expires_in": "soon"})
        await store.upsert(USER_ID, "google", "a1", "r1", NOW_MS - 1000)

        await token_manager.get_valid_access_token(USER_ID, "google")

        assert (await store.get(USER_ID, "google")).expires_at is None


@pytest.mark.unit
class TestConnections:
    """Test connect, disconnect, force refresh and status."""

    async def test_connect_and_status(self, token_manager, clock):
        await token_manager.connect(
            USER_ID, "google",
            TokenGrant(access_token="a1", refresh_token="r1", expires_at=clock() + 1000),
            provider_account_id="sub-1",
        )
        await token_manager.connect(
            USER_ID, "linkedin",
            TokenGrant(access_token="li", refresh_token=None, expires_at=clock() - 1),
        )

        statuses = await token_manager.connection_status(USER_ID)

        assert statuses["google"].connected is True
        assert statuses["google"].expired is False
        assert statuses["google"].can_refresh is True
        assert statuses["google"].provider_account_id == "sub-1"
        assert statuses["linkedin"].expired is True
        assert statuses["linkedin"].can_refresh is False
        assert statuses["facebook"].connected is False

    async def test_force_refresh_ignores_expiry(self, token_manager, store, fake_http):
        fake_http.add("POST", GOOGLE_TOKEN_URL, json_body={"access_token": "a2", "expires_in": 3600})
        await store.upsert(USER_ID, "google", "a1", "r1", NOW_MS + 60_000)

        credential = await token_manager.refresh(USER_ID, "google")

        assert credential.access_token == "a2"
        assert credential.expires_at == NOW_MS + 3_600_000

    async def test_force_refresh_not_connected(self, token_manager):
        with pytest.raises(NotConnected):
            await token_manager.refresh(USER_ID, "google")

    async def test_disconnect(self, token_manager, store):
        await store.upsert(USER_ID, "facebook", "fb", None, NOW_MS)

        await token_manager.disconnect(USER_ID, "facebook")

        assert await store.get(USER_ID, "facebook") is None
        with pytest.raises(NotFound):
            await token_manager.disconnect(USER_ID, "facebook")

    async def test_disconnected_during_refresh(self, token_manager, store, fake_http):
        """A refresh landing after a disconnect does not resurrect the row."""

        async def disconnect_then_answer(request):
            await store.delete(USER_ID, "google")
            return httpx.Response(200, json={"access_token": "a2", "expires_in": 3600})

        fake_http.add("POST", GOOGLE_TOKEN_URL, disconnect_then_answer)
        await store.upsert(USER_ID, "google", "a1", "r1", NOW_MS - 1)

        with pytest.raises(NotConnected):
            await token_manager.get_valid_access_token(USER_ID, "google")
        assert await store.get(USER_ID, "google") is None
