"""
Token lifecycle management.

Callers ask for an access token for (user, provider) and get one that is
valid right now. Expired tokens are refreshed through the provider adapter
and persisted in a single update; a failed refresh leaves the stored
credential exactly as it was so a transient error never forces a reconnect.
"""
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Union

import httpx

from postmeeting.exceptions import NotConnected, NotFound, ReauthRequired, RefreshFailed
from postmeeting.logging_config import get_logger
from postmeeting.models import Provider
from postmeeting.monitoring import record_error, token_lookups_total, token_refreshes_total
from postmeeting.services.providers import ProviderAdapter, TokenGrant
from postmeeting.services.token_store import CredentialStore, StoredCredential
from postmeeting.utils import now_ms

logger = get_logger(__name__)

ProviderName = Union[Provider, str]


@dataclass(frozen=True)
class ConnectionStatus:
    """What the settings page shows for one provider."""

    provider: str
    connected: bool
    expired: bool = False
    can_refresh: bool = False
    expires_at: Optional[int] = None
    provider_account_id: Optional[str] = None


class TokenLifecycleManager:
    """Hands out currently-valid access tokens, refreshing transparently."""

    def __init__(
        self,
        store: CredentialStore,
        adapters: Dict[str, ProviderAdapter],
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.adapters = adapters
        self.clock = clock

    @staticmethod
    def is_expired(expires_at: Optional[int], now: int) -> bool:
        """A credential without a known expiry is treated as expired."""
        return expires_at is None or now >= expires_at

    @staticmethod
    def _provider_name(provider: ProviderName) -> str:
        return Provider(provider).value

    def _adapter(self, provider: str) -> ProviderAdapter:
        adapter = self.adapters.get(provider)
        if adapter is None:
            raise RefreshFailed(provider, "no adapter registered")
        return adapter

    async def get_valid_access_token(self, user_id: str, provider: ProviderName) -> str:
        """
        Return an access token usable immediately.

        Args:
            user_id: Unique user identifier
            provider: Provider name or enum

        Returns:
            The stored token while it is unexpired, otherwise a freshly refreshed one

        Raises:
            NotConnected: No credential stored
            ReauthRequired: Expired with no refresh token
            RefreshFailed: Refresh attempted and failed; credential untouched
        """
        provider = self._provider_name(provider)
        credential = await self.store.get(user_id, provider)
        if credential is None:
            token_lookups_total.labels(provider=provider, outcome="not_connected").inc()
            raise NotConnected(user_id, provider)

        if not self.is_expired(credential.expires_at, self.clock()):
            token_lookups_total.labels(provider=provider, outcome="valid").inc()
            return credential.access_token

        refreshed = await self._refresh(credential)
        token_lookups_total.labels(provider=provider, outcome="refreshed").inc()
        return refreshed.access_token

    async def refresh(self, user_id: str, provider: ProviderName) -> StoredCredential:
        """
        Force a refresh regardless of the current expiry.

        Raises:
            NotConnected, ReauthRequired, RefreshFailed
        """
        provider = self._provider_name(provider)
        credential = await self.store.get(user_id, provider)
        if credential is None:
            raise NotConnected(user_id, provider)
        return await self._refresh(credential)

    async def _refresh(self, credential: StoredCredential) -> StoredCredential:
        user_id, provider = credential.user_id, credential.provider

        if not credential.refresh_token:
            token_refreshes_total.labels(provider=provider, status="reauth_required").inc()
            logger.info("token_reauth_required", user_id=user_id, provider=provider)
            raise ReauthRequired(user_id, provider)

        adapter = self._adapter(provider)
        try:
            result = await adapter.refresh(credential.refresh_token)
        except RefreshFailed as e:
            e.user_id = user_id
            token_refreshes_total.labels(provider=provider, status="failed").inc()
            record_error("RefreshFailed", "token_manager")
            logger.warning("token_refresh_failed", user_id=user_id, provider=provider, error=str(e))
            raise
        except httpx.HTTPError as e:
            token_refreshes_total.labels(provider=provider, status="failed").inc()
            record_error("RefreshFailed", "token_manager")
            logger.warning("token_refresh_failed", user_id=user_id, provider=provider, error=str(e))
            raise RefreshFailed(provider, str(e), user_id=user_id)

        updated = await self.store.update_access_token(
            user_id, provider, result.access_token, result.expires_at
        )
        if not updated:
            # disconnected while the refresh was in flight
            raise NotConnected(user_id, provider)

        token_refreshes_total.labels(provider=provider, status="success").inc()
        logger.info("token_refreshed", user_id=user_id, provider=provider, expires_at=result.expires_at)
        return replace(credential, access_token=result.access_token, expires_at=result.expires_at)

    async def connect(
        self,
        user_id: str,
        provider: ProviderName,
        grant: TokenGrant,
        provider_account_id: Optional[str] = None,
    ) -> None:
        """Persist the grant from a successful authorization callback."""
        await self.store.upsert(
            user_id=user_id,
            provider=self._provider_name(provider),
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=grant.expires_at,
            provider_account_id=provider_account_id,
            scope=grant.scope,
        )

    async def disconnect(self, user_id: str, provider: ProviderName) -> None:
        """
        Remove a stored credential.

        Raises:
            NotFound: Nothing stored for the pair
        """
        provider = self._provider_name(provider)
        if not await self.store.delete(user_id, provider):
            raise NotFound(f"No {provider} connection for this user")

    async def connection_status(self, user_id: str) -> Dict[str, ConnectionStatus]:
        """Connection state of every provider for a user."""
        now = self.clock()
        stored = {c.provider: c for c in await self.store.list_for_user(user_id)}
        statuses = {}
        for provider in Provider:
            credential = stored.get(provider.value)
            if credential is None:
                statuses[provider.value] = ConnectionStatus(provider=provider.value, connected=False)
                continue
            statuses[provider.value] = ConnectionStatus(
                provider=provider.value,
                connected=True,
                expired=self.is_expired(credential.expires_at, now),
                can_refresh=bool(credential.refresh_token),
                expires_at=credential.expires_at,
                provider_account_id=credential.provider_account_id,
            )
        return statuses
