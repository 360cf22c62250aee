"""
Shared plumbing for OAuth provider adapters.

Each adapter owns its provider's wire quirks: token endpoint shapes, expiry
reporting and error payloads. Everything above the adapter only sees
``RefreshResult``/``TokenGrant``/``PostResult`` and the common exceptions.
"""
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

import httpx

from postmeeting.exceptions import ConfigurationError, ExternalServiceError, RefreshFailed
from postmeeting.logging_config import get_logger
from postmeeting.monitoring import api_requests_total
from postmeeting.utils import now_ms

logger = get_logger(__name__)


@dataclass(frozen=True)
class RefreshResult:
    """New access token produced by a refresh grant."""

    access_token: str
    expires_at: Optional[int]


@dataclass(frozen=True)
class TokenGrant:
    """Tokens produced by an authorization-code exchange."""

    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[int]
    scope: Optional[str] = None


@dataclass(frozen=True)
class PostResult:
    """A post the provider accepted."""

    platform: str
    post_id: Optional[str]


class ProviderAdapter:
    """Base class for Google, LinkedIn and Facebook adapters."""

    provider: str = ""
    authorize_url: str = ""
    token_url: str = ""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: List[str],
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        clock: Callable[[], int] = now_ms,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self.timeout = timeout
        self.clock = clock
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _ensure_configured(self) -> None:
        if not self.is_configured:
            raise ConfigurationError(f"Missing OAuth client credentials for {self.provider}")

    @asynccontextmanager
    async def _http(self) -> AsyncGenerator[httpx.AsyncClient, None]:
        """Yield the injected client, or a short-lived one per call."""
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    @staticmethod
    def _payload(response: httpx.Response) -> Optional[Dict[str, Any]]:
        try:
            data = response.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    def _error_message(self, response: httpx.Response) -> str:
        """Translate a provider error body into a readable message."""
        raise NotImplementedError

    # ============================================
    # OAUTH
    # ============================================

    def authorization_url(self, state: str) -> str:
        raise NotImplementedError

    async def _refresh_request(self, client: httpx.AsyncClient, refresh_token: str) -> httpx.Response:
        raise NotImplementedError

    def _parse_refresh(self, payload: Dict[str, Any]) -> RefreshResult:
        raise NotImplementedError

    async def _exchange_request(self, client: httpx.AsyncClient, code: str) -> httpx.Response:
        raise NotImplementedError

    def _parse_grant(self, payload: Dict[str, Any]) -> TokenGrant:
        raise NotImplementedError

    async def refresh(self, refresh_token: str) -> RefreshResult:
        """
        Exchange a refresh token for a new access token.

        Args:
            refresh_token: Stored refresh token

        Returns:
            New access token and absolute expiry (ms)

        Raises:
            RefreshFailed: On network errors or provider rejection
        """
        if not self.is_configured:
            raise RefreshFailed(self.provider, "OAuth client credentials are not configured")
        try:
            async with self._http() as client:
                response = await self._refresh_request(client, refresh_token)
        except httpx.HTTPError as e:
            api_requests_total.labels(service=self.provider, endpoint="refresh", status="network_error").inc()
            raise RefreshFailed(self.provider, f"network error: {e}")

        api_requests_total.labels(service=self.provider, endpoint="refresh", status=str(response.status_code)).inc()
        if response.is_error:
            raise RefreshFailed(self.provider, self._error_message(response))

        payload = self._payload(response)
        if not payload or not payload.get("access_token"):
            raise RefreshFailed(self.provider, "response did not contain an access token")
        return self._parse_refresh(payload)

    async def exchange_code(self, code: str) -> TokenGrant:
        """
        Complete an authorization-code flow.

        Args:
            code: Authorization code from the callback

        Returns:
            Normalized token grant

        Raises:
            ExternalServiceError: If the provider rejects the code
        """
        self._ensure_configured()
        try:
            async with self._http() as client:
                response = await self._exchange_request(client, code)
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Token exchange failed: {e}", service=self.provider)

        if response.is_error:
            raise ExternalServiceError(
                f"Token exchange failed: {self._error_message(response)}",
                status_code=response.status_code,
                service=self.provider,
            )
        payload = self._payload(response)
        if not payload or not payload.get("access_token"):
            raise ExternalServiceError("Token exchange returned no access token", service=self.provider)
        return self._parse_grant(payload)

    # ============================================
    # API CALLS
    # ============================================

    async def _request(self, method: str, url: str, operation: str, **kwargs) -> httpx.Response:
        """
        Send one API request and translate failures.

        Raises:
            ExternalServiceError: On network errors or non-2xx responses
        """
        try:
            async with self._http() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            api_requests_total.labels(service=self.provider, endpoint=operation, status="network_error").inc()
            raise ExternalServiceError(f"{operation} failed: {e}", service=self.provider)

        api_requests_total.labels(
            service=self.provider, endpoint=operation, status=str(response.status_code)
        ).inc()
        if response.is_error:
            message = self._error_message(response)
            logger.warning(
                "provider_api_error",
                provider=self.provider,
                operation=operation,
                status_code=response.status_code,
            )
            raise ExternalServiceError(
                f"{operation} failed: {message}",
                status_code=response.status_code,
                service=self.provider,
            )
        return response
