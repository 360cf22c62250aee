"""
Facebook adapter: long-lived token exchange, pages and feed publishing.
"""
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from postmeeting.logging_config import get_logger
from postmeeting.services.providers.base import PostResult, ProviderAdapter, RefreshResult, TokenGrant
from postmeeting.utils import expires_at_from

logger = get_logger(__name__)

# Long-lived user tokens last about 60 days; the exchange endpoint
# frequently omits expires_in for them
LONG_LIVED_EXPIRES_IN = 60 * 24 * 3600


class FacebookAdapter(ProviderAdapter):
    """Facebook Login and Graph API."""

    provider = "facebook"

    def __init__(self, *args, graph_version: str = "v18.0", **kwargs):
        super().__init__(*args, **kwargs)
        self.graph_version = graph_version

    @property
    def graph_url(self) -> str:
        return f"https://graph.facebook.com/{self.graph_version}"

    @property
    def token_url(self) -> str:
        return f"{self.graph_url}/oauth/access_token"

    def _error_message(self, response: httpx.Response) -> str:
        # {"error": {"message": "...", "type": "OAuthException", "code": 190, "fbtrace_id": "..."}}
        payload = self._payload(response)
        if not payload:
            return f"HTTP {response.status_code}"
        error = payload.get("error")
        if isinstance(error, dict):
            message = error.get("message") or f"HTTP {response.status_code}"
            if error.get("code") is not None:
                return f"{message} (code {error['code']})"
            return message
        return str(error) if error else f"HTTP {response.status_code}"

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": ",".join(self.scopes),
            "state": state,
        }
        return f"https://www.facebook.com/{self.graph_version}/dialog/oauth?{urlencode(params)}"

    async def _refresh_request(self, client: httpx.AsyncClient, refresh_token: str) -> httpx.Response:
        return await client.post(
            self.token_url,
            data={
                "grant_type": "fb_exchange_token",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "fb_exchange_token": refresh_token,
            },
        )

    def _parse_refresh(self, payload: Dict[str, Any]) -> RefreshResult:
        return RefreshResult(
            access_token=payload["access_token"],
            expires_at=expires_at_from(payload.get("expires_in", LONG_LIVED_EXPIRES_IN), self.clock()),
        )

    async def _exchange_request(self, client: httpx.AsyncClient, code: str) -> httpx.Response:
        return await client.get(
            self.token_url,
            params={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "code": code,
            },
        )

    def _parse_grant(self, payload: Dict[str, Any]) -> TokenGrant:
        # Facebook Login never issues refresh tokens
        return TokenGrant(
            access_token=payload["access_token"],
            refresh_token=None,
            expires_at=expires_at_from(payload.get("expires_in"), self.clock()),
            scope=None,
        )

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        """Fetch id and name of the token owner."""
        response = await self._request(
            "GET",
            f"{self.graph_url}/me",
            "profile",
            params={"fields": "id,name", "access_token": access_token},
        )
        return self._payload(response) or {}

    async def list_pages(self, access_token: str) -> List[Dict[str, Any]]:
        """
        List pages the user manages.

        Returns:
            List of ``{"id", "name"}`` dicts
        """
        response = await self._request(
            "GET",
            f"{self.graph_url}/me/accounts",
            "pages",
            params={"access_token": access_token},
        )
        return [
            {"id": page.get("id"), "name": page.get("name")}
            for page in (self._payload(response) or {}).get("data", [])
        ]

    async def publish_post(self, access_token: str, text: str, page_id: Optional[str] = None) -> PostResult:
        """
        Publish to a page feed, or to the user's own feed when no page is given.

        Args:
            access_token: Valid Facebook access token
            text: Post body
            page_id: Target page id (optional)

        Returns:
            PostResult with the Graph post id
        """
        target_id = page_id or "me"
        response = await self._request(
            "POST",
            f"{self.graph_url}/{target_id}/feed",
            "feed_post",
            json={"message": text, "access_token": access_token},
        )
        post_id = (self._payload(response) or {}).get("id")
        logger.info("facebook_post_published", target=target_id, post_id=post_id)
        return PostResult(platform=self.provider, post_id=post_id)
