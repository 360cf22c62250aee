"""
LinkedIn adapter: refresh grant, profile lookup and UGC share publishing.
"""
from typing import Any, Dict
from urllib.parse import urlencode

import httpx

from postmeeting.exceptions import ExternalServiceError
from postmeeting.logging_config import get_logger
from postmeeting.services.providers.base import PostResult, ProviderAdapter, RefreshResult, TokenGrant
from postmeeting.utils import expires_at_from

logger = get_logger(__name__)

PERSON_URN_PREFIX = "urn:li:person:"


def person_urn(profile_id: str) -> str:
    """Build the author URN LinkedIn expects for member shares."""
    return profile_id if profile_id.startswith(PERSON_URN_PREFIX) else f"{PERSON_URN_PREFIX}{profile_id}"


class LinkedInAdapter(ProviderAdapter):
    """LinkedIn OAuth 2.0 and share API.

    LinkedIn only issues refresh tokens to approved partner apps, so most
    credentials end in ``ReauthRequired`` once the 60-day token lapses.
    """

    provider = "linkedin"
    authorize_url = "https://www.linkedin.com/oauth/v2/authorization"
    token_url = "https://www.linkedin.com/oauth/v2/accessToken"
    userinfo_url = "https://api.linkedin.com/v2/userinfo"
    ugc_posts_url = "https://api.linkedin.com/v2/ugcPosts"

    def _error_message(self, response: httpx.Response) -> str:
        # OAuth endpoints: {"error": "...", "error_description": "..."}
        # REST endpoints:  {"message": "...", "serviceErrorCode": 100, "status": 403}
        payload = self._payload(response)
        if not payload:
            return f"HTTP {response.status_code}"
        if payload.get("error_description"):
            return f"{payload.get('error')}: {payload['error_description']}"
        return payload.get("message") or payload.get("error") or f"HTTP {response.status_code}"

    def authorization_url(self, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def _refresh_request(self, client: httpx.AsyncClient, refresh_token: str) -> httpx.Response:
        return await client.post(
            self.token_url,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )

    def _parse_refresh(self, payload: Dict[str, Any]) -> RefreshResult:
        return RefreshResult(
            access_token=payload["access_token"],
            expires_at=expires_at_from(payload.get("expires_in"), self.clock()),
        )

    async def _exchange_request(self, client: httpx.AsyncClient, code: str) -> httpx.Response:
        return await client.post(
            self.token_url,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )

    def _parse_grant(self, payload: Dict[str, Any]) -> TokenGrant:
        return TokenGrant(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=expires_at_from(payload.get("expires_in"), self.clock()),
            scope=payload.get("scope"),
        )

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        """
        Look up the member behind the token.

        Returns:
            Profile dict with ``id`` normalized from ``sub`` or ``id``

        Raises:
            ExternalServiceError: If the lookup fails or returns no identifier
        """
        response = await self._request(
            "GET",
            self.userinfo_url,
            "profile",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        profile = self._payload(response) or {}
        profile_id = profile.get("sub") or profile.get("id")
        if not profile_id:
            raise ExternalServiceError("LinkedIn profile has no member id", service=self.provider)
        return {**profile, "id": profile_id}

    async def publish_post(self, access_token: str, text: str) -> PostResult:
        """
        Share a text post on the member's feed.

        The profile lookup must succeed first; its failure aborts the post.

        Args:
            access_token: Valid LinkedIn access token
            text: Post body

        Returns:
            PostResult with the share id
        """
        profile = await self.fetch_profile(access_token)
        author = person_urn(profile["id"])

        response = await self._request(
            "POST",
            self.ugc_posts_url,
            "ugc_post",
            headers={
                "Authorization": f"Bearer {access_token}",
                "X-Restli-Protocol-Version": "2.0.0",
            },
            json={
                "author": author,
                "lifecycleState": "PUBLISHED",
                "specificContent": {
                    "com.linkedin.ugc.ShareContent": {
                        "shareCommentary": {"text": text},
                        "shareMediaCategory": "NONE",
                    },
                },
                "visibility": {
                    "com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC",
                },
            },
        )
        # LinkedIn returns the share URN in the body and in x-restli-id
        post_id = (self._payload(response) or {}).get("id") or response.headers.get("x-restli-id")
        logger.info("linkedin_post_published", post_id=post_id)
        return PostResult(platform=self.provider, post_id=post_id)
