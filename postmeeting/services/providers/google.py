"""
Google adapter: OAuth refresh grant and Calendar API.
"""
from datetime import datetime
from typing import Any, Dict, List
from urllib.parse import quote, urlencode

import httpx

from postmeeting.exceptions import ExternalServiceError
from postmeeting.logging_config import get_logger
from postmeeting.services.providers.base import ProviderAdapter, RefreshResult, TokenGrant
from postmeeting.utils import expires_at_from, safe_dict_get

logger = get_logger(__name__)

# Google omits expires_in on some refresh responses; access tokens last an hour
DEFAULT_EXPIRES_IN = 3600


class GoogleAdapter(ProviderAdapter):
    """Google OAuth 2.0 and Calendar v3."""

    provider = "google"
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    userinfo_url = "https://openidconnect.googleapis.com/v1/userinfo"
    calendar_api = "https://www.googleapis.com/calendar/v3"

    def _error_message(self, response: httpx.Response) -> str:
        # OAuth endpoints: {"error": "invalid_grant", "error_description": "..."}
        # API endpoints:   {"error": {"code": 403, "message": "...", "status": "..."}}
        payload = self._payload(response)
        if not payload:
            return f"HTTP {response.status_code}"
        error = payload.get("error")
        if isinstance(error, dict):
            return error.get("message") or error.get("status") or f"HTTP {response.status_code}"
        if error:
            description = payload.get("error_description")
            return f"{error}: {description}" if description else str(error)
        return f"HTTP {response.status_code}"

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            # offline + consent so Google issues a refresh token
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
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
            expires_at=expires_at_from(payload.get("expires_in", DEFAULT_EXPIRES_IN), self.clock()),
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
            expires_at=expires_at_from(payload.get("expires_in", DEFAULT_EXPIRES_IN), self.clock()),
            scope=payload.get("scope"),
        )

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        """
        Fetch the OpenID profile of the signed-in Google user.

        Returns:
            Dict with at least ``sub``; ``email`` and ``name`` when granted
        """
        response = await self._request(
            "GET",
            self.userinfo_url,
            "userinfo",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        profile = self._payload(response) or {}
        if not profile.get("sub"):
            raise ExternalServiceError("Google profile has no subject id", service=self.provider)
        return profile

    async def list_calendars(self, access_token: str) -> List[Dict[str, Any]]:
        """
        List calendars the user can read.

        Raises:
            ExternalServiceError: If the calendar list cannot be fetched (e.g. missing scope)
        """
        response = await self._request(
            "GET",
            f"{self.calendar_api}/users/me/calendarList",
            "calendar_list",
            headers={"Authorization": f"Bearer {access_token}"},
            params={"minAccessRole": "reader"},
        )
        return (self._payload(response) or {}).get("items", [])

    async def list_calendar_events(
        self,
        access_token: str,
        time_min: datetime,
        time_max: datetime,
    ) -> List[Dict[str, Any]]:
        """
        Fetch events across every readable calendar.

        A calendar whose events cannot be fetched is logged and skipped.

        Args:
            access_token: Valid Google access token
            time_min: Start of the window
            time_max: End of the window

        Returns:
            Event dicts annotated with ``calendarId`` and ``calendarName``
        """
        calendars = await self.list_calendars(access_token)
        events: List[Dict[str, Any]] = []

        for calendar in calendars:
            calendar_id = calendar.get("id")
            if not calendar_id:
                continue
            try:
                response = await self._request(
                    "GET",
                    f"{self.calendar_api}/calendars/{quote(calendar_id, safe='')}/events",
                    "calendar_events",
                    headers={"Authorization": f"Bearer {access_token}"},
                    params={
                        "timeMin": time_min.isoformat(),
                        "timeMax": time_max.isoformat(),
                        "maxResults": 250,
                        "singleEvents": "true",
                        "orderBy": "startTime",
                    },
                )
            except ExternalServiceError as e:
                logger.warning("calendar_events_skipped", calendar_id=calendar_id, error=str(e))
                continue

            for event in safe_dict_get(self._payload(response) or {}, "items", default=[]):
                events.append({
                    **event,
                    "calendarId": calendar_id,
                    "calendarName": calendar.get("summary"),
                })

        logger.info("calendar_events_fetched", calendars=len(calendars), events=len(events))
        return events
