"""
OAuth provider adapters.
"""
from typing import Dict, Optional

import httpx

from postmeeting.config import Settings
from postmeeting.models import Provider
from postmeeting.services.providers.base import PostResult, ProviderAdapter, RefreshResult, TokenGrant
from postmeeting.services.providers.facebook import FacebookAdapter
from postmeeting.services.providers.google import GoogleAdapter
from postmeeting.services.providers.linkedin import LinkedInAdapter


def build_adapters(settings: Settings, client: Optional[httpx.AsyncClient] = None) -> Dict[str, ProviderAdapter]:
    """
    Construct one adapter per provider from settings.

    Args:
        settings: Application settings
        client: Shared HTTP client (optional)

    Returns:
        Mapping of provider name to adapter
    """
    common = {"client": client, "timeout": settings.http_timeout_seconds}
    return {
        Provider.GOOGLE.value: GoogleAdapter(
            settings.google_client_id,
            settings.google_client_secret,
            settings.redirect_uri(Provider.GOOGLE.value),
            settings.google_scopes,
            **common,
        ),
        Provider.LINKEDIN.value: LinkedInAdapter(
            settings.linkedin_client_id,
            settings.linkedin_client_secret,
            settings.redirect_uri(Provider.LINKEDIN.value),
            settings.linkedin_scopes,
            **common,
        ),
        Provider.FACEBOOK.value: FacebookAdapter(
            settings.facebook_client_id,
            settings.facebook_client_secret,
            settings.redirect_uri(Provider.FACEBOOK.value),
            settings.facebook_scopes,
            graph_version=settings.facebook_graph_version,
            **common,
        ),
    }


__all__ = [
    "ProviderAdapter",
    "GoogleAdapter",
    "LinkedInAdapter",
    "FacebookAdapter",
    "RefreshResult",
    "TokenGrant",
    "PostResult",
    "build_adapters",
]
