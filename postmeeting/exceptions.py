"""
Custom exceptions shared by the token lifecycle, provider adapters and bot poller.
"""
from typing import Optional


class PostMeetingError(Exception):
    """Base exception for application errors."""
    pass


class TokenError(PostMeetingError):
    """Credential-related errors."""

    def __init__(self, message: str, user_id: Optional[str] = None, provider: Optional[str] = None):
        self.user_id = user_id
        self.provider = provider
        super().__init__(message)


class NotConnected(TokenError):
    """No credential stored for the (user, provider) pair."""

    def __init__(self, user_id: str, provider: str):
        super().__init__(
            f"{provider} is not connected for this user",
            user_id=user_id,
            provider=provider,
        )


class ReauthRequired(TokenError):
    """Credential expired and the provider left no way to refresh it."""

    def __init__(self, user_id: str, provider: str):
        super().__init__(
            f"{provider} access expired and cannot be refreshed; reconnect required",
            user_id=user_id,
            provider=provider,
        )


class RefreshFailed(TokenError):
    """Refresh was attempted but rejected by the provider or interrupted."""

    def __init__(self, provider: str, message: str, user_id: Optional[str] = None):
        super().__init__(
            f"Failed to refresh {provider} token: {message}",
            user_id=user_id,
            provider=provider,
        )


class ExternalServiceError(PostMeetingError):
    """A third-party API answered with a non-success response."""

    def __init__(self, message: str, status_code: Optional[int] = None, service: Optional[str] = None):
        self.status_code = status_code
        self.service = service
        super().__init__(message)


class ContentGenerationError(ExternalServiceError):
    """The text generator failed to produce content."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code, service="openai")


class NotFound(PostMeetingError):
    """Referenced resource does not exist or belongs to another user."""
    pass


class ConfigurationError(PostMeetingError):
    """Configuration or environment variable errors."""
    pass


class InvalidRequest(PostMeetingError):
    """Request data failed validation."""
    pass
