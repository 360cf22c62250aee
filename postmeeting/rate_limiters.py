"""
Rate limiting configuration for outbound API calls.
"""
from aiolimiter import AsyncLimiter


class RateLimiters:
    """Centralized rate limiters for different APIs."""

    def __init__(self, recall_per_second: int = 5, openai_per_minute: int = 10):
        """Initialize rate limiters for different services."""
        # Recall.ai allows bursts per second per API key
        self.recall_limiter = AsyncLimiter(max_rate=recall_per_second, time_period=1)

        self.openai_limiter = AsyncLimiter(max_rate=openai_per_minute, time_period=60)

    async def acquire_recall_limit(self):
        """Acquire rate limit slot for the Recall bot API."""
        async with self.recall_limiter:
            pass

    async def acquire_openai_limit(self):
        """Acquire rate limit slot for OpenAI API."""
        async with self.openai_limiter:
            pass
