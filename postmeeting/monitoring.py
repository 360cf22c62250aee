"""
Monitoring and metrics collection using Prometheus.
"""
import asyncio
import functools
import time
from typing import Callable

from prometheus_client import Counter, Histogram, generate_latest, REGISTRY


token_refreshes_total = Counter(
    'postmeeting_token_refreshes_total',
    'Token refresh attempts by provider and outcome',
    ['provider', 'status']
)

token_lookups_total = Counter(
    'postmeeting_token_lookups_total',
    'Access token lookups by provider and outcome',
    ['provider', 'outcome']
)

bot_polls_total = Counter(
    'postmeeting_bot_polls_total',
    'Bot status polls by resulting status',
    ['status']
)

bot_poll_batch_duration = Histogram(
    'postmeeting_bot_poll_batch_duration_seconds',
    'Duration of a full poll of active bots'
)

transcripts_saved_total = Counter(
    'postmeeting_transcripts_saved_total',
    'Transcripts persisted from completed bots',
    ['status']
)

bots_created_total = Counter(
    'postmeeting_bots_created_total',
    'Meeting bots requested from the bot provider',
    ['trigger', 'status']
)

social_posts_total = Counter(
    'postmeeting_social_posts_total',
    'Social posts by platform and outcome',
    ['platform', 'status']
)

api_requests_total = Counter(
    'postmeeting_api_requests_total',
    'Outbound API requests',
    ['service', 'endpoint', 'status']
)

errors_total = Counter(
    'postmeeting_errors_total',
    'Total number of errors by type',
    ['error_type', 'component']
)


def track_time(metric: Histogram):
    """
    Decorator to track execution time of an async function.

    Args:
        metric: Prometheus Histogram metric
    """
    def decorator(func: Callable):
        if not asyncio.iscoroutinefunction(func):
            raise TypeError("track_time only wraps coroutine functions")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                return await func(*args, **kwargs)
            finally:
                metric.observe(time.time() - start_time)

        return wrapper

    return decorator


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def record_error(error_type: str, component: str):
    """
    Record an error occurrence.

    Args:
        error_type: Type of error (e.g., 'RefreshFailed')
        component: Component where error occurred (e.g., 'bot_poller')
    """
    errors_total.labels(error_type=error_type, component=component).inc()
