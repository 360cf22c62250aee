"""
Small helpers shared across services.
"""
import time
from datetime import datetime, timezone
from typing import Any, Optional


def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def expires_at_from(expires_in: Optional[Any], now: int) -> Optional[int]:
    """
    Convert a relative ``expires_in`` (seconds) into an absolute ms timestamp.

    Args:
        expires_in: Seconds until expiry as reported by the provider
        now: Current time in milliseconds

    Returns:
        Absolute expiry in milliseconds, or None when the provider sent nothing usable
    """
    try:
        seconds = int(expires_in)
    except (TypeError, ValueError):
        return None
    return now + seconds * 1000


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp from an API payload.

    Args:
        value: Timestamp string, optionally ending in 'Z'

    Returns:
        Timezone-aware datetime, or None when missing or unparseable
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def format_duration(seconds: float) -> str:
    """
    Format duration in seconds to human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string like "2m 30s"
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"


def safe_dict_get(d: dict, *keys: str, default: Any = None) -> Any:
    """
    Safely get nested dictionary values.

    Args:
        d: Dictionary to search
        *keys: Keys to traverse
        default: Default value if key not found

    Returns:
        Value or default
    """
    for key in keys:
        try:
            d = d[key]
        except (KeyError, TypeError, AttributeError, IndexError):
            return default
    return d
