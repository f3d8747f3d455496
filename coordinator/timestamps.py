"""Timestamp helpers for persisted records (timezone-aware, ISO 8601)."""

import re
from datetime import datetime, timezone
from typing import Optional

_FRACTION = re.compile(r"\.(\d+)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_time(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime, treating naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_time(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp written by this package or by other tools.

    Accepts a trailing "Z" and fractional seconds with more than six digits
    (nanosecond precision), which datetime.fromisoformat rejects on older
    interpreters.

    Args:
        value: Timestamp string, or None/empty

    Returns:
        Timezone-aware datetime, or None for empty input
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
