from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

WATERMARK_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return now_utc().isoformat().replace("+00:00", "Z")


def to_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_watermark(value: datetime) -> str:
    return to_utc(value).strftime(WATERMARK_FORMAT)


def parse_timestamp(text: str) -> datetime:
    """Parse ISO-8601 / RFC 3339 timestamps, including the trailing 'Z' form."""
    text = text.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(text))


def format_display_time(value: datetime, tz_name: str = "UTC") -> str:
    """
    Render a timestamp like a browser's en-US toLocaleString().

    Example: 1/1/2024, 12:00:00 AM
    """
    local = to_utc(value).astimezone(ZoneInfo(tz_name))
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{local.month}/{local.day}/{local.year}, {hour}:{local:%M:%S} {suffix}"
