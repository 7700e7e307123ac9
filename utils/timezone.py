"""UTC-everywhere time handling for billing timestamps."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def parse_iso(iso_string: str) -> datetime:
    """
    Parse an ISO 8601 timestamp to a UTC datetime.

    Accepts the trailing 'Z' the backend emits. Raises ValueError if the
    string carries no timezone info.
    """
    text = iso_string.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot parse naive datetime string. "
            "Include timezone offset (e.g., 'Z' or '+00:00')."
        )
    return to_utc(dt)


def to_iso_z(dt: datetime) -> str:
    """Render a datetime as ISO 8601 UTC with millisecond precision and 'Z'."""
    return to_utc(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def combine_date_time(date_str: str, time_str: str | None, tz_name: str = "UTC") -> datetime:
    """
    Build an aware UTC datetime from the billing screen's date and time fields.

    Args:
        date_str: "YYYY-MM-DD"
        time_str: "HH:MM" (defaults to midnight when empty)
        tz_name: IANA zone the fields were entered in

    Raises:
        ValueError: If the fields or the timezone name are invalid
    """
    try:
        local_tz = ZoneInfo(tz_name)
    except KeyError:
        raise ValueError(f"Unknown timezone: {tz_name}")

    naive = datetime.fromisoformat(f"{date_str}T{time_str or '00:00'}")
    return naive.replace(tzinfo=local_tz).astimezone(timezone.utc)
