import calendar
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite returns them without tzinfo)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(raw: str | int | float | None) -> datetime | None:
    """Parse an ISO-8601 string (``Z`` suffix allowed) or epoch milliseconds into UTC.

    Jira sends epoch milliseconds either as a number or as a numeric string.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, str) and raw.isdigit():
        raw = int(raw)
    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(raw / 1000, tz=timezone.utc)
    return ensure_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))


def months_before(value: datetime, months: int) -> datetime:
    """Same instant ``months`` calendar months earlier, clamping the day to the target month's length."""
    total = value.year * 12 + (value.month - 1) - months
    year, month = divmod(total, 12)
    day = min(value.day, calendar.monthrange(year, month + 1)[1])
    return value.replace(year=year, month=month + 1, day=day)
