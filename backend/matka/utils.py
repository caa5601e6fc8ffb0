from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Make a naive datetime timezone-aware (UTC). Already-aware datetimes pass through."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def money(value: float) -> float:
    """Round a currency amount to paise."""
    return round(float(value), 2)


def parse_game_date(value: str | date) -> str:
    """Normalize a game date to its ISO form (YYYY-MM-DD).

    Game dates are stored as ISO strings so they compare and index the same way
    regardless of the caller's timezone.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(str(value).strip()).isoformat()
