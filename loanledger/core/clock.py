from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, matching CURRENT_TIMESTAMP column defaults."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return date.today()
