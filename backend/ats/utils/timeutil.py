from datetime import datetime, timezone

TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Format as the fixed-width UTC string stored in every timestamp column.

    Naive datetimes are taken to be UTC. The fixed width keeps string
    comparison in SQL equivalent to chronological comparison.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(TS_FORMAT)


def now_iso() -> str:
    return to_iso(utcnow())


def parse_iso(value: str) -> datetime:
    try:
        dt = datetime.strptime(value, TS_FORMAT)
    except ValueError:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def whole_days_since(value: str, now: datetime | None = None) -> int:
    now = now or utcnow()
    return max(0, (now - parse_iso(value)).days)


def days_since(value: str, now: datetime | None = None) -> float:
    now = now or utcnow()
    return max(0.0, (now - parse_iso(value)).total_seconds() / 86400)
