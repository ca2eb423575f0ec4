import uuid
from datetime import UTC, datetime


def now() -> datetime:
    return datetime.now(UTC)


def new_uuid() -> str:
    return str(uuid.uuid4())


def same_day(a: datetime, b: datetime) -> bool:
    return a.date() == b.date()


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes coming from storage or the server as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)
