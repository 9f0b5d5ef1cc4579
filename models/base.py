from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase
from ulid import ULID


class Base(DeclarativeBase):
    pass


def generate_ulid() -> str:
    return str(ULID())


def as_utc(value: datetime) -> datetime:
    """Naive UTC datetime, the form every timestamp column stores."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def utcnow() -> datetime:
    return as_utc(datetime.now(timezone.utc))
