"""Wall-clock helpers.

All timestamps are stored and compared as naive UTC datetimes so that
SQLite and PostgreSQL round-trip them identically.
"""

import datetime


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime.datetime) -> datetime.datetime:
    """Normalise an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)


def iso_utc(value: datetime.datetime) -> str:
    """ISO-8601 with an explicit ``Z`` so clients never read it as local time."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc).isoformat().replace("+00:00", "Z")
