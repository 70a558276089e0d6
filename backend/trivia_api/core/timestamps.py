"""UTC timestamp helpers used on the wire and in the checkpoint file."""

import datetime


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def to_iso(value: datetime.datetime) -> str:
    """
    Render a timestamp as ISO-8601 UTC with millisecond precision and a
    trailing Z, e.g. 2026-10-19T12:00:00.000Z.

    Naive datetimes are assumed to already be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    value = value.astimezone(datetime.timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
