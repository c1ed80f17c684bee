"""Export timestamp parsing."""

import re
from datetime import UTC, datetime

_COMPACT_DATE = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})Z$")


def parse_export_date(value: str | None) -> datetime | None:
    """Parse an export timestamp into a UTC datetime.

    Two encodings are accepted: ISO-8601 (any value containing a hyphen)
    and the compact `yyyyMMddTHHmmssZ` form. Anything else, including
    impossible calendar dates, yields None.

    Examples:
        >>> parse_export_date("20240101T120000Z")
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
        >>> parse_export_date("not a date") is None
        True
    """
    if not value:
        return None
    value = value.strip()

    if "-" in value:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)

    match = _COMPACT_DATE.match(value)
    if not match:
        return None
    year, month, day, hour, minute, second = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day, hour, minute, second, tzinfo=UTC)
    except ValueError:
        return None
