# timestamps.py
# Description: Parsing of the timestamp strings the remote note service returns
#
# Imports
from datetime import datetime, timezone
from typing import Optional
#
#######################################################################################################################
#
# Functions:

# Formats seen in the remote API, tried in order. Naive values are taken as UTC.
NAIVE_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
)


def parse_memo_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a memo timestamp into an aware UTC datetime.

    Accepts "YYYY-MM-DD HH:MM:SS", "YYYY-MM-DDTHH:MM:SS" and ISO-8601 /
    RFC 3339 strings with an offset or a trailing "Z".

    Returns:
        The parsed datetime, or None when no format matches
    """
    if not value:
        return None
    text = value.strip()
    for fmt in NAIVE_TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def timestamp_to_epoch(value: Optional[str]) -> Optional[int]:
    """Epoch seconds for a memo timestamp, or None if it cannot be parsed."""
    parsed = parse_memo_timestamp(value)
    if parsed is None:
        return None
    return int(parsed.timestamp())

#
# End of timestamps.py
#######################################################################################################################
