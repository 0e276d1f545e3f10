"""Publication date parsing for feed items.

Feeds in the wild use a handful of RFC 822 / RFC 850 / asctime / ISO 8601
variants. Formats are tried in a fixed order and the first one that parses
wins.

English day and month names are rewritten before strptime sees the value, so
parsing does not depend on the process LC_TIME locale.
"""

import re
from datetime import datetime, timezone
from typing import Optional

# Tried in order; the first successful parse wins. Weekdays are stripped and
# month names replaced by their number beforehand.
DATE_FORMATS = [
    "%d %m %Y %H:%M:%S %z",  # RFC 1123
    "%d %m %Y %H:%M %z",  # RFC 1123 without seconds
    "%d-%m-%y %H:%M:%S %z",  # RFC 850
    "%m %d %H:%M:%S %Y",  # asctime
    "%Y-%m-%dT%H:%M:%S.%f%z",  # ISO 8601 with fractional seconds
    "%Y-%m-%dT%H:%M:%S%z",  # ISO 8601
    "%Y%m%dT%H%M%S%z",  # ISO 8601 basic
]

MONTHS = {
    "jan": "01",
    "feb": "02",
    "mar": "03",
    "apr": "04",
    "may": "05",
    "jun": "06",
    "jul": "07",
    "aug": "08",
    "sep": "09",
    "oct": "10",
    "nov": "11",
    "dec": "12",
}

# RFC 822 zone names that strptime's %z does not accept
ZONE_OFFSETS = {
    "GMT": "+0000",
    "UT": "+0000",
    "UTC": "+0000",
    "EST": "-0500",
    "EDT": "-0400",
    "CST": "-0600",
    "CDT": "-0500",
    "MST": "-0700",
    "MDT": "-0600",
    "PST": "-0800",
    "PDT": "-0700",
}

_WEEKDAY = re.compile(r"^(?:mon|tue|wed|thu|fri|sat|sun)[a-z]*,?\s+", re.IGNORECASE)
_MONTH = re.compile(r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?(?=[\s-])", re.IGNORECASE)
_TRAILING_ZONE = re.compile(r"\s([A-Z]{2,3})$")
_LONG_FRACTION = re.compile(r"(\.\d{6})\d+")


def _prepare(value: str) -> str:
    value = " ".join(value.split())
    value = _WEEKDAY.sub("", value)
    value = _MONTH.sub(lambda m: MONTHS[m.group(1).lower()], value)
    match = _TRAILING_ZONE.search(value)
    if match and match.group(1) in ZONE_OFFSETS:
        value = value[: match.start(1)] + ZONE_OFFSETS[match.group(1)]
    # strptime's %f takes at most six digits
    return _LONG_FRACTION.sub(r"\1", value)


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """Parse a feed date string into an aware datetime.

    Args:
        value: Raw text of a pubDate/published/updated element

    Returns:
        Timezone-aware datetime (UTC when the format carries no zone),
        or None if no known format matches
    """
    if not value:
        return None

    text = _prepare(value.strip())
    if not text:
        return None

    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    return None
