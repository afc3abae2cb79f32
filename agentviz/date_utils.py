"""Shared timestamp normalization helpers."""
from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

# RFC3339Nano trims trailing zeros and may carry up to 9 digits; fromisoformat
# on 3.10 only takes exactly 3 or 6.
_FRACTION_RE = re.compile(r"\.(\d+)")


def _six_digit_fraction(match: re.Match) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_datetime_token(token: str) -> datetime | None:
    cleaned = token.strip().strip("\"'")
    if not cleaned:
        return None
    cleaned = _FRACTION_RE.sub(_six_digit_fraction, cleaned, count=1)
    try:
        return datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S"):
        try:
            return datetime.strptime(cleaned, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def parse_timestamp(value: Any) -> datetime | None:
    """Convert mixed timestamp inputs into aware UTC datetimes.

    Accepts RFC3339 strings (with or without fractional seconds) and the
    native ``datetime``/``date`` objects PyYAML produces for unquoted
    timestamps. Anything else yields ``None`` ("unknown").
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    elif isinstance(value, str):
        parsed = _parse_datetime_token(value)
    else:
        return None
    # Zero-value times ("0001-01-01T00:00:00Z") mean "unknown".
    if parsed is None or parsed.year <= 1:
        return None
    return _as_utc(parsed)


def age_seconds(value: datetime | None, now: datetime | None = None) -> float | None:
    """Seconds elapsed since *value*, or ``None`` when the time is unknown."""
    if value is None:
        return None
    reference = _as_utc(now) if now else utc_now()
    return (reference - _as_utc(value)).total_seconds()
