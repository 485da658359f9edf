"""
Helpers for turning source records into flat output rows.

Everything here is pure: no I/O, and the current time is always passed in.
"""
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional, Sequence, Tuple, Union

from .constants import (
    BYTES_PER_MB,
    DATE_FORMAT,
    LIST_SEPARATOR,
    NEVER_OBSERVED_DAYS,
    NONE,
    NOT_AVAILABLE,
    UNKNOWN,
)

SENTINELS = (NOT_AVAILABLE, UNKNOWN, NONE)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a datetime, date or ISO 8601 string into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, date):
        ts = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text or text in SENTINELS:
            return None
        try:
            ts = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            return None
    else:
        return None

    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def days_since(value: Any, now: datetime) -> int:
    """Whole days elapsed since value. Missing timestamps map to 999 (never observed)."""
    ts = parse_timestamp(value)
    if ts is None:
        return NEVER_OBSERVED_DAYS
    return (parse_timestamp(now) - ts).days  # type: ignore[operator]


def days_until(value: Any, now: datetime) -> Optional[int]:
    """Whole days until value (negative once passed), or None when missing."""
    ts = parse_timestamp(value)
    if ts is None:
        return None
    return (ts - parse_timestamp(now)).days  # type: ignore[operator]


def is_inactive(days: int, threshold: int) -> bool:
    return days >= threshold


def percent_used(used: Any, quota: Any) -> float:
    """Percentage of quota used, rounded to 2 places; 0 when quota is not positive."""
    used_value = to_float(used)
    quota_value = to_float(quota)
    if quota_value <= 0:
        return 0.0
    return round(used_value / quota_value * 100, 2)


def classify(conditions: Iterable[Tuple[str, bool]], default: str) -> str:
    """
    Pick a classification label by precedence.

    Conditions are (label, applies) pairs ordered highest severity first;
    the first one that applies wins.
    """
    for label, applies in conditions:
        if applies:
            return label
    return default


def join_values(values: Union[str, Sequence[Any], None], empty: str = NONE) -> str:
    """Flatten a multi-valued field into one '; ' separated string in source order."""
    if isinstance(values, str):
        return values
    items = [str(v) for v in (values or []) if v is not None and v != ""]
    if not items:
        return empty
    return LIST_SEPARATOR.join(items)


def count_values(values: Union[str, Sequence[Any], None]) -> Union[int, str]:
    """Length of a related collection, or N/A when it could not be fetched."""
    if isinstance(values, str):
        return NOT_AVAILABLE
    return len(values or [])


def format_date(value: Any) -> str:
    ts = parse_timestamp(value)
    if ts is None:
        return NOT_AVAILABLE
    return ts.strftime(DATE_FORMAT)


def enum_text(value: Any, default: str = NOT_AVAILABLE) -> str:
    """Text of a Graph SDK enum member (or plain value)."""
    if value is None:
        return default
    text = getattr(value, 'value', value)
    return str(text) if text != "" else default


def to_float(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def to_int(value: Any) -> int:
    return int(to_float(value))


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes')
    return bool(value)


def bytes_to_mb(value: Any) -> float:
    return round(to_float(value) / BYTES_PER_MB, 2)


def display_name(obj: Any) -> str:
    """Best display name for a directory object (user, group, service principal)."""
    for attr in ('display_name', 'user_principal_name', 'mail', 'id'):
        value = getattr(obj, attr, None)
        if isinstance(value, str) and value:
            return value
    return UNKNOWN


def mail_domain(address: Any) -> str:
    if not isinstance(address, str) or '@' not in address:
        return NOT_AVAILABLE
    return address.rsplit('@', 1)[1].lower()
