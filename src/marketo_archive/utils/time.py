from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

_MARKETO_SUFFIX = re.compile(r"Z[+-]\d{4}$")


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Get current UTC time in ISO format."""
    return to_iso(utc_now())


def to_iso(value: datetime) -> str:
    """Format an aware datetime as ISO 8601 UTC with millisecond precision."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def days_ago(days: int, now: Optional[datetime] = None) -> datetime:
    """Instant `days` days before `now`."""
    return (now or utc_now()) - timedelta(days=days)


def path_parts(value: datetime) -> tuple[str, str]:
    """Year and zero-padded month of an instant, in UTC."""
    value = value.astimezone(timezone.utc)
    return f"{value.year:04d}", f"{value.month:02d}"


def parse_timestamp(raw: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp into an aware UTC datetime.

    Accepts a trailing ``Z``, numeric offsets with or without a colon, and the
    ``2024-01-01T00:00:00Z+0000`` form the Marketo asset API returns. Naive
    values are taken as UTC. Returns None for empty or unparseable input.
    """
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None

    text = _MARKETO_SUFFIX.sub("+00:00", text)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # +0000 -> +00:00
    if re.search(r"[+-]\d{4}$", text):
        text = f"{text[:-2]}:{text[-2:]}"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
