from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional

DATE_KEY_FORMAT = "%d/%m/%Y"
DAY_MS = 24 * 60 * 60 * 1000


def now_ms(now: Optional[datetime] = None) -> int:
    value = now or datetime.now()
    return int(value.timestamp() * 1000)


def from_ms(timestamp_ms: int) -> datetime:
    """Local wall-clock datetime for an epoch-millis timestamp."""
    return datetime.fromtimestamp(int(timestamp_ms) / 1000)


def date_key(timestamp_ms: int) -> str:
    return from_ms(timestamp_ms).strftime(DATE_KEY_FORMAT)


def today_key(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(DATE_KEY_FORMAT)


def yesterday_key(now: Optional[datetime] = None) -> str:
    return ((now or datetime.now()) - timedelta(days=1)).strftime(DATE_KEY_FORMAT)


def parse_date_key(key: str) -> Optional[date]:
    try:
        return datetime.strptime(str(key or "").strip(), DATE_KEY_FORMAT).date()
    except ValueError:
        return None


def time_label(timestamp_ms: int) -> str:
    return from_ms(timestamp_ms).strftime("%H:%M:%S")
