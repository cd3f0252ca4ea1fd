from __future__ import annotations

from datetime import date, datetime
from typing import Any, List, Optional, Tuple
from zoneinfo import ZoneInfo
import re
import uuid

from .config import AMPM_RE, DEFAULT_TIMEZONE, HHMM_RE, ISO_DATE_RE, LLM_DEBUG

Interval = Tuple[int, int]

MINUTES_PER_DAY = 24 * 60


def _log_debug(message: str) -> None:
    if LLM_DEBUG:
        print(message, flush=True)


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def now_in_timezone(timezone_name: Optional[str] = None) -> datetime:
    try:
        tz = ZoneInfo(timezone_name or DEFAULT_TIMEZONE)
    except Exception:
        tz = ZoneInfo("UTC")
    return datetime.now(tz)


def normalize_text(text: str) -> str:
    t = (text or "").strip()
    t = re.sub(r"\s+", " ", t)
    return t


def try_parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if "T" in cleaned:
        cleaned = cleaned.split("T")[0]
    if not ISO_DATE_RE.match(cleaned):
        return None
    try:
        return datetime.strptime(cleaned, "%Y-%m-%d").date()
    except Exception:
        return None


def parse_time_minutes(value: Any) -> Optional[int]:
    """Minutes after midnight for "HH:MM", "H:MM AM" or "5pm"; None otherwise."""
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    if raw == "24:00":
        return MINUTES_PER_DAY
    match = HHMM_RE.match(raw)
    if match:
        return int(match.group(1)) * 60 + int(match.group(2))
    match = AMPM_RE.match(raw)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if hour < 1 or hour > 12 or minute > 59:
            return None
        hour = hour % 12
        if match.group(3).lower() == "p":
            hour += 12
        return hour * 60 + minute
    return None


def format_minutes(minutes: int) -> str:
    minutes = max(0, min(MINUTES_PER_DAY, int(minutes)))
    if minutes == MINUTES_PER_DAY:
        return "24:00"
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def weekday_index(value: date) -> int:
    """Weekday with Sunday=0 ... Saturday=6."""
    return (value.weekday() + 1) % 7


def intervals_overlap(a: Interval, b: Interval) -> bool:
    return a[0] < b[1] and b[0] < a[1]


def merge_intervals(intervals: List[Interval]) -> List[Interval]:
    cleaned = sorted((s, e) for s, e in intervals if e > s)
    merged: List[Interval] = []
    for start, end in cleaned:
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
            continue
        merged.append((start, end))
    return merged
